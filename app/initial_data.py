import logging

from app.utils.database import SessionLocal
from app.services.fine_policy import get_fine_settings
from app.utils.money import to_rupees

logger = logging.getLogger(__name__)


def init_seed():
    """Idempotent: makes sure the fine settings singleton exists."""
    db = SessionLocal()
    try:
        row = get_fine_settings(db)
        logger.info("Fine settings ready (default fine %.2f)", to_rupees(row.default_fine_amount))
    finally:
        db.close()
