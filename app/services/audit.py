import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.security import Caller
from app.models.audit_log_model import AuditLog

logger = logging.getLogger(__name__)


def record_audit(
        db: Session,
        caller: Caller,
        action: str,
        table_name: str,
        record_id,
        before: Optional[dict] = None,
        after: Optional[dict] = None,
        remark: Optional[str] = None,
) -> AuditLog:
    """
    Stage an audit row in the caller's transaction.

    The row commits together with the state change it describes.
    """
    entry = AuditLog(
        actor_user_id=caller.caller_id,
        actor_role=caller.role,
        action=action,
        table_name=table_name,
        record_id=str(record_id),
        before_data=before,
        after_data=after,
        remark=remark,
    )
    db.add(entry)
    logger.info("audit %s %s#%s by %s", action, table_name, record_id, caller.caller_id)
    return entry
