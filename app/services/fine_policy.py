"""
Late fines are flat amounts stored per EMI row, not a running function of
days overdue. A row gets its fine once it is found overdue (seeded from
FineSettings), keeps it until paid or waived, and a waived row never accrues
again unless an admin explicitly overrides it.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import DEFAULT_FINE_AMOUNT
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.core.security import Caller
from app.models.customer_model import Customer
from app.models.emi_schedule_model import EMISchedule
from app.models.fine_settings_model import FineSettings
from app.services.audit import record_audit
from app.utils.money import to_paise

logger = logging.getLogger(__name__)

FINE_SETTINGS_ID = 1


def fine_due_for(row: EMISchedule, today: date) -> int:
    """Fine (paise) currently owed on a single EMI row."""
    if row.fine_waived or not row.fine_amount:
        return 0
    if row.status == "UNPAID":
        return row.fine_amount if row.due_date < today else 0
    if row.status == "PENDING_APPROVAL":
        # locked in when the retailer submitted
        return row.fine_amount
    return 0


def _require_admin(caller: Caller):
    if not caller.is_admin:
        raise ForbiddenError("Forbidden")


def _get_emi(db: Session, emi_id: int) -> EMISchedule:
    row = db.query(EMISchedule).filter(EMISchedule.emi_id == emi_id).first()
    if not row:
        raise NotFoundError("EMI not found")
    return row


def _snapshot(row: EMISchedule) -> dict:
    return {
        "fine_amount": row.fine_amount,
        "fine_waived": row.fine_waived,
        "due_date": row.due_date.isoformat() if row.due_date else None,
    }


# -------------------------------------------------
# Settings
# -------------------------------------------------
def get_fine_settings(db: Session) -> FineSettings:
    row = db.query(FineSettings).filter(FineSettings.id == FINE_SETTINGS_ID).first()
    if row:
        return row

    row = FineSettings(id=FINE_SETTINGS_ID, default_fine_amount=to_paise(DEFAULT_FINE_AMOUNT))
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def update_fine_settings(db: Session, caller: Caller, default_fine_amount: int) -> FineSettings:
    _require_admin(caller)
    if default_fine_amount < 0:
        raise ValidationError("default_fine_amount must be >= 0")

    row = get_fine_settings(db)
    before = {"default_fine_amount": row.default_fine_amount}
    row.default_fine_amount = default_fine_amount
    row.updated_by = caller.caller_id
    record_audit(
        db, caller, "UPDATE_FINE_SETTINGS", "fine_settings", row.id,
        before=before, after={"default_fine_amount": default_fine_amount},
    )
    db.commit()
    db.refresh(row)
    return row


# -------------------------------------------------
# Admin actions on a single EMI row
# -------------------------------------------------
def waive_fine(db: Session, caller: Caller, emi_id: int) -> EMISchedule:
    _require_admin(caller)
    row = _get_emi(db, emi_id)

    if row.status == "APPROVED":
        raise ConflictError("EMI is already paid")

    if row.fine_waived and row.fine_amount == 0:
        return row

    before = _snapshot(row)
    row.fine_amount = 0
    row.fine_waived = True
    record_audit(db, caller, "WAIVE_FINE", "emi_schedule", row.emi_id, before=before, after=_snapshot(row))
    db.commit()
    db.refresh(row)

    logger.info("Fine waived on EMI %s (customer %s)", row.emi_id, row.customer_id)
    return row


def override_emi(
        db: Session,
        caller: Caller,
        emi_id: int,
        fine_amount: Optional[int] = None,
        due_date: Optional[date] = None,
) -> EMISchedule:
    _require_admin(caller)
    if fine_amount is None and due_date is None:
        raise ValidationError("Nothing to update")
    if fine_amount is not None and fine_amount < 0:
        raise ValidationError("fine_amount must be >= 0")

    row = _get_emi(db, emi_id)
    if row.status == "APPROVED":
        raise ConflictError("EMI is already paid")

    before = _snapshot(row)
    if fine_amount is not None:
        row.fine_amount = fine_amount
        row.fine_waived = False
    if due_date is not None:
        row.due_date = due_date

    record_audit(db, caller, "OVERRIDE_EMI", "emi_schedule", row.emi_id, before=before, after=_snapshot(row))
    db.commit()
    db.refresh(row)

    logger.info("EMI %s overridden: %s", row.emi_id, _snapshot(row))
    return row


# -------------------------------------------------
# Scheduled accrual
# -------------------------------------------------
def accrue_overdue_fines(db: Session, caller: Caller, today: Optional[date] = None) -> int:
    """
    Attach the default fine to every overdue UNPAID row that has none yet.

    Waived rows and rows that already carry a fine are left alone.
    Returns the number of rows updated.
    """
    _require_admin(caller)
    today = today or date.today()
    default_fine = get_fine_settings(db).default_fine_amount
    if default_fine <= 0:
        return 0

    candidate_ids = [
        r.emi_id
        for r in (
            db.query(EMISchedule.emi_id)
            .join(Customer, Customer.customer_id == EMISchedule.customer_id)
            .filter(
                Customer.status == "RUNNING",
                EMISchedule.status == "UNPAID",
                EMISchedule.due_date < today,
                EMISchedule.fine_amount == 0,
                EMISchedule.fine_waived.is_(False),
            )
            .all()
        )
    ]
    if not candidate_ids:
        return 0

    try:
        updated = (
            db.query(EMISchedule)
            .filter(
                EMISchedule.emi_id.in_(candidate_ids),
                EMISchedule.status == "UNPAID",
                EMISchedule.fine_amount == 0,
                EMISchedule.fine_waived.is_(False),
            )
            .update({EMISchedule.fine_amount: default_fine}, synchronize_session=False)
        )
        record_audit(
            db, caller, "ACCRUE_FINES", "emi_schedule", "*",
            after={"rows": updated, "fine_amount": default_fine, "as_on": today.isoformat()},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Accrued fines on %s overdue EMI rows (as on %s)", updated, today)
    return updated
