"""
Payment request lifecycle.

    retailer submit          admin approve
  UNPAID ------> PENDING_APPROVAL ------> APPROVED      (EMI rows)
                 PENDING  ----------------> APPROVED    (request)
                    |
                    +---- admin reject ---> REJECTED    (request; EMI rows back to UNPAID)

Admin direct-approve writes an APPROVED request in one step.

Every transition is a single transaction guarded by conditional UPDATEs, so
of two racing callers exactly one wins and the other sees a conflict /
"not pending" error without having written anything.
"""

import hmac
import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.config import AMOUNT_TOLERANCE_PAISE
from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.core.security import Caller, ensure_customer_access
from app.models.customer_model import Customer
from app.models.emi_schedule_model import EMISchedule
from app.models.payment_request_model import PaymentRequest, PaymentRequestItem
from app.models.retailer_model import Retailer
from app.services.audit import record_audit
from app.services.due_breakdown import first_emi_charge_due_for
from app.services.fine_policy import fine_due_for
from app.utils.money import to_rupees

logger = logging.getLogger(__name__)

PAYMENT_MODES = ("CASH", "UPI")
AMOUNT_KEYS = ("total_emi_amount", "fine_amount", "first_emi_charge_amount", "total_amount")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# -------------------------------------------------
# Helpers
# -------------------------------------------------
def _validate_common(customer_id, emi_ids, mode):
    if not customer_id or not emi_ids or not mode:
        raise ValidationError("Missing required fields")
    if mode not in PAYMENT_MODES:
        raise ValidationError(f"mode must be one of {', '.join(PAYMENT_MODES)}")


def _load_customer(db: Session, customer_id: int) -> Customer:
    customer = db.query(Customer).filter(Customer.customer_id == customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found")
    if customer.status != "RUNNING":
        raise InvalidStateError("Customer account is already complete")
    return customer


def _load_target_emis(db: Session, customer_id: int, emi_ids: Sequence[int]) -> List[EMISchedule]:
    ids = list(dict.fromkeys(emi_ids))
    rows = (
        db.query(EMISchedule)
        .filter(EMISchedule.emi_id.in_(ids), EMISchedule.customer_id == customer_id)
        .order_by(EMISchedule.emi_no.asc())
        .all()
    )
    if len(rows) != len(ids):
        raise NotFoundError("EMI not found for this customer")
    return rows


def _first_charge_in_flight(db: Session, customer_id: int) -> bool:
    return (
        db.query(PaymentRequest.request_id)
        .filter(
            PaymentRequest.customer_id == customer_id,
            PaymentRequest.status == "PENDING",
            PaymentRequest.first_emi_charge_amount > 0,
        )
        .first()
        is not None
    )


def compute_expected_amounts(
        customer: Customer,
        rows: Sequence[EMISchedule],
        today: date,
        first_charge_pending: bool = False,
) -> Dict[str, int]:
    """
    Server-side amounts (paise) for settling `rows` today.

    first_charge_pending: another PENDING request already carries the
    first EMI charge, so it is not asked for twice.
    """
    total_emi = sum(r.amount for r in rows)
    fine = sum(fine_due_for(r, today) for r in rows)
    first_charge = 0 if first_charge_pending else first_emi_charge_due_for(customer)
    return {
        "total_emi_amount": total_emi,
        "fine_amount": fine,
        "first_emi_charge_amount": first_charge,
        "total_amount": total_emi + fine + first_charge,
    }


def reconcile_amounts(expected: Dict[str, int], supplied: Optional[Dict[str, Optional[int]]]) -> None:
    """
    Compare client-sent amounts with the server's. Missing values are
    accepted as-is; anything off by more than the tolerance is rejected.
    """
    if not supplied:
        return
    for key in AMOUNT_KEYS:
        value = supplied.get(key)
        if value is None:
            continue
        if abs(value - expected[key]) > AMOUNT_TOLERANCE_PAISE:
            raise ValidationError(
                f"Amount mismatch for {key}: expected {to_rupees(expected[key]):.2f}, "
                f"got {to_rupees(value):.2f}"
            )


def _check_request_totals(req: PaymentRequest) -> None:
    items_total = sum(i.amount for i in req.items)
    if items_total != req.total_emi_amount:
        raise ValidationError("Request items do not add up to total_emi_amount")
    if req.total_amount != req.total_emi_amount + req.fine_amount + req.first_emi_charge_amount:
        raise ValidationError("Request total_amount does not match its components")


def _add_items(db: Session, req: PaymentRequest, rows: Sequence[EMISchedule]) -> None:
    for r in rows:
        db.add(
            PaymentRequestItem(
                request_id=req.request_id,
                emi_id=r.emi_id,
                emi_no=r.emi_no,
                amount=r.amount,
            )
        )


def _stamp_first_charge(db: Session, customer_id: int, when: datetime) -> int:
    # only the first approval that carries the charge stamps it
    return (
        db.query(Customer)
        .filter(Customer.customer_id == customer_id, Customer.first_emi_charge_paid_at.is_(None))
        .update({Customer.first_emi_charge_paid_at: when}, synchronize_session=False)
    )


def _get_request(db: Session, request_id: int) -> PaymentRequest:
    req = db.query(PaymentRequest).filter(PaymentRequest.request_id == request_id).first()
    if not req:
        raise NotFoundError("Request not found")
    return req


# -------------------------------------------------
# Submit (retailer)
# -------------------------------------------------
def submit_payment_request(
        db: Session,
        caller: Caller,
        *,
        customer_id: Optional[int],
        emi_ids: Optional[Sequence[int]],
        mode: Optional[str],
        retail_pin: Optional[str],
        notes: Optional[str] = None,
        amounts: Optional[Dict[str, Optional[int]]] = None,
        today: Optional[date] = None,
) -> PaymentRequest:
    if not caller.is_retailer:
        raise ForbiddenError("Only retailers can submit payment requests")

    _validate_common(customer_id, emi_ids, mode)
    if not retail_pin or not retail_pin.strip():
        raise ValidationError("Retailer PIN is required")

    retailer = db.query(Retailer).filter(Retailer.retailer_id == caller.retailer_id).first()
    if not retailer or not retailer.is_active:
        logger.warning("Submit refused: retailer %s inactive", caller.retailer_id)
        raise ForbiddenError("Retailer account is inactive")
    if not retailer.retail_pin or not hmac.compare_digest(
            retailer.retail_pin.encode(), retail_pin.encode()
    ):
        logger.warning("Submit refused: PIN mismatch for retailer %s", retailer.retailer_id)
        raise ForbiddenError("Incorrect Retailer PIN")

    customer = _load_customer(db, customer_id)
    ensure_customer_access(caller, customer)

    rows = _load_target_emis(db, customer.customer_id, emi_ids)
    expected = compute_expected_amounts(
        customer, rows, today or date.today(),
        first_charge_pending=_first_charge_in_flight(db, customer.customer_id),
    )
    reconcile_amounts(expected, amounts)

    ids = [r.emi_id for r in rows]
    emi_nos = [r.emi_no for r in rows]

    try:
        req = PaymentRequest(
            customer_id=customer.customer_id,
            retailer_id=retailer.retailer_id,
            submitted_by=caller.caller_id,
            status="PENDING",
            mode=mode,
            notes=notes,
            selected_emi_nos=emi_nos,
            **expected,
        )
        db.add(req)
        db.flush()
        _add_items(db, req, rows)

        flipped = (
            db.query(EMISchedule)
            .filter(EMISchedule.emi_id.in_(ids), EMISchedule.status == "UNPAID")
            .update({EMISchedule.status: "PENDING_APPROVAL"}, synchronize_session=False)
        )
        if flipped != len(ids):
            raise ConflictError("EMI is not payable: already pending approval or paid")

        db.commit()
    except ConflictError:
        db.rollback()
        logger.warning("Submit conflict on customer %s EMIs %s", customer_id, emi_nos)
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(req)
    logger.info(
        "Payment request %s submitted by retailer %s for customer %s EMIs %s",
        req.request_id, retailer.retailer_id, customer.customer_id, emi_nos,
    )
    return req


# -------------------------------------------------
# Approve (admin, queue)
# -------------------------------------------------
def approve_payment_request(
        db: Session,
        caller: Caller,
        request_id: int,
        remark: Optional[str] = None,
        now: Optional[datetime] = None,
) -> PaymentRequest:
    if not caller.is_admin:
        raise ForbiddenError("Forbidden")

    req = _get_request(db, request_id)
    if req.status != "PENDING":
        logger.warning("Approve refused: request %s is %s", request_id, req.status)
        raise InvalidStateError("Request is not pending")
    _check_request_totals(req)

    now = now or _now()
    remark = (remark or "").strip() or None
    notes = req.notes
    if remark:
        notes = f"{notes}\nRemark: {remark}" if notes else f"Remark: {remark}"

    emi_ids = [i.emi_id for i in req.items]

    try:
        won = (
            db.query(PaymentRequest)
            .filter(PaymentRequest.request_id == request_id, PaymentRequest.status == "PENDING")
            .update(
                {
                    PaymentRequest.status: "APPROVED",
                    PaymentRequest.approved_by: caller.caller_id,
                    PaymentRequest.approved_at: now,
                    PaymentRequest.notes: notes,
                },
                synchronize_session=False,
            )
        )
        if won != 1:
            raise InvalidStateError("Request is not pending")

        credited = (
            db.query(EMISchedule)
            .filter(EMISchedule.emi_id.in_(emi_ids), EMISchedule.status == "PENDING_APPROVAL")
            .update(
                {
                    EMISchedule.status: "APPROVED",
                    EMISchedule.paid_at: now,
                    EMISchedule.mode: req.mode,
                    EMISchedule.approved_by: caller.caller_id,
                    EMISchedule.collected_by_role: "retailer",
                },
                synchronize_session=False,
            )
        )
        if credited != len(emi_ids):
            raise ConflictError("EMI rows of this request are no longer pending approval")

        if req.first_emi_charge_amount > 0:
            _stamp_first_charge(db, req.customer_id, now)

        record_audit(
            db, caller, "APPROVE_PAYMENT", "payment_requests", request_id,
            before={"status": "PENDING"}, after={"status": "APPROVED"}, remark=remark,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(req)
    logger.info("Payment request %s approved by %s", request_id, caller.caller_id)
    return req


# -------------------------------------------------
# Reject (admin)
# -------------------------------------------------
def reject_payment_request(
        db: Session,
        caller: Caller,
        request_id: int,
        reason: Optional[str],
        now: Optional[datetime] = None,
) -> PaymentRequest:
    if not caller.is_admin:
        raise ForbiddenError("Forbidden")

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required")

    req = _get_request(db, request_id)
    if req.status != "PENDING":
        logger.warning("Reject refused: request %s is %s", request_id, req.status)
        raise InvalidStateError("Request is not pending")

    now = now or _now()
    emi_ids = [i.emi_id for i in req.items]

    try:
        won = (
            db.query(PaymentRequest)
            .filter(PaymentRequest.request_id == request_id, PaymentRequest.status == "PENDING")
            .update(
                {
                    PaymentRequest.status: "REJECTED",
                    PaymentRequest.rejected_by: caller.caller_id,
                    PaymentRequest.rejected_at: now,
                    PaymentRequest.rejection_reason: reason,
                },
                synchronize_session=False,
            )
        )
        if won != 1:
            raise InvalidStateError("Request is not pending")

        # status only: fine_amount / fine_waived stay as they were
        db.query(EMISchedule).filter(
            EMISchedule.emi_id.in_(emi_ids), EMISchedule.status == "PENDING_APPROVAL"
        ).update({EMISchedule.status: "UNPAID"}, synchronize_session=False)

        record_audit(
            db, caller, "REJECT_PAYMENT", "payment_requests", request_id,
            before={"status": "PENDING"}, after={"status": "REJECTED"}, remark=reason,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(req)
    logger.info("Payment request %s rejected by %s: %s", request_id, caller.caller_id, reason)
    return req


# -------------------------------------------------
# Direct approve (admin collects in person)
# -------------------------------------------------
def direct_approve_payment(
        db: Session,
        caller: Caller,
        *,
        customer_id: Optional[int],
        emi_ids: Optional[Sequence[int]],
        mode: Optional[str],
        notes: Optional[str] = None,
        amounts: Optional[Dict[str, Optional[int]]] = None,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
) -> PaymentRequest:
    if not caller.is_admin:
        raise ForbiddenError("Only admins can record direct payments")

    _validate_common(customer_id, emi_ids, mode)

    customer = _load_customer(db, customer_id)
    rows = _load_target_emis(db, customer.customer_id, emi_ids)
    expected = compute_expected_amounts(
        customer, rows, today or date.today(),
        first_charge_pending=_first_charge_in_flight(db, customer.customer_id),
    )
    reconcile_amounts(expected, amounts)

    now = now or _now()
    ids = [r.emi_id for r in rows]
    emi_nos = [r.emi_no for r in rows]

    try:
        req = PaymentRequest(
            customer_id=customer.customer_id,
            retailer_id=customer.retailer_id,
            submitted_by=caller.caller_id,
            status="APPROVED",
            mode=mode,
            notes=notes,
            selected_emi_nos=emi_nos,
            approved_by=caller.caller_id,
            approved_at=now,
            **expected,
        )
        db.add(req)
        db.flush()
        _add_items(db, req, rows)

        credited = (
            db.query(EMISchedule)
            .filter(EMISchedule.emi_id.in_(ids), EMISchedule.status == "UNPAID")
            .update(
                {
                    EMISchedule.status: "APPROVED",
                    EMISchedule.paid_at: now,
                    EMISchedule.mode: mode,
                    EMISchedule.approved_by: caller.caller_id,
                    EMISchedule.collected_by_role: "admin",
                },
                synchronize_session=False,
            )
        )
        if credited != len(ids):
            raise ConflictError("EMI is not payable: already pending approval or paid")

        if expected["first_emi_charge_amount"] > 0:
            _stamp_first_charge(db, customer.customer_id, now)

        record_audit(
            db, caller, "DIRECT_PAYMENT", "payment_requests", req.request_id,
            after={
                "customer_id": customer.customer_id,
                "total_amount": expected["total_amount"],
                "mode": mode,
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(req)
    logger.info(
        "Direct payment %s recorded by %s for customer %s EMIs %s",
        req.request_id, caller.caller_id, customer.customer_id, emi_nos,
    )
    return req


# -------------------------------------------------
# Reads
# -------------------------------------------------
def get_payment_request(db: Session, caller: Caller, request_id: int) -> PaymentRequest:
    req = _get_request(db, request_id)
    if caller.is_retailer and req.retailer_id != caller.retailer_id:
        raise ForbiddenError("Request belongs to another retailer")
    return req


def list_payment_requests(
        db: Session,
        caller: Caller,
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
        retailer_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
) -> List[PaymentRequest]:
    limit = max(1, min(limit, 200))
    offset = max(0, offset)

    q = db.query(PaymentRequest)
    if caller.is_retailer:
        q = q.filter(PaymentRequest.retailer_id == caller.retailer_id)
    elif retailer_id is not None:
        q = q.filter(PaymentRequest.retailer_id == retailer_id)

    if status:
        q = q.filter(PaymentRequest.status == status.upper())
    if customer_id is not None:
        q = q.filter(PaymentRequest.customer_id == customer_id)

    return (
        q.order_by(PaymentRequest.request_id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def count_pending(db: Session) -> int:
    return db.query(PaymentRequest).filter(PaymentRequest.status == "PENDING").count()
