import logging
import re
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError as DBIntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AuthError,
    ConflictError,
    ForbiddenError,
    IntegrityError,
    NotFoundError,
    ValidationError,
)
from app.core.security import Caller, ensure_customer_access
from app.models.customer_model import Customer
from app.models.emi_schedule_model import EMISchedule
from app.models.payment_request_model import PaymentRequest, PaymentRequestItem
from app.models.retailer_model import Retailer
from app.services.audit import record_audit
from app.services.due_breakdown import DueBreakdown, compute_due_breakdown
from app.utils.emi_calculations import build_monthly_schedule, derive_disburse_amount
from app.utils.money import to_paise

logger = logging.getLogger(__name__)

MONEY_FIELDS = ("purchase_value", "down_payment", "disburse_amount", "emi_amount", "first_emi_charge_amount")
SCHEDULE_FIELDS = ("purchase_date", "emi_due_day", "emi_amount", "emi_tenure")
REQUIRED_FIELDS = (
    "retailer_id", "customer_name", "mobile", "imei",
    "purchase_value", "down_payment", "first_emi_charge_amount",
) + SCHEDULE_FIELDS


def _require_admin(caller: Caller):
    if not caller.is_admin:
        raise ForbiddenError("Forbidden")


def get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.query(Customer).filter(Customer.customer_id == customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def _get_retailer(db: Session, retailer_id: int) -> Retailer:
    retailer = db.query(Retailer).filter(Retailer.retailer_id == retailer_id).first()
    if not retailer:
        raise NotFoundError("Retailer not found")
    return retailer


def _ensure_imei_free(db: Session, imei: str, customer_id: Optional[int] = None):
    q = db.query(Customer.customer_id).filter(Customer.imei == imei)
    if customer_id is not None:
        q = q.filter(Customer.customer_id != customer_id)
    if q.first():
        raise IntegrityError("IMEI already exists in the system")


def _add_schedule(db: Session, customer: Customer):
    for emi_no, due_date, amount in build_monthly_schedule(
            customer.purchase_date, customer.emi_due_day, customer.emi_amount, customer.emi_tenure
    ):
        db.add(
            EMISchedule(
                customer_id=customer.customer_id,
                emi_no=emi_no,
                due_date=due_date,
                amount=amount,
                status="UNPAID",
                fine_amount=0,
                fine_waived=False,
            )
        )


def _commit_customer(db: Session):
    try:
        db.commit()
    except DBIntegrityError as e:
        db.rollback()
        msg = str(getattr(e, "orig", None) or e)
        if "imei" in msg.lower():
            raise IntegrityError("IMEI already exists in the system")
        raise IntegrityError("Unable to save customer due to database constraints.")
    except Exception:
        db.rollback()
        raise


def _emis(db: Session, customer_id: int) -> List[EMISchedule]:
    return (
        db.query(EMISchedule)
        .filter(EMISchedule.customer_id == customer_id)
        .order_by(EMISchedule.emi_no.asc())
        .all()
    )


# -------------------------------------------------
# Create / update
# -------------------------------------------------
def create_customer(db: Session, caller: Caller, payload) -> Customer:
    """Admin only. Writes the customer and its full EMI schedule."""
    _require_admin(caller)
    _get_retailer(db, payload.retailer_id)
    _ensure_imei_free(db, payload.imei)

    data = payload.model_dump()
    for f in MONEY_FIELDS:
        if data.get(f) is not None:
            data[f] = to_paise(data[f])

    data["disburse_amount"] = derive_disburse_amount(
        data["purchase_value"], data["down_payment"], data.get("disburse_amount")
    )

    customer = Customer(**data, status="RUNNING")
    db.add(customer)
    db.flush()
    _add_schedule(db, customer)
    _commit_customer(db)
    db.refresh(customer)

    logger.info(
        "Customer %s created (IMEI %s, %s EMIs) for retailer %s",
        customer.customer_id, customer.imei, customer.emi_tenure, customer.retailer_id,
    )
    return customer


def update_customer(db: Session, caller: Caller, customer_id: int, payload) -> Customer:
    """
    Admin edit. Changing schedule terms regenerates the EMI rows, which is
    only allowed while no row has been touched (all UNPAID, no fine, no waiver,
    no payment request item pointing at it).
    """
    _require_admin(caller)
    customer = get_customer(db, customer_id)

    data = payload.model_dump(exclude_unset=True)
    for f in MONEY_FIELDS:
        if data.get(f) is not None:
            data[f] = to_paise(data[f])

    if data.get("retailer_id") is not None:
        _get_retailer(db, data["retailer_id"])
    if data.get("imei") is not None:
        _ensure_imei_free(db, data["imei"], customer_id)

    regenerate = any(
        f in data and data[f] is not None and data[f] != getattr(customer, f)
        for f in SCHEDULE_FIELDS
    )
    if regenerate:
        touched = [
            e for e in _emis(db, customer_id)
            if e.status != "UNPAID" or e.fine_amount or e.fine_waived
        ]
        # rejected requests still point at their rows
        referenced = (
            db.query(PaymentRequestItem.item_id)
            .join(EMISchedule, EMISchedule.emi_id == PaymentRequestItem.emi_id)
            .filter(EMISchedule.customer_id == customer_id)
            .first()
        )
        if touched or referenced:
            raise ConflictError("Schedule terms cannot change after payments, requests or fines were recorded")

    for k, v in data.items():
        if v is None and k in REQUIRED_FIELDS:
            continue
        setattr(customer, k, v)

    if "disburse_amount" not in data and ("purchase_value" in data or "down_payment" in data):
        customer.disburse_amount = derive_disburse_amount(customer.purchase_value, customer.down_payment)

    if regenerate:
        db.query(EMISchedule).filter(EMISchedule.customer_id == customer_id).delete(synchronize_session="fetch")
        db.flush()
        _add_schedule(db, customer)

    _commit_customer(db)
    db.refresh(customer)
    logger.info("Customer %s updated (schedule regenerated: %s)", customer_id, regenerate)
    return customer


# -------------------------------------------------
# Lifecycle
# -------------------------------------------------
def complete_customer(db: Session, caller: Caller, customer_id: int, remark: Optional[str]) -> Customer:
    _require_admin(caller)
    remark = (remark or "").strip()
    if not remark:
        raise ValidationError("Completion remark required")

    customer = get_customer(db, customer_id)
    if customer.status == "COMPLETE":
        raise ConflictError("Customer is already complete")

    customer.status = "COMPLETE"
    customer.completion_remark = remark
    customer.completion_date = date.today()
    record_audit(
        db, caller, "COMPLETE_CUSTOMER", "customers", customer_id,
        before={"status": "RUNNING"}, after={"status": "COMPLETE"}, remark=remark,
    )
    db.commit()
    db.refresh(customer)
    logger.info("Customer %s marked COMPLETE", customer_id)
    return customer


def delete_customer(db: Session, caller: Caller, customer_id: int, reason: Optional[str]) -> None:
    """Hard delete: EMI rows, payment requests and their items go too."""
    _require_admin(caller)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Deletion reason required")

    customer = get_customer(db, customer_id)
    snapshot = {"customer_name": customer.customer_name, "imei": customer.imei, "status": customer.status}

    try:
        request_ids = db.query(PaymentRequest.request_id).filter(PaymentRequest.customer_id == customer_id)
        db.query(PaymentRequestItem).filter(
            PaymentRequestItem.request_id.in_(request_ids.scalar_subquery())
        ).delete(synchronize_session=False)
        db.query(PaymentRequest).filter(PaymentRequest.customer_id == customer_id).delete(synchronize_session=False)
        db.query(EMISchedule).filter(EMISchedule.customer_id == customer_id).delete(synchronize_session=False)
        db.query(Customer).filter(Customer.customer_id == customer_id).delete(synchronize_session=False)

        record_audit(db, caller, "DELETE_CUSTOMER", "customers", customer_id, before=snapshot, remark=reason)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Customer %s deleted: %s", customer_id, reason)


# -------------------------------------------------
# Reads
# -------------------------------------------------
def get_customer_detail(
        db: Session, caller: Caller, customer_id: int, today: Optional[date] = None
) -> Tuple[Customer, List[EMISchedule], DueBreakdown]:
    customer = get_customer(db, customer_id)
    ensure_customer_access(caller, customer)
    emis = _emis(db, customer_id)
    return customer, emis, compute_due_breakdown(customer, emis, today or date.today())


def search_customers(db: Session, caller: Caller, query: str, limit: int = 20) -> List[Customer]:
    """
    15 digits -> IMEI, 12 digits -> Aadhaar, anything else -> name contains.
    """
    query = (query or "").strip()
    if len(query) < 3:
        raise ValidationError("Search needs at least 3 characters")

    q = db.query(Customer)
    if caller.is_retailer:
        q = q.filter(Customer.retailer_id == caller.retailer_id)

    if re.fullmatch(r"\d{15}", query):
        q = q.filter(Customer.imei == query)
    elif re.fullmatch(r"\d{12}", query):
        q = q.filter(Customer.aadhaar == query)
    else:
        q = q.filter(Customer.customer_name.ilike(f"%{query}%"))

    return q.order_by(Customer.customer_name.asc()).limit(max(1, min(limit, 20))).all()


def customer_self_lookup(
        db: Session, aadhaar: Optional[str], mobile: Optional[str], today: Optional[date] = None
) -> Tuple[Customer, List[EMISchedule], DueBreakdown]:
    """
    Unauthenticated lookup: holding both numbers is the right to view.
    Both must equal the fields of the same RUNNING customer.
    """
    if not aadhaar or len(aadhaar) != 12 or not aadhaar.isdigit():
        raise ValidationError("Aadhaar must be exactly 12 digits")
    if not mobile or len(mobile) != 10 or not mobile.isdigit():
        raise ValidationError("Mobile must be exactly 10 digits")

    matches = (
        db.query(Customer)
        .filter(Customer.aadhaar == aadhaar, Customer.mobile == mobile, Customer.status == "RUNNING")
        .limit(2)
        .all()
    )
    if len(matches) != 1:
        logger.warning("Customer self-lookup failed (%s matches)", len(matches))
        raise AuthError("No matching customer found. Check your Aadhaar and Mobile number.")

    customer = matches[0]
    emis = _emis(db, customer.customer_id)
    return customer, emis, compute_due_breakdown(customer, emis, today or date.today())


def noc_data(
        db: Session, caller: Caller, customer_id: int, today: Optional[date] = None
) -> Tuple[Customer, List[EMISchedule], int]:
    """NOC is admin-only and blocked while a late fine is outstanding."""
    _require_admin(caller)
    customer = get_customer(db, customer_id)
    emis = _emis(db, customer_id)
    breakdown = compute_due_breakdown(customer, emis, today or date.today())
    if breakdown.fine_due > 0:
        raise ConflictError("Cannot generate NOC while a late fine is outstanding")

    paid = [e for e in emis if e.status == "APPROVED"]
    return customer, paid, sum(e.amount for e in paid)
