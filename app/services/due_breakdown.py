from dataclasses import dataclass, asdict
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.customer_model import Customer
from app.models.emi_schedule_model import EMISchedule
from app.services.fine_policy import fine_due_for


@dataclass
class DueBreakdown:
    """What a customer owes right now. Amounts in paise."""

    customer_id: int
    customer_status: str
    next_emi_id: Optional[int] = None
    next_emi_no: Optional[int] = None
    next_emi_amount: Optional[int] = None
    next_emi_due_date: Optional[date] = None
    next_emi_status: Optional[str] = None
    fine_due: int = 0
    first_emi_charge_due: int = 0
    total_payable: int = 0
    popup_first_emi_charge: bool = False
    popup_fine_due: bool = False
    is_overdue: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


def first_emi_charge_due_for(customer: Customer) -> int:
    if customer.first_emi_charge_paid_at is not None:
        return 0
    return customer.first_emi_charge_amount or 0


def compute_due_breakdown(
        customer: Customer,
        emis: Iterable[EMISchedule],
        today: date,
) -> DueBreakdown:
    """
    Pure: no queries, no writes.

    1. COMPLETE customer  -> nothing payable.
    2. next row           -> lowest emi_no not APPROVED; none => all settled.
    3. fine               -> stored per-row fine (see fine_due_for).
    4. first EMI charge   -> until first_emi_charge_paid_at is stamped.
    5. total              -> next EMI + fine + first charge.
    """
    out = DueBreakdown(customer_id=customer.customer_id, customer_status=customer.status)

    if customer.status == "COMPLETE":
        return out

    open_rows = sorted((e for e in emis if e.status != "APPROVED"), key=lambda e: e.emi_no)
    if not open_rows:
        return out

    nxt = open_rows[0]
    out.next_emi_id = nxt.emi_id
    out.next_emi_no = nxt.emi_no
    out.next_emi_amount = nxt.amount
    out.next_emi_due_date = nxt.due_date
    out.next_emi_status = nxt.status

    out.is_overdue = nxt.status == "UNPAID" and nxt.due_date < today
    out.fine_due = fine_due_for(nxt, today)
    out.first_emi_charge_due = first_emi_charge_due_for(customer)

    out.total_payable = nxt.amount + out.fine_due + out.first_emi_charge_due

    out.popup_fine_due = out.fine_due > 0
    out.popup_first_emi_charge = out.first_emi_charge_due > 0 and nxt.emi_no == 1
    return out


def get_due_breakdown(db: Session, customer_id: int, today: Optional[date] = None) -> DueBreakdown:
    customer = db.query(Customer).filter(Customer.customer_id == customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found")

    emis = (
        db.query(EMISchedule)
        .filter(EMISchedule.customer_id == customer_id)
        .order_by(EMISchedule.emi_no.asc())
        .all()
    )
    return compute_due_breakdown(customer, emis, today or date.today())
