from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette import status

from app.core.security import Caller, ensure_customer_access, get_current_caller, require_admin
from app.utils.database import get_db
from app.utils.money import to_rupees
from app.services import customers as svc
from app.services.due_breakdown import get_due_breakdown

from app.schemas.customer_schema import (
    CustomerCreate,
    CustomerUpdate,
    CustomerOut,
    CustomerDetailOut,
    CompleteCustomerIn,
    DueBreakdownOut,
    EMIOut,
    NocOut,
)

router = APIRouter(prefix="/customers", tags=["Customers"])


def _detail(customer, emis, breakdown) -> CustomerDetailOut:
    return CustomerDetailOut(
        customer=CustomerOut.from_row(customer),
        emis=[EMIOut.from_row(e) for e in emis],
        breakdown=DueBreakdownOut.from_breakdown(breakdown),
    )


# =================================================
# 🔹 STATIC ROUTES (ALWAYS FIRST)
# =================================================
@router.post("", response_model=CustomerDetailOut, status_code=status.HTTP_201_CREATED)
def create_customer(
        payload: CustomerCreate,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    customer = svc.create_customer(db, caller, payload)
    return _detail(*svc.get_customer_detail(db, caller, customer.customer_id))


@router.get("/search", response_model=list[CustomerOut])
def search_customers(
        q: str = Query(..., min_length=1),
        caller: Caller = Depends(get_current_caller),
        db: Session = Depends(get_db),
):
    return [CustomerOut.from_row(c) for c in svc.search_customers(db, caller, q)]


# =================================================
# 🔹 DYNAMIC ROUTES (LAST)
# =================================================
@router.get("/{customer_id}", response_model=CustomerDetailOut)
def get_customer(
        customer_id: int,
        caller: Caller = Depends(get_current_caller),
        db: Session = Depends(get_db),
):
    return _detail(*svc.get_customer_detail(db, caller, customer_id))


@router.get("/{customer_id}/breakdown", response_model=DueBreakdownOut)
def customer_breakdown(
        customer_id: int,
        caller: Caller = Depends(get_current_caller),
        db: Session = Depends(get_db),
):
    if caller.is_retailer:
        ensure_customer_access(caller, svc.get_customer(db, customer_id))
    return DueBreakdownOut.from_breakdown(get_due_breakdown(db, customer_id))


@router.patch("/{customer_id}", response_model=CustomerDetailOut)
def update_customer(
        customer_id: int,
        payload: CustomerUpdate,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    svc.update_customer(db, caller, customer_id, payload)
    return _detail(*svc.get_customer_detail(db, caller, customer_id))


@router.post("/{customer_id}/complete", response_model=CustomerOut)
def complete_customer(
        customer_id: int,
        payload: CompleteCustomerIn,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    return CustomerOut.from_row(svc.complete_customer(db, caller, customer_id, payload.remark))


@router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_customer(
        customer_id: int,
        reason: str = Query(""),
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    svc.delete_customer(db, caller, customer_id, reason)
    return


@router.get("/{customer_id}/noc", response_model=NocOut)
def customer_noc(
        customer_id: int,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    customer, paid, total_paid = svc.noc_data(db, caller, customer_id)
    return NocOut(
        customer=CustomerOut.from_row(customer),
        paid_emis=[EMIOut.from_row(e) for e in paid],
        total_paid=to_rupees(total_paid),
        issued_on=date.today(),
    )
