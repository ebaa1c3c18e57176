from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.utils.database import get_db
from app.services.customers import customer_self_lookup
from app.schemas.customer_schema import (
    CustomerLoginIn,
    SelfServiceOut,
    SelfServiceCustomerOut,
    EMIOut,
    DueBreakdownOut,
)

router = APIRouter(tags=["Customer Self-Service"])


@router.post("/customer-login", response_model=SelfServiceOut)
def customer_login(payload: CustomerLoginIn, db: Session = Depends(get_db)):
    """
    Read-only view for a customer. No token is issued; every call
    re-checks Aadhaar + mobile against a RUNNING account.
    """
    customer, emis, breakdown = customer_self_lookup(
        db,
        payload.aadhaar,
        payload.mobile,
    )
    return SelfServiceOut(
        customer=SelfServiceCustomerOut.from_row(customer),
        emis=[EMIOut.from_row(e) for e in emis],
        breakdown=DueBreakdownOut.from_breakdown(breakdown),
    )
