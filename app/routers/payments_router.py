from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.core.security import Caller, get_current_caller, require_admin, require_retailer
from app.utils.database import get_db
from app.services import payment_requests as svc

from app.schemas.payment_schema import (
    PaymentSubmitIn,
    DirectPaymentIn,
    ApproveIn,
    RejectIn,
    RequestIdOut,
    SuccessOut,
    PaymentRequestOut,
    PendingCountOut,
)

router = APIRouter(prefix="/payments", tags=["Payments"])


# =================================================
# 🔹 STATE TRANSITIONS
# =================================================
@router.post("/submit", response_model=RequestIdOut)
def submit_payment(
        payload: PaymentSubmitIn,
        caller: Caller = Depends(require_retailer),
        db: Session = Depends(get_db),
):
    req = svc.submit_payment_request(
        db,
        caller,
        customer_id=payload.customer_id,
        emi_ids=payload.emi_ids,
        mode=payload.mode,
        retail_pin=payload.retail_pin,
        notes=payload.notes,
        amounts=payload.amounts_paise(),
    )
    return RequestIdOut(request_id=req.request_id)


@router.post("/approve", response_model=SuccessOut)
def approve_payment(
        payload: ApproveIn,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    svc.approve_payment_request(db, caller, payload.request_id, remark=payload.remark)
    return SuccessOut()


@router.post("/reject", response_model=SuccessOut)
def reject_payment(
        payload: RejectIn,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    svc.reject_payment_request(db, caller, payload.request_id, reason=payload.reason)
    return SuccessOut()


@router.post("/approve-direct", response_model=RequestIdOut)
def approve_direct(
        payload: DirectPaymentIn,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    req = svc.direct_approve_payment(
        db,
        caller,
        customer_id=payload.customer_id,
        emi_ids=payload.emi_ids,
        mode=payload.mode,
        notes=payload.notes,
        amounts=payload.amounts_paise(),
    )
    return RequestIdOut(request_id=req.request_id)


# =================================================
# 🔹 READS (STATIC FIRST)
# =================================================
@router.get("/pending-count", response_model=PendingCountOut)
def pending_count(
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    return PendingCountOut(pending=svc.count_pending(db))


@router.get("", response_model=list[PaymentRequestOut])
def list_payments(
        status: Optional[str] = Query(None),
        customer_id: Optional[int] = Query(None),
        retailer_id: Optional[int] = Query(None),
        limit: int = 50,
        offset: int = 0,
        caller: Caller = Depends(get_current_caller),
        db: Session = Depends(get_db),
):
    rows = svc.list_payment_requests(
        db, caller,
        status=status, customer_id=customer_id, retailer_id=retailer_id,
        limit=limit, offset=offset,
    )
    return [PaymentRequestOut.from_row(r) for r in rows]


@router.get("/{request_id}", response_model=PaymentRequestOut)
def get_payment(
        request_id: int,
        caller: Caller = Depends(get_current_caller),
        db: Session = Depends(get_db),
):
    return PaymentRequestOut.from_row(svc.get_payment_request(db, caller, request_id))
