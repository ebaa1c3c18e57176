from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.security import Caller, require_admin
from app.utils.database import get_db
from app.utils.money import to_paise
from app.services import fine_policy

from app.schemas.customer_schema import EMIOut
from app.schemas.settings_schema import EMIOverrideIn, AccrueFinesIn, AccrueFinesOut

router = APIRouter(prefix="/emis", tags=["EMI"])


# static first
@router.post("/accrue-fines", response_model=AccrueFinesOut)
def accrue_fines(
        payload: AccrueFinesIn,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    as_on = payload.as_on or date.today()
    updated = fine_policy.accrue_overdue_fines(db, caller, today=as_on)
    return AccrueFinesOut(as_on=as_on, rows_updated=updated)


@router.post("/{emi_id}/waive-fine", response_model=EMIOut)
def waive_fine(
        emi_id: int,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    return EMIOut.from_row(fine_policy.waive_fine(db, caller, emi_id))


@router.patch("/{emi_id}", response_model=EMIOut)
def override_emi(
        emi_id: int,
        payload: EMIOverrideIn,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    row = fine_policy.override_emi(
        db,
        caller,
        emi_id,
        fine_amount=to_paise(payload.fine_amount) if payload.fine_amount is not None else None,
        due_date=payload.due_date,
    )
    return EMIOut.from_row(row)
