# app/routers/retailers_router.py

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, IntegrityError, NotFoundError
from app.core.security import Caller, get_current_caller, require_admin
from app.models.customer_model import Customer
from app.models.payment_request_model import PaymentRequest
from app.models.retailer_model import Retailer
from app.services.audit import record_audit
from app.utils.database import get_db

from app.schemas.retailer_schema import RetailerCreate, RetailerUpdate, RetailerOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/retailers", tags=["Retailers"])


def _get_retailer(db: Session, retailer_id: int) -> Retailer:
    r = db.query(Retailer).filter(Retailer.retailer_id == retailer_id).first()
    if not r:
        raise NotFoundError("Retailer not found")
    return r


# ===========================
# LIST / ME
# ===========================
@router.get("", response_model=List[RetailerOut])
def list_retailers(
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    rows = db.query(Retailer).order_by(Retailer.name.asc()).all()
    return [RetailerOut.from_row(r) for r in rows]


@router.get("/me", response_model=RetailerOut)
def my_profile(
        caller: Caller = Depends(get_current_caller),
        db: Session = Depends(get_db),
):
    if not caller.is_retailer:
        raise NotFoundError("Retailer profile not found")
    return RetailerOut.from_row(_get_retailer(db, caller.retailer_id))


# ===========================
# CREATE
# ===========================
@router.post("", response_model=RetailerOut, status_code=status.HTTP_201_CREATED)
def create_retailer(
        payload: RetailerCreate,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    # 1) unique login subject + username
    clash = (
        db.query(Retailer.retailer_id)
        .filter((Retailer.auth_user_id == payload.auth_user_id) | (Retailer.username == payload.username))
        .first()
    )
    if clash:
        raise IntegrityError("Retailer with this login or username already exists")

    # 2) create
    r = Retailer(
        auth_user_id=payload.auth_user_id,
        name=payload.name,
        username=payload.username,
        retail_pin=payload.retail_pin,
        is_active=True,
    )
    db.add(r)
    db.flush()
    record_audit(db, caller, "CREATE_RETAILER", "retailers", r.retailer_id, after={"username": r.username})
    db.commit()
    db.refresh(r)

    logger.info("Retailer %s (%s) created", r.retailer_id, r.username)
    return RetailerOut.from_row(r)


# ===========================
# UPDATE
# ===========================
@router.patch("/{retailer_id}", response_model=RetailerOut)
def update_retailer(
        retailer_id: int,
        payload: RetailerUpdate,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    r = _get_retailer(db, retailer_id)
    data = payload.model_dump(exclude_unset=True)

    before = {"name": r.name, "is_active": r.is_active, "has_pin": bool(r.retail_pin)}
    if data.get("name"):
        r.name = data["name"].strip()
    if "retail_pin" in data:
        r.retail_pin = data["retail_pin"]
    if data.get("is_active") is not None:
        r.is_active = data["is_active"]

    # pin value never goes into the audit trail
    after = {"name": r.name, "is_active": r.is_active, "has_pin": bool(r.retail_pin)}
    record_audit(db, caller, "UPDATE_RETAILER", "retailers", retailer_id, before=before, after=after)
    db.commit()
    db.refresh(r)
    return RetailerOut.from_row(r)


# ===========================
# DELETE
# ===========================
@router.delete("/{retailer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_retailer(
        retailer_id: int,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    r = _get_retailer(db, retailer_id)

    assigned = db.query(Customer.customer_id).filter(Customer.retailer_id == retailer_id).count()
    if assigned:
        raise ConflictError(f"Retailer still has {assigned} customer(s) assigned")

    history = db.query(PaymentRequest.request_id).filter(PaymentRequest.retailer_id == retailer_id).count()
    if history:
        raise ConflictError("Retailer has payment history; deactivate instead")

    record_audit(db, caller, "DELETE_RETAILER", "retailers", retailer_id, before={"username": r.username})
    db.delete(r)
    db.commit()
    return
