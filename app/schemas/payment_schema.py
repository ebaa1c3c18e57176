from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Dict

from app.utils.money import to_paise, to_rupees


class PaymentAmountsIn(BaseModel):
    """
    Client-side breakdown (rupees). Optional: the server computes its own
    amounts and rejects a mismatch.
    """

    total_emi_amount: Optional[float] = Field(None, ge=0)
    fine_amount: Optional[float] = Field(None, ge=0)
    first_emi_charge_amount: Optional[float] = Field(None, ge=0)
    total_amount: Optional[float] = Field(None, ge=0)

    def amounts_paise(self) -> Dict[str, Optional[int]]:
        return {
            k: (to_paise(v) if v is not None else None)
            for k, v in (
                ("total_emi_amount", self.total_emi_amount),
                ("fine_amount", self.fine_amount),
                ("first_emi_charge_amount", self.first_emi_charge_amount),
                ("total_amount", self.total_amount),
            )
        }


class PaymentSubmitIn(PaymentAmountsIn):
    customer_id: Optional[int] = None
    emi_ids: Optional[List[int]] = None
    mode: Optional[str] = None
    notes: Optional[str] = None
    retail_pin: Optional[str] = None

    @field_validator("notes", mode="before")
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("mode", mode="before")
    def upper_mode(cls, v):
        return str(v).strip().upper() if v else None


class DirectPaymentIn(PaymentAmountsIn):
    customer_id: Optional[int] = None
    emi_ids: Optional[List[int]] = None
    mode: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("notes", mode="before")
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("mode", mode="before")
    def upper_mode(cls, v):
        return str(v).strip().upper() if v else None


class ApproveIn(BaseModel):
    request_id: int
    remark: Optional[str] = None


class RejectIn(BaseModel):
    request_id: int
    reason: Optional[str] = None


class RequestIdOut(BaseModel):
    success: bool = True
    request_id: int


class SuccessOut(BaseModel):
    success: bool = True


class PaymentRequestItemOut(BaseModel):
    item_id: int
    emi_id: int
    emi_no: int
    amount: float


class PaymentRequestOut(BaseModel):
    request_id: int
    customer_id: int
    retailer_id: int
    submitted_by: Optional[str] = None
    status: str
    mode: str

    total_emi_amount: float
    fine_amount: float
    first_emi_charge_amount: float
    total_amount: float

    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    selected_emi_nos: Optional[List[int]] = None
    created_at: Optional[datetime] = None

    items: List[PaymentRequestItemOut] = []

    @classmethod
    def from_row(cls, r) -> "PaymentRequestOut":
        return cls(
            request_id=r.request_id,
            customer_id=r.customer_id,
            retailer_id=r.retailer_id,
            submitted_by=r.submitted_by,
            status=r.status,
            mode=r.mode,
            total_emi_amount=to_rupees(r.total_emi_amount),
            fine_amount=to_rupees(r.fine_amount),
            first_emi_charge_amount=to_rupees(r.first_emi_charge_amount),
            total_amount=to_rupees(r.total_amount),
            notes=r.notes,
            rejection_reason=r.rejection_reason,
            approved_by=r.approved_by,
            approved_at=r.approved_at,
            rejected_by=r.rejected_by,
            rejected_at=r.rejected_at,
            selected_emi_nos=r.selected_emi_nos,
            created_at=r.created_at,
            items=[
                PaymentRequestItemOut(
                    item_id=i.item_id,
                    emi_id=i.emi_id,
                    emi_no=i.emi_no,
                    amount=to_rupees(i.amount),
                )
                for i in r.items
            ],
        )


class PendingCountOut(BaseModel):
    pending: int
