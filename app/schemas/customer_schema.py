from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from typing import Optional, List

from app.utils.money import to_rupees


def _digits(v: Optional[str], n: int, label: str) -> Optional[str]:
    if v is None:
        return None
    if not (len(v) == n and v.isdigit()):
        raise ValueError(f"{label} must be exactly {n} digits")
    return v


class CustomerBase(BaseModel):
    customer_name: str = Field(min_length=1, max_length=150)
    father_name: Optional[str] = None
    aadhaar: Optional[str] = None
    voter_id: Optional[str] = None
    address: Optional[str] = None
    landmark: Optional[str] = None

    mobile: str
    alternate_number_1: Optional[str] = None
    alternate_number_2: Optional[str] = None

    model_no: Optional[str] = None
    imei: str
    box_no: Optional[str] = None

    customer_photo_url: Optional[str] = None
    aadhaar_front_url: Optional[str] = None
    aadhaar_back_url: Optional[str] = None
    bill_photo_url: Optional[str] = None

    @field_validator(
        "father_name", "aadhaar", "voter_id", "address", "landmark",
        "alternate_number_1", "alternate_number_2", "model_no", "box_no",
        "customer_photo_url", "aadhaar_front_url", "aadhaar_back_url", "bill_photo_url",
        mode="before",
    )
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("customer_name", "mobile", "imei", mode="before")
    def strip_required(cls, v):
        return str(v).strip() if v is not None else v

    @field_validator("imei")
    def check_imei(cls, v):
        return _digits(v, 15, "IMEI")

    @field_validator("aadhaar")
    def check_aadhaar(cls, v):
        return _digits(v, 12, "Aadhaar")

    @field_validator("mobile", "alternate_number_1", "alternate_number_2")
    def check_mobile(cls, v):
        return _digits(v, 10, "Mobile")


class CustomerCreate(CustomerBase):
    retailer_id: int

    purchase_value: float = Field(gt=0)
    down_payment: float = Field(0, ge=0)
    disburse_amount: Optional[float] = Field(None, ge=0)
    purchase_date: date
    emi_due_day: int = Field(ge=1, le=28)
    emi_amount: float = Field(gt=0)
    emi_tenure: int = Field(gt=0, le=120)
    first_emi_charge_amount: float = Field(0, ge=0)


class CustomerUpdate(BaseModel):
    """Partial update; only sent fields change."""

    retailer_id: Optional[int] = None

    customer_name: Optional[str] = Field(None, min_length=1, max_length=150)
    father_name: Optional[str] = None
    aadhaar: Optional[str] = None
    voter_id: Optional[str] = None
    address: Optional[str] = None
    landmark: Optional[str] = None
    mobile: Optional[str] = None
    alternate_number_1: Optional[str] = None
    alternate_number_2: Optional[str] = None
    model_no: Optional[str] = None
    imei: Optional[str] = None
    box_no: Optional[str] = None
    customer_photo_url: Optional[str] = None
    aadhaar_front_url: Optional[str] = None
    aadhaar_back_url: Optional[str] = None
    bill_photo_url: Optional[str] = None

    purchase_value: Optional[float] = Field(None, gt=0)
    down_payment: Optional[float] = Field(None, ge=0)
    disburse_amount: Optional[float] = Field(None, ge=0)
    purchase_date: Optional[date] = None
    emi_due_day: Optional[int] = Field(None, ge=1, le=28)
    emi_amount: Optional[float] = Field(None, gt=0)
    emi_tenure: Optional[int] = Field(None, gt=0, le=120)
    first_emi_charge_amount: Optional[float] = Field(None, ge=0)

    class Config:
        extra = "forbid"

    @field_validator("imei")
    def check_imei(cls, v):
        return _digits(v, 15, "IMEI")

    @field_validator("aadhaar")
    def check_aadhaar(cls, v):
        return _digits(v, 12, "Aadhaar")

    @field_validator("mobile", "alternate_number_1", "alternate_number_2")
    def check_mobile(cls, v):
        return _digits(v, 10, "Mobile")


class CompleteCustomerIn(BaseModel):
    remark: Optional[str] = None


class CustomerLoginIn(BaseModel):
    aadhaar: Optional[str] = None
    mobile: Optional[str] = None


# ----------------------------
# Output
# ----------------------------
class EMIOut(BaseModel):
    emi_id: int
    customer_id: int
    emi_no: int
    due_date: date
    amount: float
    status: str
    paid_at: Optional[datetime] = None
    mode: Optional[str] = None
    approved_by: Optional[str] = None
    collected_by_role: Optional[str] = None
    fine_amount: float
    fine_waived: bool

    @classmethod
    def from_row(cls, e) -> "EMIOut":
        return cls(
            emi_id=e.emi_id,
            customer_id=e.customer_id,
            emi_no=e.emi_no,
            due_date=e.due_date,
            amount=to_rupees(e.amount),
            status=e.status,
            paid_at=e.paid_at,
            mode=e.mode,
            approved_by=e.approved_by,
            collected_by_role=e.collected_by_role,
            fine_amount=to_rupees(e.fine_amount),
            fine_waived=bool(e.fine_waived),
        )


class CustomerOut(BaseModel):
    customer_id: int
    retailer_id: int
    retailer_name: Optional[str] = None

    customer_name: str
    father_name: Optional[str] = None
    aadhaar: Optional[str] = None
    voter_id: Optional[str] = None
    address: Optional[str] = None
    landmark: Optional[str] = None
    mobile: str
    alternate_number_1: Optional[str] = None
    alternate_number_2: Optional[str] = None

    model_no: Optional[str] = None
    imei: str
    box_no: Optional[str] = None

    purchase_value: float
    down_payment: float
    disburse_amount: Optional[float] = None
    purchase_date: date
    emi_due_day: int
    emi_amount: float
    emi_tenure: int
    first_emi_charge_amount: float
    first_emi_charge_paid_at: Optional[datetime] = None

    customer_photo_url: Optional[str] = None
    aadhaar_front_url: Optional[str] = None
    aadhaar_back_url: Optional[str] = None
    bill_photo_url: Optional[str] = None

    status: str
    completion_remark: Optional[str] = None
    completion_date: Optional[date] = None

    @classmethod
    def from_row(cls, c) -> "CustomerOut":
        return cls(
            customer_id=c.customer_id,
            retailer_id=c.retailer_id,
            retailer_name=c.retailer.name if c.retailer else None,
            customer_name=c.customer_name,
            father_name=c.father_name,
            aadhaar=c.aadhaar,
            voter_id=c.voter_id,
            address=c.address,
            landmark=c.landmark,
            mobile=c.mobile,
            alternate_number_1=c.alternate_number_1,
            alternate_number_2=c.alternate_number_2,
            model_no=c.model_no,
            imei=c.imei,
            box_no=c.box_no,
            purchase_value=to_rupees(c.purchase_value),
            down_payment=to_rupees(c.down_payment),
            disburse_amount=to_rupees(c.disburse_amount) if c.disburse_amount is not None else None,
            purchase_date=c.purchase_date,
            emi_due_day=c.emi_due_day,
            emi_amount=to_rupees(c.emi_amount),
            emi_tenure=c.emi_tenure,
            first_emi_charge_amount=to_rupees(c.first_emi_charge_amount),
            first_emi_charge_paid_at=c.first_emi_charge_paid_at,
            customer_photo_url=c.customer_photo_url,
            aadhaar_front_url=c.aadhaar_front_url,
            aadhaar_back_url=c.aadhaar_back_url,
            bill_photo_url=c.bill_photo_url,
            status=c.status,
            completion_remark=c.completion_remark,
            completion_date=c.completion_date,
        )


class DueBreakdownOut(BaseModel):
    customer_id: int
    customer_status: str
    next_emi_id: Optional[int] = None
    next_emi_no: Optional[int] = None
    next_emi_amount: Optional[float] = None
    next_emi_due_date: Optional[date] = None
    next_emi_status: Optional[str] = None
    fine_due: float
    first_emi_charge_due: float
    total_payable: float
    popup_first_emi_charge: bool
    popup_fine_due: bool
    is_overdue: bool

    @classmethod
    def from_breakdown(cls, b) -> "DueBreakdownOut":
        return cls(
            customer_id=b.customer_id,
            customer_status=b.customer_status,
            next_emi_id=b.next_emi_id,
            next_emi_no=b.next_emi_no,
            next_emi_amount=to_rupees(b.next_emi_amount) if b.next_emi_amount is not None else None,
            next_emi_due_date=b.next_emi_due_date,
            next_emi_status=b.next_emi_status,
            fine_due=to_rupees(b.fine_due),
            first_emi_charge_due=to_rupees(b.first_emi_charge_due),
            total_payable=to_rupees(b.total_payable),
            popup_first_emi_charge=b.popup_first_emi_charge,
            popup_fine_due=b.popup_fine_due,
            is_overdue=b.is_overdue,
        )


class CustomerDetailOut(BaseModel):
    customer: CustomerOut
    emis: List[EMIOut]
    breakdown: DueBreakdownOut


class SelfServiceCustomerOut(BaseModel):
    """What a customer sees about themself; no internal retailer ids."""

    customer_id: int
    customer_name: str
    father_name: Optional[str] = None
    aadhaar: Optional[str] = None
    mobile: str
    alternate_number_1: Optional[str] = None
    alternate_number_2: Optional[str] = None
    model_no: Optional[str] = None
    imei: str
    purchase_value: float
    down_payment: float
    disburse_amount: Optional[float] = None
    purchase_date: date
    emi_due_day: int
    emi_amount: float
    emi_tenure: int
    first_emi_charge_amount: float
    first_emi_charge_paid_at: Optional[datetime] = None
    customer_photo_url: Optional[str] = None
    status: str
    retailer_name: Optional[str] = None

    @classmethod
    def from_row(cls, c) -> "SelfServiceCustomerOut":
        full = CustomerOut.from_row(c)
        return cls(**full.model_dump(include=set(cls.model_fields)))


class SelfServiceOut(BaseModel):
    customer: SelfServiceCustomerOut
    emis: List[EMIOut]
    breakdown: DueBreakdownOut


class NocOut(BaseModel):
    customer: CustomerOut
    paid_emis: List[EMIOut]
    total_paid: float
    issued_on: date
