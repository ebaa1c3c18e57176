from datetime import date

from app.core.security import Caller, ROLE_RETAILER, ROLE_SUPER_ADMIN, create_access_token
from app.models.emi_schedule_model import EMISchedule
from app.models.retailer_model import Retailer
from app.schemas.customer_schema import CustomerCreate
from app.services.customers import create_customer

ADMIN = Caller(caller_id="admin-1", role=ROLE_SUPER_ADMIN)


def retailer_caller(retailer: Retailer) -> Caller:
    return Caller(caller_id=retailer.auth_user_id, role=ROLE_RETAILER, retailer_id=retailer.retailer_id)


def auth_header(sub: str, role: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(sub, role)}"}


def admin_header() -> dict:
    return auth_header(ADMIN.caller_id, ROLE_SUPER_ADMIN)


def retailer_header(retailer: Retailer) -> dict:
    return auth_header(retailer.auth_user_id, ROLE_RETAILER)


def make_retailer(db, n: int = 1, pin: str = "1234", is_active: bool = True) -> Retailer:
    r = Retailer(
        auth_user_id=f"ret-{n}",
        name=f"Mobile Shop {n}",
        username=f"shop{n}",
        retail_pin=pin,
        is_active=is_active,
    )
    db.add(r)
    db.commit()
    db.refresh(r)
    return r


def make_customer(db, retailer: Retailer, **overrides):
    data = dict(
        retailer_id=retailer.retailer_id,
        customer_name="Ravi Kumar",
        aadhaar="123412341234",
        mobile="9876543210",
        imei="356938035643809",
        purchase_value=12000,
        down_payment=2000,
        purchase_date=date(2025, 1, 20),
        emi_due_day=5,
        emi_amount=1000,
        emi_tenure=6,
        first_emi_charge_amount=200,
    )
    data.update(overrides)
    return create_customer(db, ADMIN, CustomerCreate(**data))


def emis_of(db, customer_id: int):
    db.expire_all()
    return (
        db.query(EMISchedule)
        .filter(EMISchedule.customer_id == customer_id)
        .order_by(EMISchedule.emi_no.asc())
        .all()
    )
