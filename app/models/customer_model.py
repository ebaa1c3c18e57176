# app/models/customer_model.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Text,
    ForeignKey,
    Index,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.utils.database import Base


class Customer(Base):
    __tablename__ = "customers"

    __table_args__ = (
        Index("ix_customers_retailer_status", "retailer_id", "status"),
        Index("ix_customers_aadhaar_mobile", "aadhaar", "mobile"),
    )

    customer_id = Column(Integer, primary_key=True, index=True)
    retailer_id = Column(Integer, ForeignKey("retailers.retailer_id", ondelete="RESTRICT"), nullable=False, index=True)

    # personal
    customer_name = Column(String(150), nullable=False)
    father_name = Column(String(150), nullable=True)
    aadhaar = Column(String(12), nullable=True, index=True)
    voter_id = Column(String(30), nullable=True)
    address = Column(Text, nullable=True)
    landmark = Column(String(150), nullable=True)

    mobile = Column(String(10), nullable=False)
    alternate_number_1 = Column(String(10), nullable=True)
    alternate_number_2 = Column(String(10), nullable=True)

    # device
    model_no = Column(String(100), nullable=True)
    imei = Column(String(15), unique=True, nullable=False)
    box_no = Column(String(50), nullable=True)

    # finance (all amounts in paise)
    purchase_value = Column(Integer, nullable=False)
    down_payment = Column(Integer, nullable=False, server_default="0")
    disburse_amount = Column(Integer, nullable=True)
    purchase_date = Column(Date, nullable=False)
    emi_due_day = Column(Integer, nullable=False)
    emi_amount = Column(Integer, nullable=False)
    emi_tenure = Column(Integer, nullable=False)

    first_emi_charge_amount = Column(Integer, nullable=False, server_default="0")
    # NULL => first EMI charge not yet collected
    first_emi_charge_paid_at = Column(DateTime(timezone=True), nullable=True)

    # image URLs (hosted elsewhere)
    customer_photo_url = Column(Text, nullable=True)
    aadhaar_front_url = Column(Text, nullable=True)
    aadhaar_back_url = Column(Text, nullable=True)
    bill_photo_url = Column(Text, nullable=True)

    # RUNNING / COMPLETE
    status = Column(String(20), nullable=False, server_default="RUNNING")
    completion_remark = Column(Text, nullable=True)
    completion_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    retailer = relationship("Retailer", back_populates="customers", lazy="joined")

    emis = relationship(
        "EMISchedule",
        back_populates="customer",
        cascade="all, delete-orphan",
        order_by="EMISchedule.emi_no",
        passive_deletes=True,
    )

    payment_requests = relationship(
        "PaymentRequest",
        back_populates="customer",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
