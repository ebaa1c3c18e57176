# app/models/payment_request_model.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Index,
    JSON,
    func,
)
from sqlalchemy.orm import relationship

from app.utils.database import Base


class PaymentRequest(Base):
    __tablename__ = "payment_requests"

    __table_args__ = (
        Index("ix_payment_requests_status", "status"),
        Index("ix_payment_requests_retailer_status", "retailer_id", "status"),
    )

    request_id = Column(Integer, primary_key=True, index=True)

    customer_id = Column(
        Integer,
        ForeignKey("customers.customer_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    retailer_id = Column(Integer, ForeignKey("retailers.retailer_id", ondelete="RESTRICT"), nullable=False, index=True)
    submitted_by = Column(String(64), nullable=True)

    # PENDING / APPROVED / REJECTED
    status = Column(String(20), nullable=False, server_default="PENDING")
    mode = Column(String(10), nullable=False)  # CASH / UPI

    # paise
    total_emi_amount = Column(Integer, nullable=False, server_default="0")
    fine_amount = Column(Integer, nullable=False, server_default="0")
    first_emi_charge_amount = Column(Integer, nullable=False, server_default="0")
    total_amount = Column(Integer, nullable=False, server_default="0")

    notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    approved_by = Column(String(64), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(String(64), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)

    selected_emi_nos = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="payment_requests")
    retailer = relationship("Retailer")

    items = relationship(
        "PaymentRequestItem",
        back_populates="payment_request",
        cascade="all, delete-orphan",
        lazy="selectin",
        passive_deletes=True,
    )


class PaymentRequestItem(Base):
    __tablename__ = "payment_request_items"

    item_id = Column(Integer, primary_key=True, index=True)
    request_id = Column(
        Integer,
        ForeignKey("payment_requests.request_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    emi_id = Column(Integer, ForeignKey("emi_schedule.emi_id", ondelete="CASCADE"), nullable=False, index=True)

    emi_no = Column(Integer, nullable=False)
    amount = Column(Integer, nullable=False)  # paise

    payment_request = relationship("PaymentRequest", back_populates="items")
