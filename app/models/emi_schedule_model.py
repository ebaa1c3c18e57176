from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Boolean, ForeignKey, UniqueConstraint, func
)
from sqlalchemy.orm import relationship
from app.utils.database import Base


class EMISchedule(Base):
    __tablename__ = "emi_schedule"
    __table_args__ = (
        UniqueConstraint("customer_id", "emi_no", name="uq_emi_schedule_customer_emi_no"),
    )

    emi_id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(
        Integer,
        ForeignKey("customers.customer_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    emi_no = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # paise

    # UNPAID / PENDING_APPROVAL / APPROVED
    status = Column(String(20), nullable=False, default="UNPAID", server_default="UNPAID", index=True)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    mode = Column(String(10), nullable=True)  # CASH / UPI
    approved_by = Column(String(64), nullable=True)
    collected_by_role = Column(String(20), nullable=True)  # admin / retailer

    fine_amount = Column(Integer, nullable=False, default=0, server_default="0")  # paise
    fine_waived = Column(Boolean, nullable=False, default=False, server_default="false")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="emis")
