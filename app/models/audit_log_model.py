from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON
)
from sqlalchemy.sql import func
from app.utils.database import Base


class AuditLog(Base):
    """Append-only; rows are never updated or deleted."""

    __tablename__ = "audit_log"

    audit_id = Column(Integer, primary_key=True, index=True)

    actor_user_id = Column(String(64), nullable=False, index=True)
    actor_role = Column(String(20), nullable=False)

    # APPROVE_PAYMENT / REJECT_PAYMENT / DIRECT_PAYMENT / WAIVE_FINE / ...
    action = Column(String(40), nullable=False, index=True)

    table_name = Column(String(50), nullable=False)
    record_id = Column(String(64), nullable=False)

    before_data = Column(JSON, nullable=True)
    after_data = Column(JSON, nullable=True)
    remark = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
