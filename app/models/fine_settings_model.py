from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from app.utils.database import Base


class FineSettings(Base):
    """Singleton row (id=1)."""

    __tablename__ = "fine_settings"

    id = Column(Integer, primary_key=True)
    default_fine_amount = Column(Integer, nullable=False, server_default="0")  # paise

    updated_by = Column(String(64), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
