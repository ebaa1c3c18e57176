# app/models/retailer_model.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from sqlalchemy.orm import relationship

from app.utils.database import Base


class Retailer(Base):
    __tablename__ = "retailers"

    retailer_id = Column(Integer, primary_key=True, index=True)

    # subject claim issued by the identity provider for this retailer's login
    auth_user_id = Column(String(64), unique=True, nullable=False, index=True)

    name = Column(String(120), nullable=False)
    username = Column(String(60), unique=True, nullable=False)

    # second factor for payment submission, independent of the login password
    retail_pin = Column(String(12), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, server_default="true")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    customers = relationship("Customer", back_populates="retailer")

    def __repr__(self) -> str:
        return f"<Retailer(id={self.retailer_id}, username={self.username})>"
