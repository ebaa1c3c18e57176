from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional


def _check_pin(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if not v:
        return None
    if not (v.isdigit() and 4 <= len(v) <= 8):
        raise ValueError("retail_pin must be 4-8 digits")
    return v


class RetailerCreate(BaseModel):
    auth_user_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=120)
    username: str = Field(..., min_length=1, max_length=60)
    retail_pin: Optional[str] = None

    @field_validator("auth_user_id", "name")
    def strip_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("username")
    def lower_username(cls, v):
        return v.strip().lower()

    @field_validator("retail_pin")
    def check_pin(cls, v):
        return _check_pin(v)


class RetailerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    retail_pin: Optional[str] = None
    is_active: Optional[bool] = None

    class Config:
        extra = "forbid"

    @field_validator("retail_pin")
    def check_pin(cls, v):
        return _check_pin(v)


class RetailerOut(BaseModel):
    retailer_id: int
    auth_user_id: str
    name: str
    username: str
    is_active: bool
    has_pin: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_row(cls, r) -> "RetailerOut":
        return cls(
            retailer_id=r.retailer_id,
            auth_user_id=r.auth_user_id,
            name=r.name,
            username=r.username,
            is_active=bool(r.is_active),
            has_pin=bool(r.retail_pin),
            created_at=r.created_at,
        )
