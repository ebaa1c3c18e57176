from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional


class FineSettingsOut(BaseModel):
    default_fine_amount: float
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None


class FineSettingsPatch(BaseModel):
    default_fine_amount: float = Field(..., ge=0)


class EMIOverrideIn(BaseModel):
    fine_amount: Optional[float] = Field(None, ge=0)
    due_date: Optional[date] = None


class AccrueFinesIn(BaseModel):
    as_on: Optional[date] = None


class AccrueFinesOut(BaseModel):
    as_on: date
    rows_updated: int
