from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.security import Caller, get_current_caller, require_admin
from app.utils.database import get_db
from app.utils.money import to_paise, to_rupees
from app.services.fine_policy import get_fine_settings, update_fine_settings
from app.schemas.settings_schema import FineSettingsOut, FineSettingsPatch

router = APIRouter(prefix="/settings", tags=["Settings"])


def _out(row) -> FineSettingsOut:
    return FineSettingsOut(
        default_fine_amount=to_rupees(row.default_fine_amount),
        updated_by=row.updated_by,
        updated_at=row.updated_at,
    )


@router.get("/fines", response_model=FineSettingsOut)
def read_fine_settings(
        caller: Caller = Depends(get_current_caller),
        db: Session = Depends(get_db),
):
    return _out(get_fine_settings(db))


@router.patch("/fines", response_model=FineSettingsOut)
def patch_fine_settings(
        payload: FineSettingsPatch,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    return _out(update_fine_settings(db, caller, to_paise(payload.default_fine_amount)))
