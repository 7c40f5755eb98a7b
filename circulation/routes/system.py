from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Dict, Union
from circulation.database import get_db
from circulation.models.user import User
from circulation.services import system_settings
from circulation.services.auth import get_current_user, get_current_admin

router = APIRouter(prefix="/api/system", tags=["System Settings"])

@router.get("/settings")
async def get_settings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Effective circulation settings, with defaults for missing keys."""
    return system_settings.all_settings(db)

@router.put("/settings")
async def update_settings(
    updates: Dict[str, Union[int, float, str]],
    current_user: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Batch upsert of settings (admin only)."""
    return system_settings.update_settings(db, updates)
