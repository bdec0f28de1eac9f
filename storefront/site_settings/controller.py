from typing import Any, Dict

from fastapi import APIRouter, Body, Request, Response

from .service import SettingService
from ..auth.service import AdminUser
from ..core.cache import cached, clear_cache
from ..core.exceptions import ValidationFailedError
from ..database.core import DbSession

router = APIRouter(prefix="/api/settings", tags=["settings"])

CACHE_TAG = "settings"


@router.get("")
@cached(ttl=300)
async def get_settings(request: Request, response: Response, admin: AdminUser, db: DbSession):
    """Site settings under their frontend names, with defaults filled in."""
    return SettingService.get_frontend_settings(db)


@router.put("")
async def update_settings(admin: AdminUser, db: DbSession, payload: Dict[str, Any] = Body(...)):
    if not payload:
        raise ValidationFailedError(["No settings provided"], prefix=None)
    updated = SettingService.update_frontend_settings(db, payload)
    clear_cache(CACHE_TAG)
    return {"message": "Settings updated successfully", "settings": updated}


@router.get("/{key}")
async def get_setting(key: str, admin: AdminUser, db: DbSession):
    return {key: SettingService.get(db, key)}


@router.delete("/{key}")
async def delete_setting(key: str, admin: AdminUser, db: DbSession):
    SettingService.delete(db, key)
    clear_cache(CACHE_TAG)
    return {"message": "Setting deleted successfully"}
