import json
import math
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import Setting, SettingType
from ..core.exceptions import ErrorCode, ResourceNotFoundError, StorefrontError, ValidationFailedError
from ..logging import logger

# Frontend key -> (stored key, type, default)
FRONTEND_KEY_MAP: Dict[str, Tuple[str, SettingType, Any]] = {
    "siteName": ("site_name", SettingType.STRING, ""),
    "email": ("admin_email", SettingType.STRING, ""),
    "currency": ("currency", SettingType.STRING, "USD"),
    "taxRate": ("tax_rate", SettingType.NUMBER, 0),
    "shippingCost": ("shipping_cost", SettingType.NUMBER, 0),
    "notifications": ("notifications_enabled", SettingType.BOOLEAN, False),
    "emailNotifications": ("email_notifications", SettingType.BOOLEAN, False),
    "orderAlerts": ("order_alerts", SettingType.BOOLEAN, False),
    "lowStockAlert": ("low_stock_threshold", SettingType.NUMBER, 10),
    "theme": ("theme", SettingType.STRING, "light"),
}

SETTING_NOT_FOUND = "Setting not found"


def serialize_value(value: Any, setting_type: str) -> str:
    """Turn ``value`` into its stored text form, raising ValueError when it does not fit ``setting_type``."""
    setting_type = SettingType(setting_type)
    if setting_type is SettingType.JSON:
        try:
            return json.dumps(value)
        except TypeError as e:
            raise ValueError(f"Expected JSON-serializable data, got {type(value).__name__}") from e
    if setting_type is SettingType.BOOLEAN:
        if isinstance(value, str):
            return "true" if value.strip().lower() in ("true", "1") else "false"
        return "true" if value else "false"
    if setting_type is SettingType.NUMBER:
        if isinstance(value, bool):
            raise ValueError(f"Expected a number, got {value!r}")
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Expected a number, got {value!r}") from e
        if not math.isfinite(number):
            raise ValueError(f"Expected a finite number, got {value!r}")
        return str(value)
    return str(value)


def parse_value(raw: Optional[str], setting_type: str) -> Any:
    if raw is None:
        return None
    if setting_type == SettingType.NUMBER.value:
        try:
            return float(raw)
        except ValueError:
            return None
    if setting_type == SettingType.BOOLEAN.value:
        return raw in ("true", "1")
    if setting_type == SettingType.JSON.value:
        try:
            return json.loads(raw)
        except ValueError:
            return None
    return raw


class SettingService:

    @staticmethod
    def _find(db: Session, key: str) -> Optional[Setting]:
        return db.query(Setting).filter(Setting.setting_key == key).first()

    @staticmethod
    def _upsert(db: Session, key: str, value: Any, setting_type: str) -> Setting:
        stored = serialize_value(value, setting_type)
        setting = SettingService._find(db, key)
        if setting is None:
            setting = Setting(setting_key=key)
            db.add(setting)
        setting.setting_value = stored
        setting.setting_type = SettingType(setting_type).value
        db.flush()
        return setting

    @staticmethod
    def get_all(db: Session) -> Dict[str, Any]:
        """All settings keyed by stored key, values parsed per type."""
        rows = db.query(Setting).order_by(Setting.setting_key).all()
        return {row.setting_key: parse_value(row.setting_value, row.setting_type) for row in rows}

    @staticmethod
    def get(db: Session, key: str) -> Any:
        setting = SettingService._find(db, key)
        if setting is None:
            raise ResourceNotFoundError("Setting", SETTING_NOT_FOUND)
        return parse_value(setting.setting_value, setting.setting_type)

    @staticmethod
    def set(db: Session, key: str, value: Any, setting_type: str = SettingType.STRING.value) -> Setting:
        try:
            setting = SettingService._upsert(db, key, value, setting_type)
        except ValueError as e:
            db.rollback()
            raise ValidationFailedError([f"Invalid value for setting '{key}'"], prefix=None) from e
        db.commit()
        db.refresh(setting)
        return setting

    @staticmethod
    def update_many(db: Session, entries: Dict[str, Tuple[Any, str]]) -> None:
        """
        Upsert ``{key: (value, type)}`` in a single transaction.

        Nothing is written unless every entry is stored.
        """
        try:
            for key, (value, setting_type) in entries.items():
                SettingService._upsert(db, key, value, setting_type)
            db.commit()
        except ValueError as e:
            db.rollback()
            logger.warning(f"Settings update rejected: {e}")
            raise ValidationFailedError([f"Error updating settings: {e}"], prefix=None) from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Settings update failed: {e}")
            raise StorefrontError(
                code=ErrorCode.INTERNAL_SERVER_ERROR,
                user_message="Error updating settings",
                technical_details=str(e),
            ) from e
        logger.info(f"Updated settings: {sorted(entries)}")

    @staticmethod
    def delete(db: Session, key: str) -> None:
        setting = SettingService._find(db, key)
        if setting is None:
            raise ResourceNotFoundError("Setting", SETTING_NOT_FOUND)
        db.delete(setting)
        db.commit()
        logger.info(f"Setting '{key}' deleted")

    # --- Frontend translation ---

    @staticmethod
    def get_frontend_settings(db: Session) -> Dict[str, Any]:
        stored = SettingService.get_all(db)
        result = {}
        for frontend_key, (key, _, default) in FRONTEND_KEY_MAP.items():
            value = stored.get(key)
            result[frontend_key] = default if value is None else value
        return result

    @staticmethod
    def update_frontend_settings(db: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Store the recognised frontend keys and return the refreshed settings."""
        entries = {
            FRONTEND_KEY_MAP[name][0]: (value, FRONTEND_KEY_MAP[name][1].value)
            for name, value in payload.items()
            if name in FRONTEND_KEY_MAP
        }
        SettingService.update_many(db, entries)
        return SettingService.get_frontend_settings(db)
