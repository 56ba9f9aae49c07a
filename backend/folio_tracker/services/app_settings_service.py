# backend/folio_tracker/services/app_settings_service.py
"""
App Settings Service for the key/value settings table.

This service handles:
- Reading settings with defaults for missing or invalid values
- Writing a single setting by key

Stored values are strings. Parsing is lenient: an unparsable or non-positive
refresh interval falls back to the default instead of raising, so a bad row
never breaks a holdings computation.

Base currency is always USD; a stored value is ignored.

Usage:
    from folio_tracker.services.app_settings_service import AppSettingsService

    service = AppSettingsService()
    app_settings = service.get_settings(db)
    print(app_settings.price_auto_refresh_interval_minutes)  # 60

    service.update_setting(db, "price_auto_refresh_interval_minutes", 15)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from folio_tracker.config import settings as env_settings
from folio_tracker.models import Setting
from folio_tracker.services.constants import DEFAULT_BASE_CURRENCY
from folio_tracker.services.exceptions import InvalidSettingError

logger = logging.getLogger(__name__)

# Keys accepted by update_setting()
SETTING_KEYS = frozenset({
    "base_currency",
    "timezone",
    "price_auto_refresh",
    "price_auto_refresh_interval_minutes",
})


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class AppSettings:
    """Effective application settings."""

    base_currency: str
    timezone: str
    price_auto_refresh: bool
    price_auto_refresh_interval_minutes: int


# =============================================================================
# PARSERS
# =============================================================================

def parse_bool_setting(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    return value.strip().lower() == "true"


def parse_str_setting(value: str | None, fallback: str) -> str:
    if value is None or not value.strip():
        return fallback
    return value.strip()


def parse_refresh_interval(value: str | None, fallback: int | None = None) -> int:
    """
    Parse a refresh interval in minutes.

    Non-numeric, non-finite and non-positive values fall back to the default.
    Fractions are floored.
    """
    if fallback is None:
        fallback = env_settings.price_auto_refresh_interval_minutes
    if value is None:
        return fallback
    try:
        parsed = float(value.strip())
    except ValueError:
        return fallback
    if not math.isfinite(parsed) or parsed <= 0:
        return fallback
    # 0 < parsed < 1 floors to 0, which is not a usable interval
    return max(math.floor(parsed), 1)


# =============================================================================
# SERVICE
# =============================================================================

class AppSettingsService:
    """
    Reads and writes the settings table.

    Defaults come from environment settings (folio_tracker.config).
    """

    def __init__(self) -> None:
        logger.info("AppSettingsService initialized")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def get_settings(self, db: Session) -> AppSettings:
        """Read every stored setting and apply defaults."""
        stored = {row.key: row.value for row in db.scalars(select(Setting)).all()}

        return AppSettings(
            base_currency=DEFAULT_BASE_CURRENCY,
            timezone=parse_str_setting(stored.get("timezone"), env_settings.timezone),
            price_auto_refresh=parse_bool_setting(stored.get("price_auto_refresh"), True),
            price_auto_refresh_interval_minutes=parse_refresh_interval(
                stored.get("price_auto_refresh_interval_minutes"),
            ),
        )

    def update_setting(
            self,
            db: Session,
            key: str,
            value: str | int | bool,
    ) -> AppSettings:
        """
        Insert or update one setting and return the effective settings.

        Raises:
            InvalidSettingError: If key is not a known setting
        """
        if key not in SETTING_KEYS:
            raise InvalidSettingError(key)

        stored_value = str(value).lower() if isinstance(value, bool) else str(value)

        row = db.get(Setting, key)
        if row is None:
            db.add(Setting(key=key, value=stored_value))
        else:
            row.value = stored_value
        db.commit()

        logger.info(f"Setting '{key}' updated to '{stored_value}'")
        return self.get_settings(db)
