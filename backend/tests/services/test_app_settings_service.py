# backend/tests/services/test_app_settings_service.py
"""
Tests for AppSettingsService and its parsers.
"""

import pytest

from folio_tracker.models import Setting
from folio_tracker.services.app_settings_service import (
    AppSettingsService,
    parse_bool_setting,
    parse_refresh_interval,
    parse_str_setting,
)
from folio_tracker.services.exceptions import InvalidSettingError
from tests.conftest import create_setting


@pytest.fixture
def service() -> AppSettingsService:
    return AppSettingsService()


class TestParsers:
    """Tests for lenient setting parsers."""

    @pytest.mark.parametrize("value, expected", [
        ("15", 15),
        ("15.9", 15),
        (" 30 ", 30),
        ("0.5", 1),
        ("0", 60),
        ("-5", 60),
        ("abc", 60),
        ("inf", 60),
        ("nan", 60),
        (None, 60),
    ])
    def test_parse_refresh_interval(self, value, expected):
        assert parse_refresh_interval(value, fallback=60) == expected

    def test_parse_bool(self):
        assert parse_bool_setting("TRUE", False) is True
        assert parse_bool_setting("no", True) is False
        assert parse_bool_setting(None, True) is True

    def test_parse_str(self):
        assert parse_str_setting("  Europe/Paris ", "UTC") == "Europe/Paris"
        assert parse_str_setting("", "UTC") == "UTC"


class TestGetSettings:
    """Tests for AppSettingsService.get_settings."""

    def test_defaults_when_table_empty(self, db, service):
        app_settings = service.get_settings(db)

        assert app_settings.base_currency == "USD"
        assert app_settings.timezone == "UTC"
        assert app_settings.price_auto_refresh is True
        assert app_settings.price_auto_refresh_interval_minutes == 60

    def test_stored_values(self, db, service):
        create_setting(db, "timezone", "Europe/Paris")
        create_setting(db, "price_auto_refresh", "false")
        create_setting(db, "price_auto_refresh_interval_minutes", "15")

        app_settings = service.get_settings(db)

        assert app_settings.timezone == "Europe/Paris"
        assert app_settings.price_auto_refresh is False
        assert app_settings.price_auto_refresh_interval_minutes == 15

    def test_base_currency_is_always_usd(self, db, service):
        create_setting(db, "base_currency", "EUR")

        assert service.get_settings(db).base_currency == "USD"

    def test_invalid_interval_falls_back(self, db, service):
        create_setting(db, "price_auto_refresh_interval_minutes", "soon")

        assert service.get_settings(db).price_auto_refresh_interval_minutes == 60


class TestUpdateSetting:
    """Tests for AppSettingsService.update_setting."""

    def test_insert(self, db, service):
        app_settings = service.update_setting(db, "price_auto_refresh_interval_minutes", 5)

        assert app_settings.price_auto_refresh_interval_minutes == 5
        assert db.get(Setting, "price_auto_refresh_interval_minutes").value == "5"

    def test_update_existing(self, db, service):
        create_setting(db, "timezone", "UTC")

        service.update_setting(db, "timezone", "Asia/Tokyo")

        assert db.get(Setting, "timezone").value == "Asia/Tokyo"

    def test_bool_stored_lowercase(self, db, service):
        service.update_setting(db, "price_auto_refresh", False)

        assert db.get(Setting, "price_auto_refresh").value == "false"

    def test_unknown_key_rejected(self, db, service):
        with pytest.raises(InvalidSettingError) as exc_info:
            service.update_setting(db, "theme", "dark")

        assert exc_info.value.key == "theme"
        assert exc_info.value.field == "key"
