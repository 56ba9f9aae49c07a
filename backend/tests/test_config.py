# backend/tests/test_config.py
"""
Tests for environment settings.
"""

import pytest
from pydantic import ValidationError

from folio_tracker.config import Settings


class TestHoldingsDefaults:
    """Tests for the holdings engine settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PRICE_STALE_MULTIPLIER", raising=False)

        settings = Settings(environment="test")

        assert settings.price_stale_multiplier == 3
        assert settings.price_auto_refresh_interval_minutes == 60

    def test_stale_multiplier_from_env(self, monkeypatch):
        monkeypatch.setenv("PRICE_STALE_MULTIPLIER", "5")

        assert Settings(environment="test").price_stale_multiplier == 5

    def test_stale_multiplier_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("PRICE_STALE_MULTIPLIER", "0")

        with pytest.raises(ValidationError):
            Settings(environment="test")


class TestDatabaseUrl:
    """Tests for environment-dependent database URLs."""

    def test_memory_sqlite_in_test(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)

        settings = Settings(environment="test")

        assert settings.database_url == "sqlite:///:memory:"
        assert settings.is_sqlite

    def test_production_requires_postgres(self):
        with pytest.raises(ValidationError, match="PostgreSQL"):
            Settings(environment="production", database_url="sqlite:///prod.db")
