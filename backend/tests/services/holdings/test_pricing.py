# backend/tests/services/holdings/test_pricing.py
"""
Unit tests for price resolution and staleness.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from folio_tracker.models import PricingMode
from folio_tracker.services.holdings.pricing import is_price_stale, is_valid_price, resolve_price
from folio_tracker.services.holdings.types import LatestPriceRecord
from tests.conftest import NOW


def auto_price(price: str = "65000", age: timedelta = timedelta(minutes=5), source: str | None = "CoinGecko"):
    return LatestPriceRecord(
        price_in_base=Decimal(price),
        last_updated=NOW - age,
        source=source,
    )


class TestIsPriceStale:
    """Tests for is_price_stale."""

    def test_within_grace_window(self):
        """60 min interval × 3 = 180 min of grace."""
        assert not is_price_stale(NOW - timedelta(minutes=180), 60, now=NOW)

    def test_beyond_grace_window(self):
        assert is_price_stale(NOW - timedelta(minutes=181), 60, now=NOW)

    def test_custom_multiplier(self):
        assert is_price_stale(NOW - timedelta(minutes=61), 60, now=NOW, multiplier=1)

    def test_naive_timestamp_treated_as_utc(self):
        """SQLite hands back naive datetimes."""
        naive = (NOW - timedelta(minutes=10)).replace(tzinfo=None)

        assert not is_price_stale(naive, 5, now=NOW)
        assert is_price_stale(naive, 3, now=NOW)


class TestResolvePrice:
    """Tests for resolve_price."""

    def test_manual_mode_uses_manual_price(self):
        """Manual prices are never stale."""
        resolution = resolve_price(
            PricingMode.MANUAL, Decimal("12.5"), auto_price(age=timedelta(days=30)), 60, now=NOW,
        )

        assert resolution.price == Decimal("12.5")
        assert resolution.source == "Manual Entry"
        assert resolution.is_manual
        assert not resolution.is_stale

    def test_manual_mode_without_manual_price_falls_back_to_auto(self):
        resolution = resolve_price(PricingMode.MANUAL, None, auto_price(), 60, now=NOW)

        assert resolution.price == Decimal("65000")
        assert not resolution.is_manual

    def test_auto_price_fresh(self):
        resolution = resolve_price(PricingMode.AUTO, None, auto_price(), 60, now=NOW)

        assert resolution.price == Decimal("65000")
        assert resolution.source == "CoinGecko"
        assert resolution.last_updated == NOW - timedelta(minutes=5)
        assert not resolution.is_stale

    def test_auto_price_stale(self):
        resolution = resolve_price(
            PricingMode.AUTO, None, auto_price(age=timedelta(hours=4)), 60, now=NOW,
        )

        assert resolution.is_stale

    def test_auto_price_without_source(self):
        """A record with no provider name is labelled "Auto Price"."""
        resolution = resolve_price(PricingMode.AUTO, None, auto_price(source=None), 60, now=NOW)

        assert resolution.source == "Auto Price"

    def test_auto_mode_falls_back_to_manual_price(self):
        """Manual price used as a fallback is always stale."""
        resolution = resolve_price(PricingMode.AUTO, Decimal("1.01"), None, 60, now=NOW)

        assert resolution.price == Decimal("1.01")
        assert resolution.is_manual
        assert resolution.is_stale

    def test_no_price_at_all(self):
        resolution = resolve_price(PricingMode.AUTO, None, None, 60, now=NOW)

        assert resolution.price is None
        assert resolution.source is None
        assert resolution.is_stale


@pytest.mark.parametrize("price, expected", [
    (Decimal("1"), True),
    (Decimal("0"), False),
    (Decimal("-3"), False),
    (None, False),
    (Decimal("NaN"), False),
])
def test_is_valid_price(price, expected):
    assert is_valid_price(price) is expected
