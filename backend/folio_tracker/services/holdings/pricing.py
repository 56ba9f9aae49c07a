# backend/folio_tracker/services/holdings/pricing.py
"""
Price resolution.

Picks the price used to value an asset and decides whether it is stale.
Prices are consumed, never fetched: the latest auto price is written by an
external refresher into the price_latest table.

Resolution order:
    1. MANUAL mode with a manual price  → manual, never stale
    2. Latest auto price record         → stale after interval × multiplier
    3. Manual price (AUTO mode fallback) → manual, stale
    4. Nothing                          → None, stale
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from folio_tracker.models import PricingMode
from folio_tracker.services.constants import (
    DEFAULT_STALE_PRICE_MULTIPLIER,
    PRICE_SOURCE_AUTO,
    PRICE_SOURCE_MANUAL,
    ZERO,
)
from folio_tracker.services.holdings.types import LatestPriceRecord, PriceResolution


def _as_utc(value: datetime) -> datetime:
    """SQLite returns naive datetimes; they are stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_valid_price(price: Decimal | None) -> bool:
    """A price of None, zero or below means "not priced"."""
    return price is not None and price.is_finite() and price > ZERO


def is_price_stale(
        last_updated: datetime,
        refresh_interval_minutes: int,
        now: datetime | None = None,
        multiplier: int = DEFAULT_STALE_PRICE_MULTIPLIER,
) -> bool:
    """True if the price is older than refresh_interval × multiplier."""
    now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    grace = timedelta(minutes=refresh_interval_minutes * multiplier)
    return now - _as_utc(last_updated) > grace


def resolve_price(
        pricing_mode: PricingMode,
        manual_price: Decimal | None,
        latest_price: LatestPriceRecord | None,
        refresh_interval_minutes: int,
        now: datetime | None = None,
        stale_multiplier: int = DEFAULT_STALE_PRICE_MULTIPLIER,
) -> PriceResolution:
    """
    Resolve the price for one asset.

    Args:
        pricing_mode: Asset's pricing mode
        manual_price: Operator-entered price, if any
        latest_price: Latest auto price record, if any
        refresh_interval_minutes: Expected auto refresh interval
        now: Reference time for staleness (defaults to current UTC time)
        stale_multiplier: Intervals a price may miss before it is stale

    Returns:
        PriceResolution (price may be None)
    """
    last_auto_update = _as_utc(latest_price.last_updated) if latest_price else None

    if pricing_mode == PricingMode.MANUAL and manual_price is not None:
        return PriceResolution(
            price=manual_price,
            source=PRICE_SOURCE_MANUAL,
            last_updated=last_auto_update,
            is_manual=True,
            is_stale=False,
        )

    if latest_price is not None:
        return PriceResolution(
            price=latest_price.price_in_base,
            source=latest_price.source or PRICE_SOURCE_AUTO,
            last_updated=last_auto_update,
            is_manual=False,
            is_stale=is_price_stale(
                latest_price.last_updated,
                refresh_interval_minutes,
                now=now,
                multiplier=stale_multiplier,
            ),
        )

    return PriceResolution(
        price=manual_price,
        source=PRICE_SOURCE_MANUAL if manual_price is not None else None,
        last_updated=None,
        is_manual=manual_price is not None,
        is_stale=True,
    )
