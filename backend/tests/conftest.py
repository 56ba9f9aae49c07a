# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- Sample data factories (DB rows and in-memory ledger entries)
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from folio_tracker.models import (
    Base,
    Account,
    Asset,
    LedgerTransaction,
    PriceLatest,
    PricingMode,
    Setting,
    TxType,
)
from folio_tracker.schemas.ledger import LedgerEntry, parse_ledger_entry
from folio_tracker.services.holdings.types import AssetProfile, LatestPriceRecord

# Fixed reference time for staleness checks
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(db_engine) -> Iterator[Session]:
    """Create a database session for testing."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# DATABASE FACTORIES
# =============================================================================

def create_account(
        db: Session,
        name: str = "Kraken",
        platform: str | None = "exchange",
) -> Account:
    """Factory function for creating Account rows."""
    account = Account(name=name, platform=platform)
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def create_asset(
        db: Session,
        symbol: str = "BTC",
        name: str = "Bitcoin",
        type: str = "CRYPTO",
        volatility_bucket: str = "HIGH",
        pricing_mode: PricingMode = PricingMode.AUTO,
        manual_price: Decimal | None = None,
) -> Asset:
    """Factory function for creating Asset rows."""
    asset = Asset(
        symbol=symbol,
        name=name,
        type=type,
        volatility_bucket=volatility_bucket,
        pricing_mode=pricing_mode,
        manual_price=manual_price,
    )
    db.add(asset)
    db.commit()
    db.refresh(asset)
    return asset


def create_price(
        db: Session,
        asset: Asset,
        price: Decimal,
        last_updated: datetime = NOW,
        source: str | None = "CoinGecko",
) -> PriceLatest:
    """Factory function for creating the latest auto price of an asset."""
    record = PriceLatest(
        asset_id=asset.id,
        price_in_base=price,
        source=source,
        last_updated=last_updated,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def create_transaction(
        db: Session,
        account: Account,
        asset: Asset,
        quantity: Decimal | str,
        tx_type: TxType = TxType.TRADE,
        date_time: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc),
        total_value_in_base: Decimal | str | None = None,
        unit_price_in_base: Decimal | str | None = None,
        external_reference: str | None = None,
        notes: str | None = None,
) -> LedgerTransaction:
    """Factory function for creating LedgerTransaction rows."""
    tx = LedgerTransaction(
        date_time=date_time,
        account_id=account.id,
        asset_id=asset.id,
        quantity=Decimal(quantity),
        tx_type=tx_type,
        total_value_in_base=Decimal(total_value_in_base) if total_value_in_base is not None else None,
        unit_price_in_base=Decimal(unit_price_in_base) if unit_price_in_base is not None else None,
        external_reference=external_reference,
        notes=notes,
    )
    db.add(tx)
    db.commit()
    db.refresh(tx)
    return tx


def create_setting(db: Session, key: str, value: str) -> Setting:
    """Factory function for creating Setting rows."""
    setting = Setting(key=key, value=value)
    db.add(setting)
    db.commit()
    return setting


# =============================================================================
# IN-MEMORY FACTORIES (no database)
# =============================================================================

class EntryFactory:
    """
    Builds validated ledger entries with increasing ids.

    Each entry defaults to one minute after the previous one, so call order
    is replay order unless date_time is given.
    """

    def __init__(self) -> None:
        self._next_id = 1
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(
            self,
            tx_type: TxType | str,
            quantity: str | Decimal = "0",
            asset_id: int = 1,
            account_id: int = 1,
            date_time: datetime | None = None,
            entry_id: int | None = None,
            **fields: Any,
    ) -> LedgerEntry:
        if date_time is None:
            self._clock += timedelta(minutes=1)
            date_time = self._clock
        if entry_id is None:
            entry_id = self._next_id
        self._next_id = max(self._next_id, entry_id) + 1
        return parse_ledger_entry({
            "id": entry_id,
            "date_time": date_time,
            "account_id": account_id,
            "asset_id": asset_id,
            "tx_type": TxType(tx_type),
            "quantity": Decimal(quantity),
            **fields,
        })


@pytest.fixture
def entry() -> EntryFactory:
    """Fresh ledger entry factory for each test."""
    return EntryFactory()


def make_asset_profile(
        asset_id: int = 1,
        symbol: str = "BTC",
        type: str = "CRYPTO",
        volatility_bucket: str = "HIGH",
        pricing_mode: PricingMode = PricingMode.AUTO,
        manual_price: Decimal | None = None,
        latest_price: LatestPriceRecord | None = None,
        name: str | None = None,
) -> AssetProfile:
    """Factory function for AssetProfile test data."""
    return AssetProfile(
        id=asset_id,
        symbol=symbol,
        name=name or symbol,
        type=type,
        volatility_bucket=volatility_bucket,
        pricing_mode=pricing_mode,
        manual_price=manual_price,
        latest_price=latest_price,
    )


@pytest.fixture
def btc_profile() -> AssetProfile:
    """Non-cash asset with id 1."""
    return make_asset_profile(asset_id=1, symbol="BTC")


@pytest.fixture
def usd_profile() -> AssetProfile:
    """Cash asset with id 2."""
    return make_asset_profile(asset_id=2, symbol="USD", type="CASH", volatility_bucket="CASH_LIKE")
