# backend/folio_tracker/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- LedgerRepository satisfies these protocols without inheriting from them
- Test doubles work without explicit inheritance
- Any other ledger store can feed HoldingsService
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from folio_tracker.models import TxType
    from folio_tracker.schemas.ledger import LedgerEntry
    from folio_tracker.services.app_settings_service import AppSettings
    from folio_tracker.services.holdings.types import AssetProfile


class TransactionSourceProtocol(Protocol):
    """Interface required by HoldingsService to load the ledger."""

    def fetch_entries(
        self,
        db: Session,
        *,
        asset_ids: Iterable[int] | None = None,
        asset_types: Iterable[str] | None = None,
        volatility_buckets: Iterable[str] | None = None,
        tx_types: Iterable[TxType] | None = None,
        as_of: datetime | None = None,
        exclude_recalc_resets: bool = False,
    ) -> list[LedgerEntry]:
        ...


class AssetSourceProtocol(Protocol):
    """Interface required by HoldingsService to load assets, prices and accounts."""

    def fetch_asset_profiles(
        self,
        db: Session,
        asset_ids: Iterable[int] | None = None,
    ) -> dict[int, AssetProfile]:
        ...

    def fetch_account_names(
        self,
        db: Session,
        account_ids: Iterable[int] | None = None,
    ) -> dict[int, str]:
        ...


class AppSettingsProviderProtocol(Protocol):
    """Interface required by HoldingsService to read the refresh interval."""

    def get_settings(self, db: Session) -> AppSettings:
        ...
