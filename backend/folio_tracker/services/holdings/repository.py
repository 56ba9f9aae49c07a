# backend/folio_tracker/services/holdings/repository.py
"""
Ledger, asset and account loading for the holdings engine.

LedgerRepository is the SQLAlchemy-backed transaction source and asset
source. It converts ORM rows into the engine's input types:

    LedgerTransaction → LedgerEntry (pydantic, validated)
    Asset + PriceLatest → AssetProfile

It never commits; HoldingsService owns the unit of work.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, selectinload

from folio_tracker.models import Account, Asset, LedgerTransaction, TxType
from folio_tracker.schemas.ledger import LedgerEntry, parse_ledger_entry
from folio_tracker.services.constants import RECALC_REFERENCE_PREFIX
from folio_tracker.services.exceptions import LedgerEntryError
from folio_tracker.services.holdings.types import (
    AssetProfile,
    LatestPriceRecord,
    ReconciliationRow,
    ResetDraft,
    TransferLegDetail,
)

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class LedgerRepository:
    """
    Reads the ledger and its reference data.

    Example:
        repo = LedgerRepository()
        entries = repo.fetch_entries(db, asset_ids=[1, 2])
        assets = repo.fetch_asset_profiles(db, asset_ids=[1, 2])
    """

    # =========================================================================
    # LEDGER ENTRIES
    # =========================================================================

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
        """
        Load ledger entries in replay order (date_time, id).

        Args:
            db: Database session
            asset_ids: Only these assets
            asset_types: Only assets with these types (case-insensitive)
            volatility_buckets: Only assets in these buckets (case-insensitive)
            tx_types: Only these transaction types
            as_of: Only entries at or before this time
            exclude_recalc_resets: Skip COST_BASIS_RESET rows written by a
                previous recalculation

        Raises:
            LedgerEntryError: If a stored row cannot be validated
        """
        query = select(LedgerTransaction).order_by(
            LedgerTransaction.date_time, LedgerTransaction.id,
        )

        asset_types = [t.upper() for t in asset_types] if asset_types else None
        volatility_buckets = [b.upper() for b in volatility_buckets] if volatility_buckets else None
        if asset_types or volatility_buckets:
            query = query.join(Asset, Asset.id == LedgerTransaction.asset_id)
            if asset_types:
                query = query.where(func.upper(Asset.type).in_(asset_types))
            if volatility_buckets:
                query = query.where(func.upper(Asset.volatility_bucket).in_(volatility_buckets))

        if asset_ids:
            query = query.where(LedgerTransaction.asset_id.in_(list(asset_ids)))
        if tx_types:
            query = query.where(LedgerTransaction.tx_type.in_(list(tx_types)))
        if as_of is not None:
            query = query.where(LedgerTransaction.date_time <= as_of)

        rows = db.scalars(query).all()
        entries = [
            self.to_entry(row)
            for row in rows
            if not (exclude_recalc_resets and self.is_recalc_reset(row))
        ]
        logger.debug(f"Loaded {len(entries)} ledger entries ({len(rows)} rows)")
        return entries

    @staticmethod
    def is_recalc_reset(row: LedgerTransaction) -> bool:
        return (
            row.tx_type == TxType.COST_BASIS_RESET
            and (row.external_reference or "").startswith(RECALC_REFERENCE_PREFIX)
        )

    @staticmethod
    def to_entry(row: LedgerTransaction) -> LedgerEntry:
        """
        Convert an ORM row into a validated ledger entry.

        Raises:
            LedgerEntryError: If the row does not fit its variant
        """
        data = {
            "id": row.id,
            "date_time": row.date_time,
            "account_id": row.account_id,
            "asset_id": row.asset_id,
            "tx_type": row.tx_type,
            "quantity": row.quantity,
            "unit_price_in_base": row.unit_price_in_base,
            "total_value_in_base": row.total_value_in_base,
            "fee_in_base": row.fee_in_base,
            "external_reference": row.external_reference,
            "notes": row.notes,
        }
        if data["quantity"] is None and row.tx_type == TxType.COST_BASIS_RESET:
            del data["quantity"]
        try:
            return parse_ledger_entry(data)
        except PydanticValidationError as e:
            raise LedgerEntryError(row.id, str(e)) from e

    # =========================================================================
    # ASSETS & ACCOUNTS
    # =========================================================================

    def fetch_asset_profiles(
            self,
            db: Session,
            asset_ids: Iterable[int] | None = None,
    ) -> dict[int, AssetProfile]:
        """Load assets with their latest auto price, keyed by asset id."""
        query = select(Asset).options(selectinload(Asset.price_latest))
        if asset_ids is not None:
            query = query.where(Asset.id.in_(list(asset_ids)))

        profiles: dict[int, AssetProfile] = {}
        for asset in db.scalars(query).all():
            latest = None
            if asset.price_latest is not None:
                latest = LatestPriceRecord(
                    price_in_base=asset.price_latest.price_in_base,
                    last_updated=_as_utc(asset.price_latest.last_updated),
                    source=asset.price_latest.source,
                )
            profiles[asset.id] = AssetProfile(
                id=asset.id,
                symbol=asset.symbol,
                name=asset.name,
                type=asset.type,
                volatility_bucket=asset.volatility_bucket,
                pricing_mode=asset.pricing_mode,
                manual_price=asset.manual_price,
                latest_price=latest,
            )
        return profiles

    def fetch_account_names(
            self,
            db: Session,
            account_ids: Iterable[int] | None = None,
    ) -> dict[int, str]:
        query = select(Account.id, Account.name)
        if account_ids is not None:
            query = query.where(Account.id.in_(list(account_ids)))
        return {account_id: name for account_id, name in db.execute(query).all()}

    def find_missing_accounts(self, db: Session, account_ids: Iterable[int]) -> list[int]:
        """Return the ids from `account_ids` that have no Account row."""
        wanted = list(dict.fromkeys(account_ids))
        if not wanted:
            return []
        existing = set(db.scalars(select(Account.id).where(Account.id.in_(wanted))).all())
        return [account_id for account_id in wanted if account_id not in existing]

    def find_missing_assets(self, db: Session, asset_ids: Iterable[int]) -> list[int]:
        """Return the ids from `asset_ids` that have no Asset row."""
        wanted = list(dict.fromkeys(asset_ids))
        if not wanted:
            return []
        existing = set(db.scalars(select(Asset.id).where(Asset.id.in_(wanted))).all())
        return [asset_id for asset_id in wanted if asset_id not in existing]

    def fetch_transfer_legs(
            self,
            db: Session,
            transaction_ids: Iterable[int],
    ) -> dict[int, TransferLegDetail]:
        """Load display details for transfer legs, keyed by transaction id."""
        ids = list(transaction_ids)
        if not ids:
            return {}
        query = (
            select(LedgerTransaction, Account.name, Asset.symbol)
            .join(Account, Account.id == LedgerTransaction.account_id)
            .join(Asset, Asset.id == LedgerTransaction.asset_id)
            .where(LedgerTransaction.id.in_(ids))
        )
        return {
            row.id: TransferLegDetail(
                id=row.id,
                date_time=_as_utc(row.date_time),
                account_id=row.account_id,
                account_name=account_name,
                asset_id=row.asset_id,
                asset_symbol=asset_symbol,
                quantity=row.quantity,
                external_reference=row.external_reference,
            )
            for row, account_name, asset_symbol in db.execute(query).all()
        }

    # =========================================================================
    # COST BASIS RESETS
    # =========================================================================

    def delete_recalc_resets(self, db: Session) -> int:
        """Delete every COST_BASIS_RESET written by a recalculation (no commit)."""
        result = db.execute(
            delete(LedgerTransaction)
            .where(LedgerTransaction.tx_type == TxType.COST_BASIS_RESET)
            .where(LedgerTransaction.external_reference.startswith(RECALC_REFERENCE_PREFIX))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def add_cost_basis_resets(
            self,
            db: Session,
            drafts: Iterable[ResetDraft],
            notes: str | None = None,
    ) -> list[LedgerTransaction]:
        """Stage COST_BASIS_RESET rows for the drafts (no commit)."""
        rows = [
            LedgerTransaction(
                date_time=draft.date_time,
                account_id=draft.account_id,
                asset_id=draft.asset_id,
                quantity=Decimal("0"),
                tx_type=TxType.COST_BASIS_RESET,
                total_value_in_base=draft.cost_basis,
                external_reference=draft.external_reference,
                notes=notes,
            )
            for draft in drafts
        ]
        db.add_all(rows)
        return rows

    # =========================================================================
    # RECONCILIATIONS
    # =========================================================================

    def delete_reconciliations(self, db: Session, external_reference: str, as_of: datetime) -> int:
        """Delete the RECONCILIATION rows one reconciliation run wrote (no commit)."""
        result = db.execute(
            delete(LedgerTransaction)
            .where(LedgerTransaction.tx_type == TxType.RECONCILIATION)
            .where(LedgerTransaction.external_reference == external_reference)
            .where(LedgerTransaction.date_time == as_of)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def add_reconciliations(
            self,
            db: Session,
            rows: Iterable[ReconciliationRow],
            as_of: datetime,
            external_reference: str | None = None,
            notes: str | None = None,
    ) -> list[LedgerTransaction]:
        """
        Stage one RECONCILIATION row per planned delta (no commit).

        The row carries the delta as its quantity and no valuation. A row's
        own notes win over the run's notes.
        """
        created = [
            LedgerTransaction(
                date_time=as_of,
                account_id=row.account_id,
                asset_id=row.asset_id,
                quantity=row.delta_quantity,
                tx_type=TxType.RECONCILIATION,
                external_reference=external_reference,
                notes=row.notes or notes,
            )
            for row in rows
        ]
        db.add_all(created)
        return created
