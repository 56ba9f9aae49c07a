# backend/folio_tracker/services/holdings/service.py
"""
Holdings Service - Main orchestrator for holdings reconstruction.

This is the single entry point for all holdings operations:
- compute_holdings(): Valued positions + summary + transfer issues
- consolidate_by_asset(): One row per asset across accounts
- get_transfer_issues(): Transfer groups that failed to pair, with legs
- plan_cost_basis_resets() / apply_cost_basis_resets(): Cost basis
  recalculation snapshots
- plan_reconciliation() / apply_reconciliation(): Quantity adjustments
  towards externally observed balances

Design Principles:
- Dependency Injection: Sources injected via constructor (protocols)
- Single Entry Point: All holdings computation goes through this service
- No HTTP Knowledge: Raises domain exceptions, not HTTP errors
- Composable: Uses the replayer, matcher and calculators for each step

Usage:
    from folio_tracker.services.holdings import HoldingsService

    service = HoldingsService()

    result = service.compute_holdings(db)
    for row in result.rows:
        print(row.asset_symbol, row.account_name, row.market_value)

    consolidated = service.consolidate_by_asset(result.rows)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from folio_tracker.config import settings as env_settings
from folio_tracker.models import TxType
from folio_tracker.schemas.holdings import HoldingFilters, ReconciliationTarget
from folio_tracker.services.app_settings_service import AppSettingsService
from folio_tracker.services.constants import RECONCILIATION_EPSILON
from folio_tracker.services.exceptions import (
    AccountNotFoundError,
    AssetNotFoundError,
    ValidationError,
)
from folio_tracker.services.holdings.recalc import build_reset_plan
from folio_tracker.services.holdings.reconciliation import (
    build_reconciliation_plan,
    is_replaced_reconciliation,
    normalize_reconciliation_reference,
)
from folio_tracker.services.holdings.replayer import PositionLedgerReplayer, ReplayMode
from folio_tracker.services.holdings.repository import LedgerRepository
from folio_tracker.services.holdings.types import (
    AppliedReconciliation,
    AppliedResets,
    CostBasisResetPlan,
    HoldingRow,
    HoldingsResult,
    ReconciliationPlan,
    TransferIssueReport,
)
from folio_tracker.services.holdings.valuation import (
    ValuationCalculator,
    consolidate_by_asset,
    summarize_holdings,
)
from folio_tracker.services.protocols import (
    AppSettingsProviderProtocol,
    AssetSourceProtocol,
    TransactionSourceProtocol,
)
from folio_tracker.utils.context import correlation_scope

logger = logging.getLogger(__name__)


class HoldingsService:
    """
    Main holdings service.

    Orchestrates:
    - LedgerRepository: Loads entries, assets, prices and accounts
    - PositionLedgerReplayer: Replays entries into positions
    - ValuationCalculator: Values positions with resolved prices
    - AppSettingsService: Refresh interval and base currency

    Every public call runs under one correlation ID, so all log lines of a
    computation can be grouped.

    Example:
        service = HoldingsService()
        result = service.compute_holdings(
            db,
            filters=HoldingFilters(account_ids=[1]),
        )
    """

    def __init__(
            self,
            repository: LedgerRepository | None = None,
            transaction_source: TransactionSourceProtocol | None = None,
            asset_source: AssetSourceProtocol | None = None,
            settings_provider: AppSettingsProviderProtocol | None = None,
    ) -> None:
        """
        Initialize with optional dependency injection.

        Args:
            repository: Ledger repository (used for transfer legs and
                recalculation writes, and as the default source)
            transaction_source: Ledger entry source (defaults to repository)
            asset_source: Asset/account source (defaults to repository)
            settings_provider: App settings source
        """
        self._repository = repository or LedgerRepository()
        self._transactions = transaction_source or self._repository
        self._assets = asset_source or self._repository
        self._settings = settings_provider or AppSettingsService()

        self._replayer = PositionLedgerReplayer()
        self._valuation = ValuationCalculator()

        logger.info("HoldingsService initialized")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def compute_holdings(
            self,
            db: Session,
            filters: HoldingFilters | None = None,
            now: datetime | None = None,
    ) -> HoldingsResult:
        """
        Reconstruct and value every open position.

        Asset id / type / volatility filters narrow the replayed ledger
        (transfer groups never span assets). The account filter is applied
        to the output rows only, so a transfer into a filtered account still
        pairs with its counterpart.

        Args:
            db: Database session
            filters: Optional HoldingFilters
            now: Reference time for price staleness (defaults to now, UTC)

        Returns:
            HoldingsResult with rows sorted by market value descending

        Raises:
            AccountNotFoundError: If an account filter id does not exist
            LedgerEntryError: If a stored ledger row is malformed
        """
        filters = filters or HoldingFilters()
        now = now or datetime.now(timezone.utc)

        with correlation_scope() as run_id:
            logger.info(f"Computing holdings (run {run_id})")

            # Step 1: Validate account filter
            if filters.account_ids:
                missing = self._repository.find_missing_accounts(db, filters.account_ids)
                if missing:
                    raise AccountNotFoundError(missing[0])

            # Step 2: Load settings, ledger and assets
            app_settings = self._settings.get_settings(db)
            entries = self._transactions.fetch_entries(
                db,
                asset_ids=filters.asset_ids,
                asset_types=filters.asset_types,
                volatility_buckets=filters.volatility_buckets,
            )
            assets = self._assets.fetch_asset_profiles(
                db, asset_ids={entry.asset_id for entry in entries},
            )

            # Step 3: Replay
            replay = self._replayer.replay(entries, assets, ReplayMode.HONOR_RESETS)

            # Step 4: Apply the account filter to the output
            positions = replay.open_positions()
            if filters.account_ids:
                wanted = set(filters.account_ids)
                positions = [p for p in positions if p.account_id in wanted]

            # Step 5: Value and summarize
            account_names = self._assets.fetch_account_names(
                db, account_ids={p.account_id for p in positions},
            )
            rows = self._valuation.calculate(
                positions=positions,
                assets=assets,
                account_names=account_names,
                refresh_interval_minutes=app_settings.price_auto_refresh_interval_minutes,
                now=now,
                stale_multiplier=env_settings.price_stale_multiplier,
            )
            summary = summarize_holdings(rows, base_currency=app_settings.base_currency)

            logger.info(
                f"Holdings computed: {len(rows)} rows, total value {summary.total_value} "
                f"{summary.base_currency}, {len(replay.issues)} transfer issues"
            )
            return HoldingsResult(rows=rows, summary=summary, issues=list(replay.issues))

    def consolidate_by_asset(self, rows: Iterable[HoldingRow]) -> list[HoldingRow]:
        """Collapse per-account rows into one "Consolidated" row per asset."""
        return consolidate_by_asset(rows)

    def get_transfer_issues(
            self,
            db: Session,
            asset_ids: Iterable[int] | None = None,
            account_ids: Iterable[int] | None = None,
    ) -> list[TransferIssueReport]:
        """
        List transfer groups that fail to pair.

        Replays TRANSFER entries alone in PURE mode, so the diagnostics do
        not depend on trades or resets.

        Args:
            db: Database session
            asset_ids: Only these assets
            account_ids: Only issues with at least one leg in these accounts

        Returns:
            Reports in replay order, each with its legs' details
        """
        with correlation_scope():
            entries = self._transactions.fetch_entries(
                db, asset_ids=asset_ids, tx_types=[TxType.TRANSFER],
            )
            assets = self._assets.fetch_asset_profiles(
                db, asset_ids={entry.asset_id for entry in entries},
            )
            replay = self._replayer.replay(entries, assets, ReplayMode.PURE)

            leg_ids = [leg_id for issue in replay.issues for leg_id in issue.leg_ids]
            legs = self._repository.fetch_transfer_legs(db, leg_ids)

            reports = [
                TransferIssueReport(
                    issue=issue,
                    legs=[legs[leg_id] for leg_id in issue.leg_ids if leg_id in legs],
                )
                for issue in replay.issues
            ]

            if account_ids:
                wanted = set(account_ids)
                reports = [r for r in reports if r.account_ids & wanted]

            logger.info(f"Found {len(reports)} transfer issues")
            return reports

    def plan_cost_basis_resets(
            self,
            db: Session,
            as_of: datetime | None = None,
            mode: ReplayMode | str = ReplayMode.PURE,
            reference: str | None = None,
    ) -> CostBasisResetPlan:
        """
        Snapshot every known position's cost basis as of a point in time.

        Previous RECALC: resets are excluded from the replay, so running a
        recalculation twice gives the same plan.

        Args:
            db: Database session
            as_of: Snapshot time (defaults to now, UTC)
            mode: PURE (default) or HONOR_RESETS
            reference: External reference (prefixed with "RECALC:")

        Raises:
            InvalidReplayModeError: If mode is not PURE / HONOR_RESETS
        """
        mode = ReplayMode.parse(mode)
        as_of = as_of or datetime.now(timezone.utc)

        with correlation_scope():
            entries = self._transactions.fetch_entries(
                db, as_of=as_of, exclude_recalc_resets=True,
            )
            assets = self._assets.fetch_asset_profiles(
                db, asset_ids={entry.asset_id for entry in entries},
            )
            replay = self._replayer.replay(entries, assets, mode)
            plan = build_reset_plan(replay, as_of=as_of, mode=mode, reference=reference)

            logger.info(
                f"Planned {len(plan.drafts)} cost basis resets ({plan.reference}, {plan.mode})"
            )
            return plan

    def apply_cost_basis_resets(
            self,
            db: Session,
            plan: CostBasisResetPlan,
            notes: str | None = None,
    ) -> AppliedResets:
        """
        Replace every previous RECALC: reset with the plan's drafts.

        Runs as one transaction: on failure nothing is deleted or created.

        Raises:
            SQLAlchemyError: If the database write fails (after rollback)
        """
        notes = notes or f"Recalc ({plan.mode}) as of {plan.as_of.isoformat()}"

        with correlation_scope():
            try:
                deleted = self._repository.delete_recalc_resets(db)
                created = self._repository.add_cost_basis_resets(db, plan.drafts, notes=notes)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Writing cost basis resets failed: {e}", exc_info=True)
                raise

            logger.info(
                f"Cost basis resets written: {len(created)} created, "
                f"{deleted} replaced ({plan.reference})"
            )
            return AppliedResets(reference=plan.reference, created=len(created), deleted=deleted)

    def plan_reconciliation(
            self,
            db: Session,
            as_of: datetime,
            targets: Iterable[ReconciliationTarget],
            epsilon: Decimal = RECONCILIATION_EPSILON,
            external_reference: str | None = None,
            replace_existing: bool = True,
    ) -> ReconciliationPlan:
        """
        Preview the RECONCILIATION rows that bring positions to target quantities.

        Current quantities come from the replay of every entry at or before
        `as_of`. With `replace_existing` and a reference, reconciliations an
        earlier run wrote with that reference at `as_of` are left out, so
        planning again after committing gives the same deltas.

        Args:
            db: Database session
            as_of: Time the adjustments are dated at
            targets: One target per (account, asset)
            epsilon: Deltas at or below this absolute value are not written
            external_reference: Shared by the rows this run writes
            replace_existing: Replace an earlier run's rows with the same reference

        Raises:
            ValidationError: If targets are empty or repeat a position, or
                epsilon is negative
            AccountNotFoundError: If a target's account does not exist
            AssetNotFoundError: If a target's asset does not exist
        """
        targets = list(targets)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)

        with correlation_scope():
            # Step 1: Validate the request
            if not targets:
                raise ValidationError(
                    "At least one reconciliation target is required", field="targets",
                )
            if epsilon < 0:
                raise ValidationError("Epsilon must not be negative", field="epsilon")
            positions = [(t.account_id, t.asset_id) for t in targets]
            if len(set(positions)) != len(positions):
                raise ValidationError("Each position may only be reconciled once", field="targets")

            missing_accounts = self._repository.find_missing_accounts(
                db, [t.account_id for t in targets],
            )
            if missing_accounts:
                raise AccountNotFoundError(missing_accounts[0])
            missing_assets = self._repository.find_missing_assets(db, [t.asset_id for t in targets])
            if missing_assets:
                raise AssetNotFoundError(missing_assets[0])

            # Step 2: Replay the target assets without the rows this run replaces
            reference = normalize_reconciliation_reference(external_reference)
            entries = self._transactions.fetch_entries(
                db, asset_ids={t.asset_id for t in targets}, as_of=as_of,
            )
            if replace_existing:
                entries = [e for e in entries if not is_replaced_reconciliation(e, reference, as_of)]
            assets = self._assets.fetch_asset_profiles(
                db, asset_ids={entry.asset_id for entry in entries},
            )
            replay = self._replayer.replay(entries, assets, ReplayMode.PURE)

            # Step 3: Compare
            return build_reconciliation_plan(
                replay,
                targets,
                as_of=as_of,
                epsilon=epsilon,
                external_reference=reference,
                replace_existing=replace_existing,
            )

    def apply_reconciliation(
            self,
            db: Session,
            plan: ReconciliationPlan,
            notes: str | None = None,
    ) -> AppliedReconciliation:
        """
        Write the plan's pending rows, replacing an earlier run's rows if asked.

        Runs as one transaction: on failure nothing is deleted or created.

        Raises:
            SQLAlchemyError: If the database write fails (after rollback)
        """
        with correlation_scope():
            try:
                deleted = 0
                if plan.replaces:
                    deleted = self._repository.delete_reconciliations(
                        db, plan.external_reference, plan.as_of,
                    )
                created = self._repository.add_reconciliations(
                    db,
                    plan.pending,
                    as_of=plan.as_of,
                    external_reference=plan.external_reference,
                    notes=notes,
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Writing reconciliation failed: {e}", exc_info=True)
                raise

            logger.info(
                f"Reconciliation written: {len(created)} created, {deleted} replaced "
                f"({plan.external_reference or 'no reference'})"
            )
            return AppliedReconciliation(
                external_reference=plan.external_reference,
                created=len(created),
                deleted=deleted,
            )
