# backend/folio_tracker/services/holdings/valuation.py
"""
Valuation, summary and consolidation of replayed positions.

Components:
- PnLCalculator: market value, average cost and unrealized P&L for one row
- ValuationCalculator: Turns positions + prices into HoldingRows
- summarize_holdings: Fleet-wide totals over a list of rows
- consolidate_by_asset: Collapses per-account rows into one row per asset

Formulas:
    market_value       = quantity × price                (None if unpriced)
    average_cost       = cost_basis / |quantity|         (None if dust or unknown)
    unrealized_pnl     = market_value - cost_basis       (None if either None)
    unrealized_pnl_pct = unrealized_pnl / cost_basis × 100, 2 dp
                                                         (None if basis None or 0)

Rows are sorted by market value descending; unpriced rows go last.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation

from folio_tracker.services.constants import (
    CONSOLIDATED_ACCOUNT_ID,
    CONSOLIDATED_ACCOUNT_NAME,
    DEFAULT_BASE_CURRENCY,
    DEFAULT_STALE_PRICE_MULTIPLIER,
    DUST_THRESHOLD,
    HUNDRED,
    PERCENTAGE_QUANTUM,
    ZERO,
)
from folio_tracker.services.holdings.pricing import is_valid_price, resolve_price
from folio_tracker.services.holdings.types import (
    AssetProfile,
    CostBasisStatus,
    HoldingRow,
    HoldingsSummary,
    Position,
    TransferDiagnostic,
    merge_status,
)

logger = logging.getLogger(__name__)


# =============================================================================
# P&L CALCULATOR
# =============================================================================

class PnLCalculator:
    """
    Derives the per-row metrics from quantity, basis and price.

    Returns:
        (average_cost, unrealized_pnl, unrealized_pnl_pct)
    """

    def calculate(
            self,
            quantity: Decimal,
            cost_basis: Decimal | None,
            market_value: Decimal | None,
    ) -> tuple[Decimal | None, Decimal | None, Decimal | None]:
        if cost_basis is None:
            return None, None, None

        average_cost = None
        if abs(quantity) > DUST_THRESHOLD:
            average_cost = cost_basis / abs(quantity)

        if market_value is None:
            return average_cost, None, None

        unrealized_pnl = market_value - cost_basis

        # Guard against division by zero
        if cost_basis == ZERO:
            return average_cost, unrealized_pnl, None

        try:
            unrealized_pct = ((unrealized_pnl / cost_basis) * HUNDRED).quantize(PERCENTAGE_QUANTUM)
        except InvalidOperation:
            # Ratio too large to round at context precision
            logger.debug(f"P&L percentage out of range (basis {cost_basis}, P&L {unrealized_pnl})")
            unrealized_pct = None

        return average_cost, unrealized_pnl, unrealized_pct


def _sort_rows(rows: list[HoldingRow]) -> list[HoldingRow]:
    """Market value descending, unpriced rows last (stable)."""
    return sorted(
        rows,
        key=lambda r: (r.market_value is None, -(r.market_value or ZERO)),
    )


# =============================================================================
# VALUATION CALCULATOR
# =============================================================================

class ValuationCalculator:
    """
    Values replayed positions.

    Usage:
        calc = ValuationCalculator()
        rows = calc.calculate(
            positions=result.open_positions(),
            assets=assets,
            account_names={1: "Kraken"},
            refresh_interval_minutes=60,
        )
    """

    def __init__(self, pnl_calculator: PnLCalculator | None = None) -> None:
        self._pnl = pnl_calculator or PnLCalculator()

    def calculate(
            self,
            positions: Iterable[Position],
            assets: Mapping[int, AssetProfile],
            account_names: Mapping[int, str],
            refresh_interval_minutes: int,
            now: datetime | None = None,
            stale_multiplier: int = DEFAULT_STALE_PRICE_MULTIPLIER,
    ) -> list[HoldingRow]:
        """
        Build holding rows for non-empty positions.

        Args:
            positions: Replayed positions (dust positions are skipped)
            assets: Asset metadata keyed by asset id
            account_names: Account display names keyed by account id
            refresh_interval_minutes: Auto price refresh interval
            now: Reference time for price staleness
            stale_multiplier: Intervals before an auto price is stale

        Returns:
            Rows sorted by market value descending, unpriced last
        """
        rows: list[HoldingRow] = []

        for position in positions:
            if position.is_dust:
                continue

            asset = assets.get(position.asset_id)
            if asset is None:
                logger.warning(f"Asset {position.asset_id} not found, skipping position")
                continue

            resolution = resolve_price(
                pricing_mode=asset.pricing_mode,
                manual_price=asset.manual_price,
                latest_price=asset.latest_price,
                refresh_interval_minutes=refresh_interval_minutes,
                now=now,
                stale_multiplier=stale_multiplier,
            )
            price = resolution.price if is_valid_price(resolution.price) else None
            market_value = position.quantity * price if price is not None else None

            cost_basis = position.cost_basis if position.cost_basis_known else None
            average_cost, pnl, pnl_pct = self._pnl.calculate(
                position.quantity, cost_basis, market_value,
            )

            rows.append(HoldingRow(
                asset_id=asset.id,
                asset_symbol=asset.symbol,
                asset_name=asset.name,
                asset_type=asset.type,
                volatility_bucket=asset.volatility_bucket,
                pricing_mode=asset.pricing_mode,
                manual_price=asset.manual_price,
                account_id=position.account_id,
                account_name=account_names.get(position.account_id, f"Account {position.account_id}"),
                quantity=position.quantity,
                cost_basis=cost_basis,
                cost_basis_status=position.cost_basis_status,
                transfer_diagnostic=position.transfer_diagnostic,
                price=price,
                price_source=resolution.source,
                last_updated=resolution.last_updated,
                is_manual=resolution.is_manual,
                is_stale=resolution.is_stale,
                market_value=market_value,
                average_cost=average_cost,
                unrealized_pnl=pnl,
                unrealized_pnl_pct=pnl_pct,
            ))

        return _sort_rows(rows)


# =============================================================================
# SUMMARY
# =============================================================================

def summarize_holdings(
        rows: Iterable[HoldingRow],
        base_currency: str = DEFAULT_BASE_CURRENCY,
) -> HoldingsSummary:
    """
    Aggregate rows into fleet-wide totals.

    Value totals and buckets only count priced rows. Cost basis and P&L are
    partial sums over rows where the field is known.
    """
    summary = HoldingsSummary(
        total_value=ZERO,
        total_cost_basis=ZERO,
        total_unrealized_pnl=ZERO,
        base_currency=base_currency,
    )

    for row in rows:
        if row.cost_basis is not None:
            summary.total_cost_basis += row.cost_basis
        if row.unrealized_pnl is not None:
            summary.total_unrealized_pnl += row.unrealized_pnl

        if not row.is_priced or row.market_value is None:
            continue

        summary.total_value += row.market_value
        summary.by_type[row.asset_type] = summary.by_type.get(row.asset_type, ZERO) + row.market_value
        summary.by_volatility[row.volatility_bucket] = (
            summary.by_volatility.get(row.volatility_bucket, ZERO) + row.market_value
        )
        if row.last_updated is not None and (
                summary.updated_at is None or row.last_updated > summary.updated_at
        ):
            summary.updated_at = row.last_updated

    return summary


# =============================================================================
# CONSOLIDATION
# =============================================================================

def _merge_diagnostics(rows: list[HoldingRow]) -> TransferDiagnostic | None:
    diagnostics = [r.transfer_diagnostic for r in rows if r.transfer_diagnostic is not None]
    if not diagnostics:
        return None
    if len(diagnostics) == 1:
        return diagnostics[0]
    keys = list(dict.fromkeys(d.key for d in diagnostics))
    ids = sorted({tx_id for d in diagnostics for tx_id in d.transaction_ids})
    return TransferDiagnostic(key="; ".join(keys), transaction_ids=tuple(ids))


def _consolidate_group(rows: list[HoldingRow], pnl: PnLCalculator) -> HoldingRow:
    reference = rows[0]
    quantity = sum((r.quantity for r in rows), ZERO)

    priced = [r for r in rows if r.is_priced]
    first_priced = priced[0] if priced else None
    market_value = (
        sum((r.market_value for r in priced if r.market_value is not None), ZERO)
        if priced else None
    )

    last_updated = None
    for row in rows:
        if row.last_updated is not None and (last_updated is None or row.last_updated > last_updated):
            last_updated = row.last_updated

    contributors = [r for r in rows if abs(r.quantity) > DUST_THRESHOLD] or rows
    status = CostBasisStatus.KNOWN
    for row in contributors:
        status = merge_status(status, row.cost_basis_status)

    cost_basis = None
    if status is CostBasisStatus.KNOWN:
        cost_basis = sum((r.cost_basis or ZERO for r in contributors), ZERO)

    average_cost, unrealized_pnl, unrealized_pct = pnl.calculate(quantity, cost_basis, market_value)

    return HoldingRow(
        asset_id=reference.asset_id,
        asset_symbol=reference.asset_symbol,
        asset_name=reference.asset_name,
        asset_type=reference.asset_type,
        volatility_bucket=reference.volatility_bucket,
        pricing_mode=reference.pricing_mode,
        manual_price=reference.manual_price,
        account_id=CONSOLIDATED_ACCOUNT_ID,
        account_name=CONSOLIDATED_ACCOUNT_NAME,
        quantity=quantity,
        cost_basis=cost_basis,
        cost_basis_status=status,
        transfer_diagnostic=_merge_diagnostics(contributors),
        price=first_priced.price if first_priced else None,
        price_source=first_priced.price_source if first_priced else None,
        last_updated=last_updated,
        is_manual=first_priced.is_manual if first_priced else False,
        is_stale=all(r.is_stale for r in rows),
        market_value=market_value,
        average_cost=average_cost,
        unrealized_pnl=unrealized_pnl,
        unrealized_pnl_pct=unrealized_pct,
    )


def consolidate_by_asset(rows: Iterable[HoldingRow]) -> list[HoldingRow]:
    """
    Collapse per-account rows into one row per asset.

    Cost basis is summed only if every non-dust contributor is KNOWN;
    otherwise the row takes the highest-priority status among them.
    Consolidating already consolidated rows returns equal rows.
    """
    groups: dict[int, list[HoldingRow]] = {}
    for row in rows:
        groups.setdefault(row.asset_id, []).append(row)

    pnl = PnLCalculator()
    consolidated = [_consolidate_group(group, pnl) for group in groups.values()]
    return _sort_rows(consolidated)
