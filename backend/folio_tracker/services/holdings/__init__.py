# backend/folio_tracker/services/holdings/__init__.py
"""
Holdings Service Package.

This package reconstructs positions from the ledger and values them:
- Average-cost replay per (asset, account)
- Transfer pairing with cost basis propagation
- Price resolution with staleness
- Valuation, summary and consolidation
- Cost basis recalculation snapshots
- Quantity reconciliation towards external balances

Usage:
    from folio_tracker.services.holdings import HoldingsService

    service = HoldingsService()
    result = service.compute_holdings(db)
    consolidated = service.consolidate_by_asset(result.rows)

Architecture:
    holdings/
    ├── __init__.py              # This file - package exports
    ├── types.py                 # Internal data classes
    ├── accounting.py            # Per-position average-cost rules
    ├── transfers.py             # Transfer key, grouping and pairing
    ├── replayer.py              # Ledger replay (ReplayMode)
    ├── pricing.py               # Price resolution
    ├── valuation.py             # Rows, summary, consolidation
    ├── recalc.py                # Cost basis reset planning
    ├── reconciliation.py        # Reconciliation delta planning
    ├── repository.py            # SQLAlchemy-backed sources
    └── service.py               # HoldingsService (orchestrator)

Data Flow:
    LedgerTransaction rows → LedgerRepository → LedgerEntry
    LedgerEntry → PositionLedgerReplayer (+ TransferMatcher) → Positions
    Positions + Prices → ValuationCalculator → HoldingRows
    HoldingRows → summarize_holdings → HoldingsSummary
"""

from folio_tracker.services.holdings.replayer import PositionLedgerReplayer, ReplayMode
from folio_tracker.services.holdings.transfers import TransferMatcher, build_transfer_key
from folio_tracker.services.holdings.pricing import resolve_price, is_price_stale
from folio_tracker.services.holdings.valuation import (
    PnLCalculator,
    ValuationCalculator,
    consolidate_by_asset,
    summarize_holdings,
)
# Main service
from folio_tracker.services.holdings.service import HoldingsService
from folio_tracker.services.holdings.repository import LedgerRepository
# Internal types (for advanced usage / testing)
from folio_tracker.services.holdings.types import (
    AssetProfile,
    CostBasisStatus,
    CostBasisResetPlan,
    AppliedReconciliation,
    HoldingRow,
    HoldingsResult,
    HoldingsSummary,
    LatestPriceRecord,
    Position,
    PriceResolution,
    ReconciliationPlan,
    ReconciliationRow,
    ReplayResult,
    TransferDiagnostic,
    TransferIssue,
    TransferIssueKind,
    TransferIssueReport,
    merge_status,
)

__all__ = [
    # Main service
    "HoldingsService",
    "LedgerRepository",

    # Engine
    "PositionLedgerReplayer",
    "ReplayMode",
    "TransferMatcher",
    "build_transfer_key",
    "resolve_price",
    "is_price_stale",
    "PnLCalculator",
    "ValuationCalculator",
    "consolidate_by_asset",
    "summarize_holdings",

    # Data types
    "AssetProfile",
    "CostBasisStatus",
    "CostBasisResetPlan",
    "AppliedReconciliation",
    "HoldingRow",
    "HoldingsResult",
    "HoldingsSummary",
    "LatestPriceRecord",
    "Position",
    "PriceResolution",
    "ReconciliationPlan",
    "ReconciliationRow",
    "ReplayResult",
    "TransferDiagnostic",
    "TransferIssue",
    "TransferIssueKind",
    "TransferIssueReport",
    "merge_status",
]
