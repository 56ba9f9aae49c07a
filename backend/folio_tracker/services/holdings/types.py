# backend/folio_tracker/services/holdings/types.py
"""
Internal data types for the holdings engine.

These dataclasses are used internally by the replayer, transfer matcher and
valuation builder. They are NOT Pydantic schemas - ledger input contracts are
defined in folio_tracker/schemas/ledger.py.

Design Principles:
- Use Decimal for ALL quantities and money (never float)
- Optional fields use None, not sentinel values ("not priced" is None, not 0)
- Position is the only mutable type; it lives for one replay
- Cost basis status only moves "up" the priority order, except through an
  explicit COST_BASIS_RESET

Type Hierarchy:
    CostBasisStatus     - KNOWN ... TRANSFER_INVALID, with merge priority
    AssetProfile        - Asset metadata the engine reads
    Position            - Running (quantity, cost_basis) per (asset, account)
    TransferIssue       - Diagnostic for a transfer group that failed to pair
    ReplayResult        - Positions + transfer issues of one replay
    PriceResolution     - Resolved price with staleness
    HoldingRow          - Valued position
    HoldingsSummary     - Fleet-wide totals
    HoldingsResult      - Rows + summary + issues
    TransferIssueReport - TransferIssue + leg details
    CostBasisResetPlan  - COST_BASIS_RESET drafts from a recalculation
    ReconciliationPlan  - RECONCILIATION deltas towards target quantities
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from folio_tracker.models import PricingMode
from folio_tracker.services.constants import (
    CASH_LIKE_ASSET_TYPES,
    CASH_LIKE_SYMBOLS,
    CASH_LIKE_VOLATILITY_BUCKET,
    DUST_THRESHOLD,
    ZERO,
)

# (asset_id, account_id)
PositionKey = tuple[int, int]


# =============================================================================
# COST BASIS STATUS
# =============================================================================

class CostBasisStatus(str, enum.Enum):
    """
    Trust level of a position's cost basis.

    Priority (highest wins when merged):
        TRANSFER_INVALID > TRANSFER_AMBIGUOUS > TRANSFER_UNMATCHED > UNKNOWN > KNOWN
    """
    KNOWN = "KNOWN"
    UNKNOWN = "UNKNOWN"
    TRANSFER_UNMATCHED = "TRANSFER_UNMATCHED"
    TRANSFER_AMBIGUOUS = "TRANSFER_AMBIGUOUS"
    TRANSFER_INVALID = "TRANSFER_INVALID"

    @property
    def priority(self) -> int:
        return _STATUS_PRIORITY[self]


_STATUS_PRIORITY: dict[CostBasisStatus, int] = {
    CostBasisStatus.KNOWN: 0,
    CostBasisStatus.UNKNOWN: 1,
    CostBasisStatus.TRANSFER_UNMATCHED: 2,
    CostBasisStatus.TRANSFER_AMBIGUOUS: 3,
    CostBasisStatus.TRANSFER_INVALID: 4,
}


def merge_status(current: CostBasisStatus, incoming: CostBasisStatus) -> CostBasisStatus:
    """Return whichever status has the higher priority."""
    return incoming if incoming.priority > current.priority else current


class TransferIssueKind(str, enum.Enum):
    """Why a transfer group could not be paired."""
    UNMATCHED = "UNMATCHED"
    AMBIGUOUS = "AMBIGUOUS"
    INVALID_LEGS = "INVALID_LEGS"

    @property
    def status(self) -> CostBasisStatus:
        return _ISSUE_STATUS[self]


_ISSUE_STATUS: dict[TransferIssueKind, CostBasisStatus] = {
    TransferIssueKind.UNMATCHED: CostBasisStatus.TRANSFER_UNMATCHED,
    TransferIssueKind.AMBIGUOUS: CostBasisStatus.TRANSFER_AMBIGUOUS,
    TransferIssueKind.INVALID_LEGS: CostBasisStatus.TRANSFER_INVALID,
}


# =============================================================================
# ASSETS & PRICES
# =============================================================================

@dataclass(frozen=True)
class LatestPriceRecord:
    """Latest auto-fetched price for an asset."""

    price_in_base: Decimal
    last_updated: datetime
    source: str | None = None


@dataclass(frozen=True)
class AssetProfile:
    """
    Asset metadata read by the engine.

    Attributes:
        id: Asset ID
        symbol: Ticker / coin symbol (e.g. "BTC")
        name: Display name
        type: Asset type label (e.g. "CRYPTO", "CASH", "STABLE")
        volatility_bucket: Volatility label (e.g. "HIGH", "CASH_LIKE")
        pricing_mode: AUTO or MANUAL
        manual_price: Operator-entered price (optional)
        latest_price: Latest auto price record (optional)
    """

    id: int
    symbol: str
    name: str
    type: str
    volatility_bucket: str
    pricing_mode: PricingMode = PricingMode.AUTO
    manual_price: Decimal | None = None
    latest_price: LatestPriceRecord | None = None

    @property
    def is_cash_like(self) -> bool:
        """Cash-like assets are valued 1:1 with the base currency."""
        return (
            (self.type or "").upper() in CASH_LIKE_ASSET_TYPES
            or (self.volatility_bucket or "").upper() == CASH_LIKE_VOLATILITY_BUCKET
            or (self.symbol or "").upper() in CASH_LIKE_SYMBOLS
        )


@dataclass(frozen=True)
class PriceResolution:
    """
    Price chosen for an asset.

    Attributes:
        price: Price in base currency (None if no price at all)
        source: "Manual Entry", provider name, "Auto Price", or None
        last_updated: Timestamp of the price (None if unknown)
        is_manual: True if the manual price was used
        is_stale: True if the price is missing or older than the grace window
    """

    price: Decimal | None
    source: str | None
    last_updated: datetime | None
    is_manual: bool
    is_stale: bool


# =============================================================================
# POSITION
# =============================================================================

@dataclass(frozen=True)
class TransferDiagnostic:
    """Transfer group key plus the ledger ids that caused a TRANSFER_* status."""

    key: str
    transaction_ids: tuple[int, ...]


@dataclass
class Position:
    """
    Running state of one (asset, account) pair during a replay.

    Invariants:
        - cost_basis >= 0
        - TRANSFER_* statuses are only cleared by reset_cost_basis()
    """

    asset_id: int
    account_id: int
    quantity: Decimal = ZERO
    cost_basis: Decimal = ZERO
    cost_basis_status: CostBasisStatus = CostBasisStatus.KNOWN
    transfer_diagnostic: TransferDiagnostic | None = None

    @property
    def key(self) -> PositionKey:
        return self.asset_id, self.account_id

    @property
    def cost_basis_known(self) -> bool:
        return self.cost_basis_status is CostBasisStatus.KNOWN

    @property
    def is_dust(self) -> bool:
        """True if the quantity is zero within the dust threshold."""
        return abs(self.quantity) <= DUST_THRESHOLD

    def add_cost_basis(self, amount: Decimal) -> None:
        self.cost_basis += amount

    def reduce_cost_basis(self, amount: Decimal) -> None:
        """Subtract basis, clamping at zero."""
        self.cost_basis = max(self.cost_basis - amount, ZERO)

    def degrade(
            self,
            status: CostBasisStatus = CostBasisStatus.UNKNOWN,
            diagnostic: TransferDiagnostic | None = None,
    ) -> None:
        """
        Lower trust in the cost basis.

        The stored status only changes if `status` outranks it, so a
        TRANSFER_* status is never overwritten by UNKNOWN.
        """
        merged = merge_status(self.cost_basis_status, status)
        if diagnostic is not None and merged is status:
            self.transfer_diagnostic = diagnostic
        self.cost_basis_status = merged

    def reset_cost_basis(self, value: Decimal | None) -> None:
        """
        Explicit override: the only path back to KNOWN.

        A missing value still overrides the status, to UNKNOWN.
        """
        self.transfer_diagnostic = None
        if value is None:
            self.cost_basis_status = CostBasisStatus.UNKNOWN
            return
        self.cost_basis = max(abs(value), ZERO)
        self.cost_basis_status = CostBasisStatus.KNOWN

    def clear_dust(self) -> None:
        """Zero out quantity and basis if the quantity is dust."""
        if self.is_dust:
            self.quantity = ZERO
            self.cost_basis = ZERO


# =============================================================================
# REPLAY OUTPUT
# =============================================================================

@dataclass(frozen=True)
class TransferIssue:
    """
    A transfer group that could not be paired.

    Attributes:
        key: Transfer group key
        asset_id: Asset of the group
        date_time: Timestamp of the first leg
        issue: UNMATCHED (1 leg), AMBIGUOUS (3+ legs) or INVALID_LEGS
        leg_ids: Ledger ids in the group, in replay order
    """

    key: str
    asset_id: int
    date_time: datetime
    issue: TransferIssueKind
    leg_ids: tuple[int, ...]

    @property
    def status(self) -> CostBasisStatus:
        return self.issue.status


@dataclass
class ReplayResult:
    """Final positions and transfer diagnostics of one replay."""

    positions: dict[PositionKey, Position]
    issues: list[TransferIssue] = field(default_factory=list)

    def open_positions(self) -> list[Position]:
        """Positions with non-dust quantity, in first-touch order."""
        return [p for p in self.positions.values() if not p.is_dust]

    def get(self, asset_id: int, account_id: int) -> Position | None:
        return self.positions.get((asset_id, account_id))


# =============================================================================
# VALUATION OUTPUT
# =============================================================================

@dataclass(frozen=True)
class HoldingRow:
    """
    A valued position.

    cost_basis is None whenever the position's basis is not KNOWN; the raw
    replayed number is not trustworthy in that case.

    Attributes:
        market_value: quantity × price (None if unpriced)
        average_cost: cost_basis / |quantity| (None if empty or unknown)
        unrealized_pnl: market_value - cost_basis (None if either missing)
        unrealized_pnl_pct: unrealized_pnl / cost_basis × 100 (None if basis
            missing or zero)
    """

    asset_id: int
    asset_symbol: str
    asset_name: str
    asset_type: str
    volatility_bucket: str
    pricing_mode: PricingMode
    manual_price: Decimal | None
    account_id: int
    account_name: str
    quantity: Decimal
    cost_basis: Decimal | None
    cost_basis_status: CostBasisStatus
    transfer_diagnostic: TransferDiagnostic | None
    price: Decimal | None
    price_source: str | None
    last_updated: datetime | None
    is_manual: bool
    is_stale: bool
    market_value: Decimal | None
    average_cost: Decimal | None
    unrealized_pnl: Decimal | None
    unrealized_pnl_pct: Decimal | None

    @property
    def cost_basis_known(self) -> bool:
        return self.cost_basis_status is CostBasisStatus.KNOWN

    @property
    def is_priced(self) -> bool:
        return self.price is not None and self.price > ZERO


@dataclass
class HoldingsSummary:
    """
    Fleet-wide totals.

    total_cost_basis and total_unrealized_pnl are partial sums over rows
    where the field is known; they do not go None because one row is unknown.
    """

    total_value: Decimal
    total_cost_basis: Decimal
    total_unrealized_pnl: Decimal
    by_type: dict[str, Decimal] = field(default_factory=dict)
    by_volatility: dict[str, Decimal] = field(default_factory=dict)
    updated_at: datetime | None = None
    base_currency: str = "USD"


@dataclass
class HoldingsResult:
    """Return type of HoldingsService.compute_holdings()."""

    rows: list[HoldingRow]
    summary: HoldingsSummary
    issues: list[TransferIssue] = field(default_factory=list)


# =============================================================================
# TRANSFER ISSUE REPORTS
# =============================================================================

@dataclass(frozen=True)
class TransferLegDetail:
    """One leg of a failed transfer group, with display names."""

    id: int
    date_time: datetime
    account_id: int
    account_name: str
    asset_id: int
    asset_symbol: str
    quantity: Decimal
    external_reference: str | None


@dataclass(frozen=True)
class TransferIssueReport:
    """A TransferIssue enriched with its legs."""

    issue: TransferIssue
    legs: list[TransferLegDetail]

    @property
    def account_ids(self) -> set[int]:
        return {leg.account_id for leg in self.legs}


# =============================================================================
# COST BASIS RECALCULATION
# =============================================================================

@dataclass(frozen=True)
class ResetDraft:
    """A COST_BASIS_RESET row to be written."""

    asset_id: int
    account_id: int
    date_time: datetime
    cost_basis: Decimal
    external_reference: str


@dataclass
class CostBasisResetPlan:
    """
    Output of a cost basis recalculation.

    Attributes:
        as_of: Timestamp the resets are written at
        mode: Replay mode used ("PURE" or "HONOR_RESETS")
        reference: External reference shared by all drafts ("RECALC:...")
        drafts: One reset per known, non-empty position
        skipped_unknown: Positions left out because their basis is not known
        skipped_empty: Positions left out because they are dust
        issues: Transfer issues found during the replay
    """

    as_of: datetime
    mode: str
    reference: str
    drafts: list[ResetDraft] = field(default_factory=list)
    skipped_unknown: int = 0
    skipped_empty: int = 0
    issues: list[TransferIssue] = field(default_factory=list)


@dataclass(frozen=True)
class AppliedResets:
    """Outcome of writing a CostBasisResetPlan."""

    reference: str
    created: int
    deleted: int


# =============================================================================
# RECONCILIATION
# =============================================================================

@dataclass(frozen=True)
class ReconciliationRow:
    """
    One target compared against the replayed quantity.

    Attributes:
        current_quantity: Replayed quantity at as_of (0 if never held)
        delta_quantity: target_quantity - current_quantity
        will_create: |delta| exceeds the plan's epsilon
    """

    account_id: int
    asset_id: int
    current_quantity: Decimal
    target_quantity: Decimal
    delta_quantity: Decimal
    will_create: bool
    notes: str | None = None


@dataclass
class ReconciliationPlan:
    """
    Preview of the RECONCILIATION rows that bring positions to their targets.

    The reference and replace flag are part of the plan: current quantities
    exclude the reconciliations the plan will replace.
    """

    as_of: datetime
    epsilon: Decimal
    external_reference: str | None
    replace_existing: bool
    rows: list[ReconciliationRow] = field(default_factory=list)

    @property
    def pending(self) -> list[ReconciliationRow]:
        return [row for row in self.rows if row.will_create]

    @property
    def replaces(self) -> bool:
        """True if committing deletes earlier rows with the same reference."""
        return self.replace_existing and self.external_reference is not None


@dataclass(frozen=True)
class AppliedReconciliation:
    """Outcome of writing a ReconciliationPlan."""

    external_reference: str | None
    created: int
    deleted: int
