# backend/folio_tracker/services/holdings/transfers.py
"""
Transfer matching.

A transfer is recorded as two TRANSFER legs: an outflow from the source
account and an inflow to the destination account. Legs are grouped by a
transfer key; a group of exactly two valid legs moves cost basis from the
source to the destination. Anything else falls back to the plain accounting
rule and flags the resulting positions.

Transfer key:
    MATCH:<token> reference   "{asset_id}|MATCH:<token>"
    otherwise                 "{asset_id}|{iso_utc}|{abs_qty}|{reference}"

Group outcomes:
    1 leg           → UNMATCHED,    positions flagged TRANSFER_UNMATCHED
    3+ legs         → AMBIGUOUS,    positions flagged TRANSFER_AMBIGUOUS
    2 invalid legs  → INVALID_LEGS, positions flagged TRANSFER_INVALID
    2 valid legs    → basis moved at the source's average cost
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal

from folio_tracker.schemas.ledger import TransferEntry
from folio_tracker.services.constants import TRANSFER_BALANCE_TOLERANCE, ZERO
from folio_tracker.services.holdings.accounting import (
    apply_non_transfer,
    get_or_create_position,
)
from folio_tracker.services.holdings.types import (
    AssetProfile,
    CostBasisStatus,
    Position,
    PositionKey,
    TransferDiagnostic,
    TransferIssue,
    TransferIssueKind,
)

logger = logging.getLogger(__name__)


def build_transfer_key(entry: TransferEntry) -> str:
    """
    Key that the two legs of one transfer share.

    Manual matches key on the reference alone so legs recorded at different
    times or with different quantities still pair.
    """
    reference = entry.external_reference or ""
    if entry.is_manual_match:
        return f"{entry.asset_id}|{reference}"
    timestamp = entry.date_time.isoformat()
    quantity = format(abs(entry.quantity).normalize(), "f")
    return f"{entry.asset_id}|{timestamp}|{quantity}|{reference}"


def is_balanced(source_quantity: Decimal, destination_quantity: Decimal) -> bool:
    """True if two opposite legs net to zero within tolerance."""
    return (
        abs(source_quantity + destination_quantity) <= TRANSFER_BALANCE_TOLERANCE
        and abs(abs(source_quantity) - abs(destination_quantity)) <= TRANSFER_BALANCE_TOLERANCE
    )


class TransferMatcher:
    """
    Pairs TRANSFER legs and applies them to positions.

    One matcher serves one replay: groups are built up front over the full
    ordered stream, and each group is resolved exactly once, when its first
    leg is reached.

    Usage:
        matcher = TransferMatcher(transfer_entries)
        for entry in ordered_entries:
            if isinstance(entry, TransferEntry):
                issue = matcher.process(entry, positions, assets)
    """

    def __init__(self, entries: Iterable[TransferEntry]) -> None:
        self._groups: dict[str, list[TransferEntry]] = {}
        for entry in entries:
            self._groups.setdefault(build_transfer_key(entry), []).append(entry)
        self._processed: set[str] = set()

    @property
    def group_count(self) -> int:
        return len(self._groups)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def process(
            self,
            entry: TransferEntry,
            positions: dict[PositionKey, Position],
            assets: Mapping[int, AssetProfile],
    ) -> TransferIssue | None:
        """
        Resolve the group of `entry` if it has not been resolved yet.

        Args:
            entry: A TRANSFER leg reached by the replay
            positions: The replay's position map (mutated)
            assets: Asset metadata keyed by asset id

        Returns:
            TransferIssue if the group could not be paired, else None
        """
        key = build_transfer_key(entry)
        if key in self._processed:
            return None
        self._processed.add(key)

        group = self._groups.get(key, [entry])

        if len(group) != 2:
            kind = TransferIssueKind.UNMATCHED if len(group) < 2 else TransferIssueKind.AMBIGUOUS
            return self._fall_back(key, group, kind, positions, assets)

        leg_a, leg_b = group
        if not self._is_valid_pair(leg_a, leg_b):
            return self._fall_back(key, group, TransferIssueKind.INVALID_LEGS, positions, assets)

        self._apply_pair(leg_a, leg_b, positions)
        return None

    # =========================================================================
    # PRIVATE METHODS
    # =========================================================================

    @staticmethod
    def _is_valid_pair(leg_a: TransferEntry, leg_b: TransferEntry) -> bool:
        """Same asset, different accounts, non-zero opposite signs, balanced."""
        if leg_a.asset_id != leg_b.asset_id:
            return False
        if leg_a.account_id == leg_b.account_id:
            return False
        if leg_a.quantity == ZERO or leg_b.quantity == ZERO:
            return False
        if (leg_a.quantity > ZERO) == (leg_b.quantity > ZERO):
            return False
        if leg_a.is_manual_match:
            return True
        return is_balanced(leg_a.quantity, leg_b.quantity)

    @staticmethod
    def _apply_pair(
            leg_a: TransferEntry,
            leg_b: TransferEntry,
            positions: dict[PositionKey, Position],
    ) -> None:
        """
        Move quantity and basis between the two legs' positions.

        moved basis   = average cost × min(|source qty|, |destination qty|)
        source loses  = average cost × |source qty|

        For a manually matched pair that received less than was sent, the
        difference is basis consumed by the transfer fee.
        """
        source_leg, dest_leg = (leg_a, leg_b) if leg_a.quantity < ZERO else (leg_b, leg_a)

        source = get_or_create_position(positions, source_leg.asset_id, source_leg.account_id)
        destination = get_or_create_position(positions, dest_leg.asset_id, dest_leg.account_id)

        source_qty_before = source.quantity
        source.quantity += source_leg.quantity
        destination.quantity += dest_leg.quantity

        if not source.cost_basis_known or source_qty_before <= ZERO:
            source.degrade(CostBasisStatus.UNKNOWN)
            destination.degrade(CostBasisStatus.UNKNOWN)
            return

        source_qty = abs(source_leg.quantity)
        average_cost = source.cost_basis / source_qty_before
        moved_basis = average_cost * min(source_qty, abs(dest_leg.quantity))
        source_reduction = average_cost * source_qty

        if not (moved_basis.is_finite() and source_reduction.is_finite()):
            destination.degrade(CostBasisStatus.UNKNOWN)
            return

        source.reduce_cost_basis(source_reduction)
        source.clear_dust()
        destination.add_cost_basis(moved_basis)

    @staticmethod
    def _fall_back(
            key: str,
            group: list[TransferEntry],
            kind: TransferIssueKind,
            positions: dict[PositionKey, Position],
            assets: Mapping[int, AssetProfile],
    ) -> TransferIssue:
        """Apply every leg as a plain movement, then flag what is left open."""
        touched: dict[PositionKey, Position] = {}
        for leg in group:
            position = get_or_create_position(positions, leg.asset_id, leg.account_id)
            apply_non_transfer(position, leg, assets.get(leg.asset_id))
            touched[position.key] = position

        leg_ids = tuple(leg.id for leg in group)
        diagnostic = TransferDiagnostic(key=key, transaction_ids=leg_ids)
        for position in touched.values():
            if not position.is_dust:
                position.degrade(kind.status, diagnostic)

        first = group[0]
        logger.warning(
            f"Transfer group {key} {kind.value}: {len(group)} leg(s), ids {list(leg_ids)}"
        )
        return TransferIssue(
            key=key,
            asset_id=first.asset_id,
            date_time=first.date_time,
            issue=kind,
            leg_ids=leg_ids,
        )
