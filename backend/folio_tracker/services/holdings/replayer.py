# backend/folio_tracker/services/holdings/replayer.py
"""
Position ledger replay.

Replays an ordered ledger into one Position per (asset_id, account_id).
Every call builds a fresh position map; nothing is kept between replays.

Dispatch:
    COST_BASIS_RESET  → accounting.apply_cost_basis_reset (HONOR_RESETS only)
    RECONCILIATION    → accounting.apply_reconciliation
    TRANSFER          → TransferMatcher
    everything else   → accounting.apply_non_transfer

Usage:
    replayer = PositionLedgerReplayer()
    result = replayer.replay(entries, assets)
    position = result.get(asset_id=1, account_id=2)
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping

from folio_tracker.schemas.ledger import (
    CostBasisResetEntry,
    LedgerEntry,
    ReconciliationEntry,
    TransferEntry,
)
from folio_tracker.services.exceptions import InvalidReplayModeError
from folio_tracker.services.holdings.accounting import (
    apply_cost_basis_reset,
    apply_non_transfer,
    apply_reconciliation,
    get_or_create_position,
)
from folio_tracker.services.holdings.transfers import TransferMatcher
from folio_tracker.services.holdings.types import (
    AssetProfile,
    Position,
    PositionKey,
    ReplayResult,
)

logger = logging.getLogger(__name__)


class ReplayMode(str, enum.Enum):
    """
    How COST_BASIS_RESET entries are treated.

    HONOR_RESETS: resets override the basis (holdings view)
    PURE: resets are skipped, basis comes from trades and transfers alone
    """
    HONOR_RESETS = "HONOR_RESETS"
    PURE = "PURE"

    @classmethod
    def parse(cls, value: "ReplayMode | str") -> "ReplayMode":
        """Accept an enum member or its case-insensitive name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidReplayModeError(str(value)) from None


class PositionLedgerReplayer:
    """
    Replays ledger entries into positions.

    Stateless: the position map and transfer matcher are created per call,
    so one replayer instance can be shared.
    """

    def replay(
            self,
            entries: Iterable[LedgerEntry],
            assets: Mapping[int, AssetProfile],
            mode: ReplayMode | str = ReplayMode.HONOR_RESETS,
    ) -> ReplayResult:
        """
        Replay entries in (date_time, id) order.

        Args:
            entries: Ledger entries (sorted again here, input order is not trusted)
            assets: Asset metadata keyed by asset id; missing assets are
                treated as non-cash
            mode: HONOR_RESETS or PURE

        Returns:
            ReplayResult with every touched position and transfer issues
        """
        mode = ReplayMode.parse(mode)
        ordered = sorted(entries, key=lambda e: e.sort_key)

        positions: dict[PositionKey, Position] = {}
        matcher = TransferMatcher(e for e in ordered if isinstance(e, TransferEntry))
        result = ReplayResult(positions=positions)
        skipped_resets = 0

        for entry in ordered:
            if isinstance(entry, CostBasisResetEntry):
                if mode is ReplayMode.PURE:
                    skipped_resets += 1
                    continue
                position = get_or_create_position(positions, entry.asset_id, entry.account_id)
                apply_cost_basis_reset(position, entry)

            elif isinstance(entry, ReconciliationEntry):
                position = get_or_create_position(positions, entry.asset_id, entry.account_id)
                apply_reconciliation(position, entry)

            elif isinstance(entry, TransferEntry):
                issue = matcher.process(entry, positions, assets)
                if issue is not None:
                    result.issues.append(issue)

            else:
                position = get_or_create_position(positions, entry.asset_id, entry.account_id)
                apply_non_transfer(position, entry, assets.get(entry.asset_id))

        logger.info(
            f"Replayed {len(ordered)} entries ({mode.value}): "
            f"{len(positions)} positions, {matcher.group_count} transfer groups, "
            f"{len(result.issues)} transfer issues"
            + (f", {skipped_resets} resets skipped" if skipped_resets else "")
        )
        return result
