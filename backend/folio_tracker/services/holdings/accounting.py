# backend/folio_tracker/services/holdings/accounting.py
"""
Average-cost accounting rules applied to a single position.

Every function here mutates only the Position it is handed. Choosing which
position to touch (and creating it) is the replayer's job.

Rules:
    apply_non_transfer       Trades, deposits, withdrawals, yield, other,
                             and transfer legs that could not be paired
    apply_reconciliation     Quantity-only correction, clears dust
    apply_cost_basis_reset   Explicit basis override

Cash-like assets:
    Basis moves 1:1 with quantity. The status is never changed by the cash
    rule, so a cash position that was degraded stays degraded until reset.

Non-cash assets:
    q > 0  acquisition: add tx_value to basis (unvalued → UNKNOWN)
    q < 0  disposal: remove average cost × |q| (unknown or empty → UNKNOWN)
    q == 0 no effect
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Union

from folio_tracker.schemas.ledger import (
    CostBasisResetEntry,
    ReconciliationEntry,
    TransferEntry,
    ValuedEntry,
)
from folio_tracker.services.constants import ZERO
from folio_tracker.services.holdings.types import (
    AssetProfile,
    CostBasisStatus,
    Position,
    PositionKey,
)

logger = logging.getLogger(__name__)

# Entries that go through the plain average-cost rule
MovementEntry = Union[ValuedEntry, TransferEntry]


def get_or_create_position(
        positions: dict[PositionKey, Position],
        asset_id: int,
        account_id: int,
) -> Position:
    """Return the position for (asset, account), creating an empty one on first touch."""
    key = (asset_id, account_id)
    position = positions.get(key)
    if position is None:
        position = Position(asset_id=asset_id, account_id=account_id)
        positions[key] = position
    return position


# =============================================================================
# NON-TRANSFER RULE
# =============================================================================

def apply_non_transfer(
        position: Position,
        entry: MovementEntry,
        asset: AssetProfile | None,
) -> None:
    """
    Apply a plain movement to a position.

    Args:
        position: Position of (entry.asset_id, entry.account_id)
        entry: Movement with a signed quantity
        asset: Asset metadata (None is treated as non-cash)
    """
    quantity = entry.quantity
    if quantity == ZERO:
        return

    if asset is not None and asset.is_cash_like:
        _apply_cash_movement(position, quantity)
        return

    quantity_before = position.quantity

    if quantity > ZERO:
        tx_value = entry.transaction_value
        if tx_value is None:
            logger.debug(
                f"Unvalued acquisition {entry.id} on asset {entry.asset_id}, "
                f"account {entry.account_id}: cost basis unknown"
            )
            position.degrade(CostBasisStatus.UNKNOWN)
        else:
            position.add_cost_basis(tx_value)
    else:
        if position.cost_basis_known and quantity_before > ZERO:
            average_cost = position.cost_basis / quantity_before
            position.reduce_cost_basis(average_cost * abs(quantity))
        else:
            logger.debug(
                f"Disposal {entry.id} from unknown or empty position "
                f"(asset {entry.asset_id}, account {entry.account_id})"
            )
            position.degrade(CostBasisStatus.UNKNOWN)

    position.quantity = quantity_before + quantity
    if quantity < ZERO:
        # Selling out leaves no basis behind, not a rounding residue
        position.clear_dust()


def _apply_cash_movement(position: Position, quantity: Decimal) -> None:
    """Cash-like: quantity and basis move together."""
    amount = abs(quantity)
    if quantity > ZERO:
        position.quantity += amount
        position.add_cost_basis(amount)
    else:
        position.quantity -= amount
        position.reduce_cost_basis(amount)


# =============================================================================
# RECONCILIATION & RESET
# =============================================================================

def apply_reconciliation(position: Position, entry: ReconciliationEntry) -> None:
    """Adjust quantity only; an emptied position also drops its basis."""
    position.quantity += entry.quantity
    position.clear_dust()


def apply_cost_basis_reset(position: Position, entry: CostBasisResetEntry) -> None:
    """Overwrite the basis. Quantity is never touched."""
    value = entry.total_value_in_base
    position.reset_cost_basis(abs(value) if value is not None else None)
    logger.debug(
        f"Cost basis reset {entry.id} on asset {entry.asset_id}, "
        f"account {entry.account_id}: {position.cost_basis_status.value}"
    )
