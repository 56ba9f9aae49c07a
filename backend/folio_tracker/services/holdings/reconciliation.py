# backend/folio_tracker/services/holdings/reconciliation.py
"""
Quantity reconciliation planning.

A reconciliation compares externally observed quantities (exchange
statements, wallet balances) with the replayed ledger at `as_of` and plans
one RECONCILIATION row per target whose delta exceeds epsilon:

    delta = target_quantity - current_quantity

Re-running a reconciliation with the same external reference replaces the
earlier rows: those rows are left out of the replay, so the deltas are
measured against the ledger without them. Writing is the service's job;
this module is pure.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal

from folio_tracker.models import TxType
from folio_tracker.schemas.holdings import ReconciliationTarget
from folio_tracker.schemas.ledger import LedgerEntry
from folio_tracker.services.constants import ZERO
from folio_tracker.services.holdings.types import (
    ReconciliationPlan,
    ReconciliationRow,
    ReplayResult,
)

logger = logging.getLogger(__name__)


def normalize_reconciliation_reference(reference: str | None) -> str | None:
    """Trim the reference; blank means none."""
    return (reference or "").strip() or None


def is_replaced_reconciliation(entry: LedgerEntry, reference: str | None, as_of: datetime) -> bool:
    """True if `entry` is a RECONCILIATION an identical re-run would overwrite."""
    if reference is None or entry.tx_type != TxType.RECONCILIATION:
        return False
    return entry.external_reference == reference and entry.date_time == as_of


def build_reconciliation_plan(
        result: ReplayResult,
        targets: Iterable[ReconciliationTarget],
        as_of: datetime,
        epsilon: Decimal,
        external_reference: str | None = None,
        replace_existing: bool = True,
) -> ReconciliationPlan:
    """
    Compare each target with its replayed position.

    A target for a position the ledger never touched starts from zero.
    Rows keep the order of `targets`.
    """
    if as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=timezone.utc)

    plan = ReconciliationPlan(
        as_of=as_of,
        epsilon=epsilon,
        external_reference=normalize_reconciliation_reference(external_reference),
        replace_existing=replace_existing,
    )

    for target in targets:
        position = result.get(target.asset_id, target.account_id)
        current = position.quantity if position is not None else ZERO
        delta = target.target_quantity - current
        plan.rows.append(ReconciliationRow(
            account_id=target.account_id,
            asset_id=target.asset_id,
            current_quantity=current,
            target_quantity=target.target_quantity,
            delta_quantity=delta,
            will_create=abs(delta) > epsilon,
            notes=target.notes,
        ))

    logger.info(
        f"Reconciliation as of {as_of.isoformat()}: {len(plan.pending)} of "
        f"{len(plan.rows)} targets need an adjustment"
    )
    return plan
