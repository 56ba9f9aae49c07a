# backend/folio_tracker/services/holdings/recalc.py
"""
Cost basis recalculation planning.

A recalculation replays the ledger up to `as_of` and snapshots every known,
non-empty position as a COST_BASIS_RESET draft tagged "RECALC:<reference>".
Writing the drafts (and dropping previous RECALC: resets) is the service's
job; this module is pure.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from folio_tracker.services.constants import RECALC_REFERENCE_PREFIX, ZERO
from folio_tracker.services.holdings.replayer import ReplayMode
from folio_tracker.services.holdings.types import (
    CostBasisResetPlan,
    ReplayResult,
    ResetDraft,
)

logger = logging.getLogger(__name__)


def normalize_recalc_reference(reference: str | None, as_of: datetime) -> str:
    """
    Build the external reference shared by one recalculation's resets.

    Blank → "RECALC:<as_of iso>"; missing prefix is added.
    """
    trimmed = (reference or "").strip()
    if not trimmed:
        return f"{RECALC_REFERENCE_PREFIX}{as_of.isoformat()}"
    if trimmed.startswith(RECALC_REFERENCE_PREFIX):
        return trimmed
    return f"{RECALC_REFERENCE_PREFIX}{trimmed}"


def build_reset_plan(
        result: ReplayResult,
        as_of: datetime,
        mode: ReplayMode,
        reference: str | None = None,
) -> CostBasisResetPlan:
    """
    Turn a replay into reset drafts.

    Positions with unknown (or TRANSFER_*) basis and dust positions are
    counted, not written.
    """
    if as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=timezone.utc)

    plan = CostBasisResetPlan(
        as_of=as_of,
        mode=mode.value,
        reference=normalize_recalc_reference(reference, as_of),
        issues=list(result.issues),
    )

    for position in result.positions.values():
        if not position.cost_basis_known:
            plan.skipped_unknown += 1
            continue
        if position.is_dust:
            plan.skipped_empty += 1
            continue
        plan.drafts.append(ResetDraft(
            asset_id=position.asset_id,
            account_id=position.account_id,
            date_time=as_of,
            cost_basis=max(position.cost_basis, ZERO),
            external_reference=plan.reference,
        ))

    if plan.skipped_unknown or plan.skipped_empty:
        logger.warning(
            f"Recalc {plan.reference} ({plan.mode}) skipped positions: "
            f"{plan.skipped_unknown} unknown, {plan.skipped_empty} empty"
        )
    return plan
