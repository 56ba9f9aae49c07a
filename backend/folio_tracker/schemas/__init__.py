# backend/folio_tracker/schemas/__init__.py
"""
Pydantic schemas for holdings engine inputs.

- ledger: Discriminated union of ledger entries (one variant per tx_type family)
- holdings: Holdings query filters and reconciliation targets

Usage:
    from folio_tracker.schemas import HoldingFilters, parse_ledger_entry
"""

from folio_tracker.schemas.holdings import HoldingFilters, ReconciliationTarget
from folio_tracker.schemas.ledger import (
    LedgerEntry,
    LedgerEntryBase,
    ValuedEntry,
    TransferEntry,
    CostBasisResetEntry,
    ReconciliationEntry,
    parse_ledger_entry,
)

__all__ = [
    "HoldingFilters",
    "ReconciliationTarget",
    "LedgerEntry",
    "LedgerEntryBase",
    "ValuedEntry",
    "TransferEntry",
    "CostBasisResetEntry",
    "ReconciliationEntry",
    "parse_ledger_entry",
]
