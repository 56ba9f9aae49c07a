# backend/folio_tracker/schemas/ledger.py
"""
Pydantic schemas for ledger entries consumed by the holdings engine.

A ledger entry is a discriminated union over `tx_type`. Each variant carries
only the fields its accounting rule reads:

    ValuedEntry          DEPOSIT, WITHDRAWAL, TRADE, YIELD, NFT_TRADE,
                         OFFLINE_TRADE, HEDGE, OTHER
    TransferEntry        TRANSFER (valuation fields only used when the
                         transfer cannot be paired)
    CostBasisResetEntry  COST_BASIS_RESET
    ReconciliationEntry  RECONCILIATION

IMPORTANT: All quantity and money values use Decimal. NaN and Infinity are
rejected. Naive datetimes are interpreted as UTC.

Usage:
    from folio_tracker.schemas.ledger import parse_ledger_entry

    entry = parse_ledger_entry({
        "id": 1,
        "date_time": "2024-01-15T14:30:00Z",
        "account_id": 1,
        "asset_id": 1,
        "tx_type": "TRADE",
        "quantity": "2",
        "total_value_in_base": "30000",
    })
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from folio_tracker.models import TxType
from folio_tracker.services.constants import MANUAL_MATCH_PREFIX


# =============================================================================
# BASE SCHEMA
# =============================================================================

class LedgerEntryBase(BaseModel):
    """Fields shared by every ledger entry variant."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Ledger transaction ID (replay tie-breaker)")
    date_time: datetime = Field(..., description="When the transaction happened")
    account_id: int = Field(..., gt=0)
    asset_id: int = Field(..., gt=0)
    notes: str | None = None

    @field_validator("date_time")
    @classmethod
    def normalize_to_utc(cls, v: datetime) -> datetime:
        """Interpret naive datetimes as UTC and convert aware ones to UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def sort_key(self) -> tuple[datetime, int]:
        """Replay order: (date_time, id)."""
        return self.date_time, self.id


class _PricedEntry(LedgerEntryBase):
    """Entry with a signed quantity and optional base-currency valuation."""

    quantity: Decimal = Field(..., description="Signed quantity (sign encodes direction)")
    unit_price_in_base: Decimal | None = None
    total_value_in_base: Decimal | None = None
    external_reference: str | None = None

    @field_validator("external_reference")
    @classmethod
    def normalize_reference(cls, v: str | None) -> str | None:
        """Trim whitespace; blank references become None."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def transaction_value(self) -> Decimal | None:
        """
        Absolute base-currency value of this entry.

        |total_value_in_base| when present, else |unit_price × quantity| when
        both are present and quantity is non-zero, else None (unvalued).
        """
        if self.total_value_in_base is not None:
            return abs(self.total_value_in_base)
        if self.unit_price_in_base is not None and self.quantity != 0:
            return abs(self.unit_price_in_base * self.quantity)
        return None


# =============================================================================
# VARIANTS
# =============================================================================

class ValuedEntry(_PricedEntry):
    """Trades, deposits, withdrawals, yield and other plain movements."""

    tx_type: Literal[
        TxType.DEPOSIT,
        TxType.WITHDRAWAL,
        TxType.TRADE,
        TxType.YIELD,
        TxType.NFT_TRADE,
        TxType.OFFLINE_TRADE,
        TxType.HEDGE,
        TxType.OTHER,
    ]
    # Recorded for completeness, the engine does not fold fees into basis
    fee_in_base: Decimal | None = None


class TransferEntry(_PricedEntry):
    """One leg of a movement between two accounts."""

    tx_type: Literal[TxType.TRANSFER]

    @property
    def is_manual_match(self) -> bool:
        """True if an operator paired this leg explicitly."""
        return (self.external_reference or "").startswith(MANUAL_MATCH_PREFIX)


class CostBasisResetEntry(LedgerEntryBase):
    """Explicit override of a position's cost basis. Never changes quantity."""

    tx_type: Literal[TxType.COST_BASIS_RESET]
    total_value_in_base: Decimal | None = None
    quantity: Decimal = Decimal("0")
    external_reference: str | None = None


class ReconciliationEntry(LedgerEntryBase):
    """Quantity-only adjustment to match an external balance."""

    tx_type: Literal[TxType.RECONCILIATION]
    quantity: Decimal
    external_reference: str | None = None


LedgerEntry = Annotated[
    Union[ValuedEntry, TransferEntry, CostBasisResetEntry, ReconciliationEntry],
    Field(discriminator="tx_type"),
]

_LEDGER_ENTRY_ADAPTER: TypeAdapter = TypeAdapter(LedgerEntry)


def parse_ledger_entry(data: dict[str, Any]) -> LedgerEntry:
    """
    Validate a raw mapping into the matching ledger entry variant.

    Raises:
        pydantic.ValidationError: If the payload does not fit any variant
    """
    return _LEDGER_ENTRY_ADAPTER.validate_python(data)
