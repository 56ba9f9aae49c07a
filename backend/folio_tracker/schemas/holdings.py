# backend/folio_tracker/schemas/holdings.py
"""
Pydantic schemas for holdings queries and reconciliation inputs.

HoldingFilters narrows a holdings computation:
- asset_ids / asset_types / volatility_buckets narrow the replayed ledger
- account_ids narrows the emitted rows (the replay still sees every account
  so transfers to filtered-out accounts keep pairing)

ReconciliationTarget is one externally observed (account, asset) quantity.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HoldingFilters(BaseModel):
    """Optional filters for compute_holdings. Empty lists mean "no filter"."""

    model_config = ConfigDict(frozen=True)

    account_ids: list[int] | None = Field(
        default=None,
        description="Only emit rows for these accounts",
        examples=[[1, 2]],
    )
    asset_ids: list[int] | None = Field(
        default=None,
        description="Only replay these assets",
    )
    asset_types: list[str] | None = Field(
        default=None,
        description="Only replay assets of these types",
        examples=[["CRYPTO", "EQUITY"]],
    )
    volatility_buckets: list[str] | None = Field(
        default=None,
        description="Only replay assets in these volatility buckets",
        examples=[["CASH_LIKE", "HIGH"]],
    )

    @field_validator("account_ids", "asset_ids")
    @classmethod
    def dedupe_ids(cls, v: list[int] | None) -> list[int] | None:
        """Drop duplicates, keep first-seen order; empty list means no filter."""
        if not v:
            return None
        return list(dict.fromkeys(v))

    @field_validator("asset_types", "volatility_buckets")
    @classmethod
    def normalize_labels(cls, v: list[str] | None) -> list[str] | None:
        """Trim and uppercase labels, drop blanks and duplicates."""
        if not v:
            return None
        cleaned = [label.strip().upper() for label in v if label and label.strip()]
        return list(dict.fromkeys(cleaned)) or None

    @property
    def is_empty(self) -> bool:
        """True if no filter is set."""
        return not any((
            self.account_ids,
            self.asset_ids,
            self.asset_types,
            self.volatility_buckets,
        ))


class ReconciliationTarget(BaseModel):
    """
    Quantity an account should hold of an asset, as observed externally.

    Reconciliation plans the RECONCILIATION delta between this and the
    replayed quantity. NaN and Infinity are rejected.
    """

    model_config = ConfigDict(frozen=True)

    account_id: int = Field(..., gt=0)
    asset_id: int = Field(..., gt=0)
    target_quantity: Decimal = Field(
        ...,
        description="Quantity the position should have at as_of",
        examples=["0.45"],
    )
    notes: str | None = Field(default=None, description="Written on the created row")

    @field_validator("notes")
    @classmethod
    def blank_notes_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None
