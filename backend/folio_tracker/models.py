# backend/folio_tracker/models.py
import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Enum, Numeric, Index, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class TxType(str, enum.Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRADE = "TRADE"
    YIELD = "YIELD"
    NFT_TRADE = "NFT_TRADE"
    OFFLINE_TRADE = "OFFLINE_TRADE"
    HEDGE = "HEDGE"
    OTHER = "OTHER"

    # Engine-only types (created by transfers, reconciliation and recalc tooling)
    TRANSFER = "TRANSFER"
    COST_BASIS_RESET = "COST_BASIS_RESET"
    RECONCILIATION = "RECONCILIATION"


class PricingMode(str, enum.Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"


# Quantities and base-currency amounts share one precision.
# Scale 12 keeps the dust threshold (1e-12) representable.
AMOUNT = Numeric(30, 12)


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String)
    platform: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    transactions: Mapped[list["LedgerTransaction"]] = relationship(back_populates="account")


class Asset(Base):
    """
    Tradable or holdable instrument.

    `type` and `volatility_bucket` are free-form labels (e.g. CRYPTO / HIGH);
    the holdings engine only interprets CASH, STABLE and CASH_LIKE.
    """
    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    symbol: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    type: Mapped[str] = mapped_column(String, index=True)
    volatility_bucket: Mapped[str] = mapped_column(String, index=True)
    chain_or_market: Mapped[str | None] = mapped_column(String, nullable=True)
    pricing_mode: Mapped[PricingMode] = mapped_column(Enum(PricingMode), default=PricingMode.AUTO)
    manual_price: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    price_latest: Mapped["PriceLatest | None"] = relationship(
        back_populates="asset",
        uselist=False,
        cascade="all, delete-orphan",
    )
    transactions: Mapped[list["LedgerTransaction"]] = relationship(back_populates="asset")


class PriceLatest(Base):
    """Latest auto-fetched price per asset, written by the external price refresher."""
    __tablename__ = "price_latest"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("assets.id"), unique=True, index=True)
    price_in_base: Mapped[Decimal] = mapped_column(AMOUNT)
    source: Mapped[str | None] = mapped_column(String, nullable=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    asset: Mapped["Asset"] = relationship(back_populates="price_latest")


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        # Replay order is (date_time, id)
        Index('ix_ledger_date_id', 'date_time', 'id'),
        Index('ix_ledger_asset_account', 'asset_id', 'account_id'),
        Index('ix_ledger_type_reference', 'tx_type', 'external_reference'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), index=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("assets.id"), index=True)

    # Signed: positive = inflow to the account, negative = outflow
    quantity: Mapped[Decimal] = mapped_column(AMOUNT)
    tx_type: Mapped[TxType] = mapped_column(Enum(TxType))

    unit_price_in_base: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    total_value_in_base: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    fee_in_base: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)

    # "MATCH:<token>" pairs transfer legs manually
    external_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    account: Mapped["Account"] = relationship(back_populates="transactions")
    asset: Mapped["Asset"] = relationship(back_populates="transactions")


class Setting(Base):
    """Key/value application settings (e.g. price_auto_refresh_interval_minutes)."""
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(String)
