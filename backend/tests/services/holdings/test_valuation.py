# backend/tests/services/holdings/test_valuation.py
"""
Unit tests for valuation, summary and consolidation.

Test Coverage:
- PnLCalculator: metrics and None propagation
- ValuationCalculator: row fields, unknown basis hiding, dust skipping, sort
- summarize_holdings: totals, buckets, partial sums
- consolidate_by_asset: status merge, diagnostics, idempotence
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from folio_tracker.models import PricingMode
from folio_tracker.services.holdings.types import (
    CostBasisStatus,
    LatestPriceRecord,
    Position,
    TransferDiagnostic,
)
from folio_tracker.services.holdings.valuation import (
    PnLCalculator,
    ValuationCalculator,
    consolidate_by_asset,
    summarize_holdings,
)
from tests.conftest import NOW, make_asset_profile


def priced_profile(asset_id: int, symbol: str, price: str, **kwargs):
    record = LatestPriceRecord(
        price_in_base=Decimal(price),
        last_updated=NOW - timedelta(minutes=10),
        source="CoinGecko",
    )
    return make_asset_profile(asset_id=asset_id, symbol=symbol, latest_price=record, **kwargs)


@pytest.fixture
def assets():
    """BTC priced at 65,000, ETH at 3,000, ART unpriced, USD manual at 1."""
    return {
        1: priced_profile(1, "BTC", "65000"),
        2: priced_profile(2, "ETH", "3000", volatility_bucket="MEDIUM"),
        3: make_asset_profile(asset_id=3, symbol="ART", type="NFT", volatility_bucket="ILLIQUID"),
        4: make_asset_profile(
            asset_id=4, symbol="USD", type="CASH", volatility_bucket="CASH_LIKE",
            pricing_mode=PricingMode.MANUAL, manual_price=Decimal("1"),
        ),
    }


@pytest.fixture
def calculator() -> ValuationCalculator:
    return ValuationCalculator()


def value(calculator, positions, assets, account_names=None):
    return calculator.calculate(
        positions=positions,
        assets=assets,
        account_names=account_names or {1: "Kraken", 2: "Ledger"},
        refresh_interval_minutes=60,
        now=NOW,
    )


# =============================================================================
# PNL CALCULATOR
# =============================================================================

class TestPnLCalculator:
    """Tests for PnLCalculator."""

    def test_all_metrics(self):
        average, pnl, pct = PnLCalculator().calculate(
            Decimal("2"), Decimal("60000"), Decimal("130000"),
        )

        assert average == Decimal("30000")
        assert pnl == Decimal("70000")
        assert pct == Decimal("116.67")

    def test_unknown_basis(self):
        assert PnLCalculator().calculate(Decimal("2"), None, Decimal("130000")) == (None, None, None)

    def test_unpriced(self):
        average, pnl, pct = PnLCalculator().calculate(Decimal("4"), Decimal("100"), None)

        assert average == Decimal("25")
        assert pnl is None
        assert pct is None

    def test_zero_basis_has_no_percentage(self):
        """Airdrops with a known zero basis have P&L but no percentage."""
        average, pnl, pct = PnLCalculator().calculate(Decimal("10"), Decimal("0"), Decimal("50"))

        assert average == Decimal("0")
        assert pnl == Decimal("50")
        assert pct is None

    def test_tiny_basis_percentage_out_of_range(self):
        """A 1E-27 basis gives a ratio too large to round to 2 dp."""
        average, pnl, pct = PnLCalculator().calculate(Decimal("1"), Decimal("1E-27"), Decimal("30000"))

        assert pnl == Decimal("30000") - Decimal("1E-27")
        assert pct is None


# =============================================================================
# VALUATION CALCULATOR
# =============================================================================

class TestValuationCalculator:
    """Tests for ValuationCalculator."""

    def test_row_fields(self, calculator, assets):
        position = Position(asset_id=1, account_id=1, quantity=Decimal("2"), cost_basis=Decimal("60000"))

        [row] = value(calculator, [position], assets)

        assert row.asset_symbol == "BTC"
        assert row.account_name == "Kraken"
        assert row.price == Decimal("65000")
        assert row.price_source == "CoinGecko"
        assert row.market_value == Decimal("130000")
        assert row.cost_basis == Decimal("60000")
        assert row.unrealized_pnl == Decimal("70000")
        assert row.unrealized_pnl_pct == Decimal("116.67")
        assert not row.is_stale
        assert row.cost_basis_known

    def test_unknown_basis_is_hidden(self, calculator, assets):
        """The replayed number is not reported when the status is not KNOWN."""
        position = Position(
            asset_id=1, account_id=1, quantity=Decimal("1"), cost_basis=Decimal("500"),
            cost_basis_status=CostBasisStatus.TRANSFER_UNMATCHED,
            transfer_diagnostic=TransferDiagnostic(key="k", transaction_ids=(7,)),
        )

        [row] = value(calculator, [position], assets)

        assert row.cost_basis is None
        assert row.average_cost is None
        assert row.unrealized_pnl is None
        assert row.market_value == Decimal("65000")
        assert row.transfer_diagnostic.transaction_ids == (7,)

    def test_dust_positions_are_skipped(self, calculator, assets):
        position = Position(asset_id=1, account_id=1, quantity=Decimal("1e-13"))

        assert value(calculator, [position], assets) == []

    def test_unpriced_row(self, calculator, assets):
        position = Position(asset_id=3, account_id=1, quantity=Decimal("1"), cost_basis=Decimal("800"))

        [row] = value(calculator, [position], assets)

        assert row.price is None
        assert row.market_value is None
        assert row.is_stale
        assert row.average_cost == Decimal("800")

    def test_missing_asset_is_skipped(self, calculator, assets):
        position = Position(asset_id=99, account_id=1, quantity=Decimal("1"))

        assert value(calculator, [position], assets) == []

    def test_missing_account_name(self, calculator, assets):
        position = Position(asset_id=4, account_id=42, quantity=Decimal("10"), cost_basis=Decimal("10"))

        [row] = value(calculator, [position], assets, account_names={})

        assert row.account_name == "Account 42"
        assert row.is_manual
        assert row.price_source == "Manual Entry"

    def test_negative_position_has_negative_value(self, calculator, assets):
        """Short positions are reported, not hidden."""
        position = Position(
            asset_id=2, account_id=1, quantity=Decimal("-1"),
            cost_basis_status=CostBasisStatus.UNKNOWN,
        )

        [row] = value(calculator, [position], assets)

        assert row.market_value == Decimal("-3000")
        assert row.cost_basis is None

    def test_sorted_by_market_value_unpriced_last(self, calculator, assets):
        positions = [
            Position(asset_id=3, account_id=1, quantity=Decimal("1")),
            Position(asset_id=2, account_id=1, quantity=Decimal("10")),
            Position(asset_id=1, account_id=1, quantity=Decimal("1")),
            Position(asset_id=4, account_id=1, quantity=Decimal("500"), cost_basis=Decimal("500")),
        ]

        rows = value(calculator, positions, assets)

        assert [r.asset_symbol for r in rows] == ["BTC", "ETH", "USD", "ART"]


# =============================================================================
# SUMMARY
# =============================================================================

class TestSummarizeHoldings:
    """Tests for summarize_holdings."""

    def test_totals_and_buckets(self, calculator, assets):
        positions = [
            Position(asset_id=1, account_id=1, quantity=Decimal("1"), cost_basis=Decimal("50000")),
            Position(asset_id=2, account_id=1, quantity=Decimal("2"), cost_basis=Decimal("4000")),
            Position(asset_id=4, account_id=1, quantity=Decimal("1000"), cost_basis=Decimal("1000")),
        ]

        summary = summarize_holdings(value(calculator, positions, assets))

        assert summary.total_value == Decimal("72000")
        assert summary.total_cost_basis == Decimal("55000")
        assert summary.total_unrealized_pnl == Decimal("17000")
        assert summary.by_type == {"CRYPTO": Decimal("71000"), "CASH": Decimal("1000")}
        assert summary.by_volatility == {
            "HIGH": Decimal("65000"),
            "MEDIUM": Decimal("6000"),
            "CASH_LIKE": Decimal("1000"),
        }
        assert summary.updated_at == NOW - timedelta(minutes=10)
        assert summary.base_currency == "USD"

    def test_partial_sums_skip_unknown_rows(self, calculator, assets):
        """One unknown basis does not wipe out the totals."""
        positions = [
            Position(asset_id=1, account_id=1, quantity=Decimal("1"), cost_basis=Decimal("50000")),
            Position(
                asset_id=2, account_id=1, quantity=Decimal("1"),
                cost_basis_status=CostBasisStatus.UNKNOWN,
            ),
            Position(asset_id=3, account_id=1, quantity=Decimal("1"), cost_basis=Decimal("800")),
        ]

        summary = summarize_holdings(value(calculator, positions, assets))

        assert summary.total_value == Decimal("68000")
        assert summary.total_cost_basis == Decimal("50800")
        assert summary.total_unrealized_pnl == Decimal("15000")

    def test_empty(self):
        summary = summarize_holdings([])

        assert summary.total_value == Decimal("0")
        assert summary.by_type == {}
        assert summary.updated_at is None


# =============================================================================
# CONSOLIDATION
# =============================================================================

class TestConsolidateByAsset:
    """Tests for consolidate_by_asset."""

    def test_sums_known_accounts(self, calculator, assets):
        positions = [
            Position(asset_id=1, account_id=1, quantity=Decimal("1"), cost_basis=Decimal("40000")),
            Position(asset_id=1, account_id=2, quantity=Decimal("0.5"), cost_basis=Decimal("20000")),
            Position(asset_id=2, account_id=1, quantity=Decimal("1"), cost_basis=Decimal("2000")),
        ]

        rows = consolidate_by_asset(value(calculator, positions, assets))

        assert [r.asset_symbol for r in rows] == ["BTC", "ETH"]
        btc = rows[0]
        assert btc.account_id == 0
        assert btc.account_name == "Consolidated"
        assert btc.quantity == Decimal("1.5")
        assert btc.cost_basis == Decimal("60000")
        assert btc.market_value == Decimal("97500")
        assert btc.average_cost == Decimal("40000")
        assert btc.unrealized_pnl == Decimal("37500")

    def test_any_unknown_contributor_hides_basis(self, calculator, assets):
        diag_a = TransferDiagnostic(key="1|a", transaction_ids=(9, 3))
        diag_b = TransferDiagnostic(key="1|b", transaction_ids=(5,))
        positions = [
            Position(asset_id=1, account_id=1, quantity=Decimal("1"), cost_basis=Decimal("40000")),
            Position(
                asset_id=1, account_id=2, quantity=Decimal("1"),
                cost_basis_status=CostBasisStatus.TRANSFER_UNMATCHED, transfer_diagnostic=diag_a,
            ),
            Position(
                asset_id=1, account_id=3, quantity=Decimal("1"),
                cost_basis_status=CostBasisStatus.TRANSFER_INVALID, transfer_diagnostic=diag_b,
            ),
        ]

        [btc] = consolidate_by_asset(value(calculator, positions, assets))

        assert btc.cost_basis is None
        assert btc.cost_basis_status is CostBasisStatus.TRANSFER_INVALID
        assert btc.unrealized_pnl is None
        assert btc.market_value == Decimal("195000")
        assert btc.transfer_diagnostic.key == "1|a; 1|b"
        assert btc.transfer_diagnostic.transaction_ids == (3, 5, 9)

    def test_unpriced_asset_stays_unpriced(self, calculator, assets):
        positions = [Position(asset_id=3, account_id=1, quantity=Decimal("2"), cost_basis=Decimal("10"))]

        [art] = consolidate_by_asset(value(calculator, positions, assets))

        assert art.market_value is None
        assert art.price is None
        assert art.cost_basis == Decimal("10")

    def test_is_idempotent(self, calculator, assets):
        positions = [
            Position(asset_id=1, account_id=1, quantity=Decimal("1"), cost_basis=Decimal("40000")),
            Position(asset_id=1, account_id=2, quantity=Decimal("2"), cost_basis=Decimal("10000")),
            Position(
                asset_id=2, account_id=1, quantity=Decimal("3"),
                cost_basis_status=CostBasisStatus.UNKNOWN,
            ),
        ]

        once = consolidate_by_asset(value(calculator, positions, assets))

        assert consolidate_by_asset(once) == once
