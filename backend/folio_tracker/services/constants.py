# backend/folio_tracker/services/constants.py
"""
Shared constants for the holdings services.

Numeric tolerances are Decimal so comparisons never mix float and Decimal.
"""

from decimal import Decimal

# =============================================================================
# NUMERIC TOLERANCES
# =============================================================================

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Quantities at or below this absolute value are treated as empty
DUST_THRESHOLD = Decimal("1e-12")

# Two transfer legs balance when they net to zero within this tolerance
TRANSFER_BALANCE_TOLERANCE = Decimal("1e-9")

# Reconciliation deltas at or below this absolute value are not written
RECONCILIATION_EPSILON = Decimal("1e-9")

# Rounding for percentage outputs
PERCENTAGE_QUANTUM = Decimal("0.01")

# =============================================================================
# CASH-LIKE CLASSIFICATION
# =============================================================================

CASH_LIKE_ASSET_TYPES = frozenset({"CASH", "STABLE"})
CASH_LIKE_VOLATILITY_BUCKET = "CASH_LIKE"
CASH_LIKE_SYMBOLS = frozenset({"USD", "USDT", "USDC"})

# =============================================================================
# REFERENCES
# =============================================================================

# Operator-confirmed transfer pairing, bypasses balance checks
MANUAL_MATCH_PREFIX = "MATCH:"

# COST_BASIS_RESET rows generated by cost-basis recalculation
RECALC_REFERENCE_PREFIX = "RECALC:"

# =============================================================================
# PRICING
# =============================================================================

PRICE_SOURCE_MANUAL = "Manual Entry"
PRICE_SOURCE_AUTO = "Auto Price"

# Auto price is stale after refresh_interval x this multiplier
DEFAULT_STALE_PRICE_MULTIPLIER = 3

DEFAULT_REFRESH_INTERVAL_MINUTES = 60
DEFAULT_BASE_CURRENCY = "USD"
DEFAULT_TIMEZONE = "UTC"

# =============================================================================
# CONSOLIDATION
# =============================================================================

CONSOLIDATED_ACCOUNT_ID = 0
CONSOLIDATED_ACCOUNT_NAME = "Consolidated"
