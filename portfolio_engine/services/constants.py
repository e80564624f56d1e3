# portfolio_engine/services/constants.py
"""
Centralized constants for the portfolio analytics engine.

This module provides a single source of truth for all numeric parameters
used across the calculators. Calculators take these as parameter defaults;
the orchestrator may override them from settings.

Usage:
    from portfolio_engine.services.constants import (
        TRADING_DAYS_PER_YEAR,
        DEFAULT_RISK_FREE_RATE,
        IRR_TOLERANCE,
    )
"""

from decimal import Decimal


# =============================================================================
# FINANCIAL CALENDAR CONSTANTS
# =============================================================================

# Standard number of trading days in a year (excludes weekends and holidays)
# Used for annualizing volatility, Sharpe ratio, and other risk metrics
TRADING_DAYS_PER_YEAR: int = 252

# Standard number of calendar days in a year
# Used for annualizing returns (CAGR) and for IRR year fractions
CALENDAR_DAYS_PER_YEAR: int = 365

# Holding period (days) after which a lot is long-term
LONG_TERM_HOLDING_DAYS: int = 365


# =============================================================================
# RISK-FREE RATE
# =============================================================================

# Default annual risk-free rate for Sharpe/Sortino and tangency portfolios
# 2% = 0.02 as a decimal
DEFAULT_RISK_FREE_RATE: Decimal = Decimal("0.02")


# =============================================================================
# CACHE SETTINGS
# =============================================================================

# Time-to-live for cached analytics results in seconds (1 hour)
CACHE_TTL_SECONDS: int = 3600

# Maximum number of entries in the analytics cache
# 1000 entries × ~10KB avg result size ≈ 10MB max cache footprint
CACHE_MAX_SIZE: int = 1000


# =============================================================================
# IRR / MWR CALCULATION SETTINGS
# =============================================================================

# Maximum iterations for each phase of the IRR solver (Newton, then bisection)
IRR_MAX_ITERATIONS: int = 100

# Convergence tolerance for the IRR solver, applied to the rate step
IRR_TOLERANCE: Decimal = Decimal("0.00000001")

# Initial guess for Newton iteration (10% annual return)
IRR_INITIAL_GUESS: Decimal = Decimal("0.1")

# Lowest rate the solver will evaluate; (1 + r) must stay positive
IRR_LOWER_BOUND: Decimal = Decimal("-0.999999")

# Bisection upper bound is doubled until the NPV changes sign or this is hit
# 1,000,000 = 100,000,000% annual return
IRR_UPPER_BOUND_LIMIT: Decimal = Decimal("1000000")


# =============================================================================
# RISK CALCULATION CONSTANTS
# =============================================================================

# Years of periodic returns required before drawdown-based metrics are valid
MIN_HISTORY_YEARS: int = 3

# Minimum observations for a sample standard deviation
MIN_PERIODS_FOR_VOLATILITY: int = 2

# Number of largest drawdowns averaged by the Sterling ratio
STERLING_DRAWDOWN_COUNT: int = 3

# Default confidence level for parametric Value at Risk
DEFAULT_VAR_CONFIDENCE: Decimal = Decimal("0.95")

# One-tailed z-scores for the supported VaR confidence levels
VAR_Z_SCORES: dict[Decimal, Decimal] = {
    Decimal("0.90"): Decimal("1.282"),
    Decimal("0.95"): Decimal("1.645"),
    Decimal("0.975"): Decimal("1.960"),
    Decimal("0.99"): Decimal("2.326"),
}


# =============================================================================
# CORRELATION / SQUARE ROOT SETTINGS
# =============================================================================

# Newton square root: stop when successive estimates differ by less than this
SQRT_TOLERANCE: Decimal = Decimal("1E-24")

# Newton square root: hard iteration cap
SQRT_MAX_ITERATIONS: int = 200


# =============================================================================
# OPTIMIZER SETTINGS
# =============================================================================

# Largest asset count solved in closed form; larger universes use the
# iterative search
ANALYTICAL_ASSET_LIMIT: int = 20

# Smallest |pivot| / largest |pivot| ratio accepted during matrix inversion
# Below this the covariance is treated as singular
SINGULARITY_THRESHOLD: Decimal = Decimal("1E-12")

# Projected gradient: stop when the largest weight change is below this
OPTIMIZER_TOLERANCE: Decimal = Decimal("1E-10")

# Projected gradient: iteration cap per solve
OPTIMIZER_MAX_ITERATIONS: int = 20000

# Golden-section tangency refinement: relative bracket width and step cap
TANGENCY_SEARCH_TOLERANCE: Decimal = Decimal("0.000001")
TANGENCY_SEARCH_MAX_ITERATIONS: int = 60

# Default number of efficient frontier samples
DEFAULT_FRONTIER_POINTS: int = 50


# =============================================================================
# DECIMAL PRECISION CONSTANTS
# =============================================================================

# Prices and unit costs: 8 decimal places
PRICE_PRECISION: Decimal = Decimal("0.00000001")

# Share quantities: 8 decimal places (fractional shares, crypto)
SHARE_PRECISION: Decimal = Decimal("0.00000001")

# Return ratios and weights: 10 decimal places
RATIO_PRECISION: Decimal = Decimal("0.0000000001")


# =============================================================================
# UTILITY CONSTANTS
# =============================================================================

# Type-safe zero and one for Decimal comparisons
ZERO: Decimal = Decimal("0")
ONE: Decimal = Decimal("1")
