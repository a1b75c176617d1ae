"""
Global constants for fincast.

Purpose
-------
Centralizes default values and magic numbers used throughout the fincast
codebase. ``ForecastConfig`` takes its defaults from here; algorithms that
are not user-tunable read these constants directly.

Usage
-----
>>> from fincast.constants import DEFAULT_HORIZONS, DEFAULT_N_SIMS
>>> config = ForecastConfig(horizons=DEFAULT_HORIZONS, n_sims=DEFAULT_N_SIMS)

Categories
----------
- Normalization: default category, transaction types
- Patterns: seasonality threshold, recurring tolerances, critical values
- Projection: horizons, Monte Carlo, confidence scoring, variants
- Validation: back-test window, reliability threshold, quality weights
"""

from typing import Dict, Tuple

__all__ = [
    "VERSION",
    # Normalization
    "DEFAULT_CATEGORY",
    "INCOME_TYPE",
    "EXPENSE_TYPE",
    # Patterns
    "MONTHS_PER_YEAR",
    "DAYS_PER_MONTH",
    "DEFAULT_SEASONALITY_THRESHOLD",
    "DEFAULT_RECURRING_INTERVAL_CV",
    "DEFAULT_RECURRING_AMOUNT_CV",
    "DEFAULT_RECURRING_MIN_OCCURRENCES",
    "DEFAULT_AMOUNT_BUCKET_WIDTH",
    "DESCRIPTION_KEY_WORDS",
    "CRITICAL_VALUES",
    "DEFAULT_CONFIDENCE_LEVEL",
    "TREND_STRENGTH_CAP",
    "TREND_STRENGTH_NORMALIZER",
    "STRONG_TREND_THRESHOLD",
    # Projection
    "DEFAULT_HORIZONS",
    "DEFAULT_N_SIMS",
    "DEFAULT_SEED",
    "PERCENTILE_LEVELS",
    "BASE_VOLATILITY",
    "VOLATILITY_PER_MONTH",
    "DEFAULT_MAX_TREND_SHIFT",
    "BASE_CONFIDENCE",
    "CONFIDENCE_DECAY_PER_MONTH",
    "PATTERN_CONFIDENCE_BONUS",
    "PATTERN_CONFIDENCE_CAP",
    "SEASONALITY_CONFIDENCE_BONUS",
    "TREND_CONFIDENCE_BONUS",
    "MIN_CONFIDENCE",
    "MAX_CONFIDENCE",
    "DEFAULT_VARIANT_HORIZON",
    "MODERATE_VARIANT_FACTOR",
    "EXTREME_VARIANT_FACTOR",
    # Validation
    "DEFAULT_BACKTEST_PERIODS",
    "DEFAULT_BACKTEST_MIN_TRAIN",
    "DEFAULT_BACKTEST_MIN_TEST",
    "DEFAULT_RELIABILITY_THRESHOLD_PCT",
    "QUALITY_WEIGHTS",
    "FULL_DATA_TRANSACTION_COUNT",
    "FULL_INSIGHT_COUNT",
    # Insights
    "DEFAULT_INSIGHT_TIMEOUT",
    "DEFAULT_OPENAI_MODEL",
    "RECENT_TRANSACTIONS_IN_CONTEXT",
]


VERSION: str = "0.1.0"
"""Package version reported in result metadata and by the CLI."""


# =============================================================================
# Normalization
# =============================================================================

DEFAULT_CATEGORY: str = "Other"
"""Category assigned to records that do not carry one."""

INCOME_TYPE: str = "income"
EXPENSE_TYPE: str = "expense"


# =============================================================================
# Patterns
# =============================================================================

MONTHS_PER_YEAR: int = 12

DAYS_PER_MONTH: float = 365.25 / 12
"""Average days per calendar month, used for monthly-equivalent amounts."""

DEFAULT_SEASONALITY_THRESHOLD: float = 0.20
"""A monthly index outside [1 - t, 1 + t] marks seasonality as detected."""

DEFAULT_RECURRING_INTERVAL_CV: float = 0.30
"""Maximum coefficient of variation of day-intervals for a recurring group."""

DEFAULT_RECURRING_AMOUNT_CV: float = 0.05
"""Maximum coefficient of variation of amounts for a recurring group."""

DEFAULT_RECURRING_MIN_OCCURRENCES: int = 3
"""Minimum members of a group before it can be classified as recurring."""

DEFAULT_AMOUNT_BUCKET_WIDTH: float = 50.0
"""Width of the amount buckets used in recurring group keys."""

DESCRIPTION_KEY_WORDS: int = 3
"""Number of leading description words kept in recurring group keys."""

CRITICAL_VALUES: Dict[float, float] = {
    0.90: 1.645,
    0.95: 1.96,
    0.99: 2.576,
}
"""Two-sided normal critical values by confidence level."""

DEFAULT_CONFIDENCE_LEVEL: float = 0.95

TREND_STRENGTH_CAP: float = 10.0
"""Upper bound of |mean| / standard error; also used when the error is zero."""

TREND_STRENGTH_NORMALIZER: float = 4.0
"""Trend strength at which the normalized strength saturates at 1.0."""

STRONG_TREND_THRESHOLD: float = 2.0
"""Trend strength above which a horizon earns the trend confidence bonus."""


# =============================================================================
# Projection
# =============================================================================

DEFAULT_HORIZONS: Tuple[int, ...] = (3, 6, 12, 24, 36)
"""Forecast horizons in months."""

DEFAULT_N_SIMS: int = 500
"""Default number of Monte Carlo samples per horizon."""

DEFAULT_SEED: int = 42
"""Seed used by the CLI when --seed is passed without a value."""

PERCENTILE_LEVELS: Tuple[int, ...] = (5, 25, 50, 75, 95)
"""Percentiles reported by the uncertainty model."""

BASE_VOLATILITY: float = 0.15
VOLATILITY_PER_MONTH: float = 0.01
"""Monte Carlo volatility for horizon H is BASE + PER_MONTH * H."""

DEFAULT_MAX_TREND_SHIFT: float = 0.10
"""Largest relative shift the trend may apply to a single month."""

BASE_CONFIDENCE: float = 0.7
CONFIDENCE_DECAY_PER_MONTH: float = 0.05
PATTERN_CONFIDENCE_BONUS: float = 0.03
PATTERN_CONFIDENCE_CAP: float = 0.15
SEASONALITY_CONFIDENCE_BONUS: float = 0.1
TREND_CONFIDENCE_BONUS: float = 0.1
MIN_CONFIDENCE: float = 0.3
MAX_CONFIDENCE: float = 0.95

DEFAULT_VARIANT_HORIZON: int = 12
"""Horizon whose Monte Carlo percentiles define the scenario variants."""

MODERATE_VARIANT_FACTOR: float = 0.8
"""Confidence factor for optimistic / pessimistic variants (p75 / p25)."""

EXTREME_VARIANT_FACTOR: float = 0.6
"""Confidence factor for best / worst case variants (p95 / p5)."""


# =============================================================================
# Validation
# =============================================================================

DEFAULT_BACKTEST_PERIODS: int = 3
DEFAULT_BACKTEST_MIN_TRAIN: int = 10
DEFAULT_BACKTEST_MIN_TEST: int = 5

DEFAULT_RELIABILITY_THRESHOLD_PCT: float = 25.0
"""Mean back-test percentage error below which a model is reliable."""

QUALITY_WEIGHTS: Dict[str, float] = {
    "data_quality": 0.30,
    "algorithmic_strength": 0.25,
    "ai_insight_quality": 0.20,
    "forecast_reliability": 0.25,
}
"""Weights of the composite quality score (sum to 1.0)."""

FULL_DATA_TRANSACTION_COUNT: int = 100
FULL_INSIGHT_COUNT: int = 10


# =============================================================================
# Insights
# =============================================================================

DEFAULT_INSIGHT_TIMEOUT: float = 30.0
"""Seconds to wait for the insight generator."""

DEFAULT_OPENAI_MODEL: str = "gpt-4o-mini"

RECENT_TRANSACTIONS_IN_CONTEXT: int = 20
"""Most recent transactions included in the insight context."""
