"""
Configuration management module for fincast.

Purpose
-------
Centralized configuration using Pydantic models for type-safe parameter
management, validation, and serialization. Supports environment variables,
JSON config files, and programmatic defaults.

Design Principles
-----------------
- Type-safe: Pydantic enforces types and validates ranges
- Immutable: Frozen models prevent accidental mutation
- Serializable: Easy conversion to/from JSON for config files
- Environment-aware: Supports .env files for API keys and log level

Example
-------
>>> from fincast.config import ForecastConfig, ScenarioSpec
>>> config = ForecastConfig(horizons=(6, 12), n_sims=1000, seed=42)
>>> scenario = ScenarioSpec(type="salary_change", parameters={"percentage": 10})
>>>
>>> # Serialize to dict/JSON
>>> json_str = config.model_dump_json()
>>> loaded = ForecastConfig.model_validate_json(json_str)
"""

from __future__ import annotations
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    CRITICAL_VALUES,
    DEFAULT_AMOUNT_BUCKET_WIDTH,
    DEFAULT_BACKTEST_MIN_TEST,
    DEFAULT_BACKTEST_MIN_TRAIN,
    DEFAULT_BACKTEST_PERIODS,
    DEFAULT_CONFIDENCE_LEVEL,
    DEFAULT_HORIZONS,
    DEFAULT_INSIGHT_TIMEOUT,
    DEFAULT_MAX_TREND_SHIFT,
    DEFAULT_N_SIMS,
    DEFAULT_OPENAI_MODEL,
    DEFAULT_RECURRING_AMOUNT_CV,
    DEFAULT_RECURRING_INTERVAL_CV,
    DEFAULT_RECURRING_MIN_OCCURRENCES,
    DEFAULT_RELIABILITY_THRESHOLD_PCT,
    DEFAULT_SEASONALITY_THRESHOLD,
    DEFAULT_VARIANT_HORIZON,
)

__all__ = [
    "ForecastConfig",
    "ScenarioSpec",
    "SCENARIO_TYPES",
    "AppSettings",
]


SCENARIO_TYPES: Tuple[str, ...] = ("salary_change", "expense_change", "one_time_expense")


# ---------------------------------------------------------------------------
# Forecast Configuration
# ---------------------------------------------------------------------------

class ForecastConfig(BaseModel):
    """
    Configuration for a forecast pipeline run.

    Attributes
    ----------
    horizons : tuple of int
        Forecast horizons in months, strictly increasing.
    n_sims : int
        Monte Carlo samples per horizon (100-10,000).
    seed : int, optional
        Random seed for reproducibility. If None, outputs vary per run.
    seasonality_threshold : float
        Maximum deviation of a monthly index from 1.0 before seasonality is
        considered detected.
    recurring_interval_cv, recurring_amount_cv : float
        Coefficient-of-variation tolerances for recurring transactions.
    recurring_min_occurrences : int
        Minimum group size for recurring classification.
    amount_bucket_width : float
        Width of the amount buckets used when grouping transactions.
    confidence_level : float
        Two-sided confidence level of the trend interval.
    critical_value_method : {"lookup", "student_t"}
        "lookup" uses fixed normal critical values for 90/95/99%;
        "student_t" uses the exact t quantile for the sample size.
    variant_horizon : int
        Horizon whose percentiles define optimistic/pessimistic variants.
    max_trend_shift : float
        Largest relative change the trend may apply to one month.
    backtest_periods, backtest_min_train, backtest_min_test : int
        Back-testing window and minimum record counts per period.
    reliability_threshold_pct : float
        Mean back-test percentage error below which the model is reliable.
    insight_timeout : float
        Seconds to wait for the insight generator.
    parallel_monte_carlo : bool
        Run per-horizon Monte Carlo in a thread pool.

    Examples
    --------
    >>> config = ForecastConfig(n_sims=1000, seed=7)
    >>> config.horizons
    (3, 6, 12, 24, 36)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    horizons: Tuple[int, ...] = Field(
        default=DEFAULT_HORIZONS,
        description="Forecast horizons in months"
    )
    n_sims: int = Field(
        default=DEFAULT_N_SIMS,
        ge=100,
        le=10_000,
        description="Number of Monte Carlo samples per horizon"
    )
    seed: Optional[int] = Field(
        default=None,
        description="Random seed for reproducibility"
    )
    seasonality_threshold: float = Field(
        default=DEFAULT_SEASONALITY_THRESHOLD,
        gt=0,
        lt=1,
        description="Allowed deviation of monthly indices from 1.0"
    )
    recurring_interval_cv: float = Field(
        default=DEFAULT_RECURRING_INTERVAL_CV,
        gt=0,
        le=1,
        description="Interval coefficient-of-variation tolerance"
    )
    recurring_amount_cv: float = Field(
        default=DEFAULT_RECURRING_AMOUNT_CV,
        gt=0,
        le=1,
        description="Amount coefficient-of-variation tolerance"
    )
    recurring_min_occurrences: int = Field(
        default=DEFAULT_RECURRING_MIN_OCCURRENCES,
        ge=3,
        le=24,
        description="Minimum members of a recurring group"
    )
    amount_bucket_width: float = Field(
        default=DEFAULT_AMOUNT_BUCKET_WIDTH,
        gt=0,
        description="Amount bucket width for recurring group keys"
    )
    confidence_level: float = Field(
        default=DEFAULT_CONFIDENCE_LEVEL,
        gt=0.5,
        lt=1,
        description="Two-sided confidence level of the trend interval"
    )
    critical_value_method: Literal["lookup", "student_t"] = Field(
        default="lookup",
        description="Critical value estimator for the trend interval"
    )
    variant_horizon: int = Field(
        default=DEFAULT_VARIANT_HORIZON,
        ge=1,
        description="Horizon used for optimistic/pessimistic variants"
    )
    max_trend_shift: float = Field(
        default=DEFAULT_MAX_TREND_SHIFT,
        ge=0,
        le=0.5,
        description="Maximum relative trend shift of a single month"
    )
    backtest_periods: int = Field(
        default=DEFAULT_BACKTEST_PERIODS,
        ge=1,
        le=24,
        description="Number of most recent months back-tested"
    )
    backtest_min_train: int = Field(
        default=DEFAULT_BACKTEST_MIN_TRAIN,
        ge=1,
        description="Minimum training records per back-test period"
    )
    backtest_min_test: int = Field(
        default=DEFAULT_BACKTEST_MIN_TEST,
        ge=1,
        description="Minimum test records per back-test period"
    )
    reliability_threshold_pct: float = Field(
        default=DEFAULT_RELIABILITY_THRESHOLD_PCT,
        gt=0,
        description="Mean percentage error below which the model is reliable"
    )
    insight_timeout: float = Field(
        default=DEFAULT_INSIGHT_TIMEOUT,
        gt=0,
        le=600,
        description="Insight generator timeout in seconds"
    )
    parallel_monte_carlo: bool = Field(
        default=False,
        description="Run per-horizon Monte Carlo concurrently"
    )

    @field_validator("horizons")
    @classmethod
    def validate_horizons(cls, v):
        """Ensure horizons are positive and strictly increasing."""
        if len(v) == 0:
            raise ValueError("horizons must contain at least one horizon")
        if any(h < 1 for h in v):
            raise ValueError(f"horizons must be positive months, got {v}")
        if any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError(f"horizons must be strictly increasing, got {v}")
        return tuple(v)

    @model_validator(mode="after")
    def validate_lookup_level(self):
        """The lookup table only knows 90/95/99%."""
        level = self.confidence_level
        if self.critical_value_method == "lookup" and round(level, 2) not in CRITICAL_VALUES:
            raise ValueError(
                f"confidence_level {level} has no lookup critical value; "
                f"use one of {sorted(CRITICAL_VALUES)} or critical_value_method='student_t'"
            )
        return self


# ---------------------------------------------------------------------------
# Scenario Configuration
# ---------------------------------------------------------------------------

class ScenarioSpec(BaseModel):
    """
    Descriptor of a user-defined scenario adjustment.

    Attributes
    ----------
    type : str
        One of "salary_change", "expense_change", "one_time_expense".
    parameters : dict
        ``{"percentage": p}`` for percentage changes, ``{"amount": a}`` for
        one-time expenses.
    name : str, optional
        Display name; defaults to the type.

    Examples
    --------
    >>> ScenarioSpec(type="one_time_expense", parameters={"amount": 500})
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["salary_change", "expense_change", "one_time_expense"] = Field(
        description="Scenario kind"
    )
    parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Scenario parameters"
    )
    name: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Display name"
    )


# ---------------------------------------------------------------------------
# Application Settings (Environment Variables)
# ---------------------------------------------------------------------------

class AppSettings(BaseSettings):
    """
    Global application settings loaded from environment variables.

    Supports .env files for local development. Environment variables
    are prefixed with FINCAST_ (e.g., FINCAST_LOG_LEVEL=DEBUG).

    Attributes
    ----------
    debug : bool
        Enable debug mode with verbose logging.
    log_level : str
        Logging level: "DEBUG", "INFO", "WARNING", "ERROR".
    openai_api_key : str, optional
        API key for the OpenAI insight generator.
    openai_model : str
        Chat model used for insight generation.
    openai_base_url : str, optional
        Alternative API endpoint.
    insight_max_tokens : int
        Completion token budget of an insight request.
    insight_timeout : float
        Seconds before an insight request is abandoned.

    Examples
    --------
    # With .env file:
    # FINCAST_OPENAI_API_KEY=sk-...
    # FINCAST_LOG_LEVEL=DEBUG
    >>> settings = AppSettings(_env_file=".env")
    >>> settings.log_level
    'DEBUG'
    """

    model_config = SettingsConfigDict(
        env_prefix="FINCAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key for insight generation"
    )
    openai_model: str = Field(
        default=DEFAULT_OPENAI_MODEL,
        description="OpenAI chat model"
    )
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Alternative OpenAI-compatible endpoint"
    )
    insight_max_tokens: int = Field(
        default=1500,
        ge=100,
        le=8000,
        description="Token budget of an insight completion"
    )
    insight_timeout: float = Field(
        default=DEFAULT_INSIGHT_TIMEOUT,
        gt=0,
        le=600,
        description="Insight request timeout in seconds"
    )
