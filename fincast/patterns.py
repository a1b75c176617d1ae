"""
Pattern analysis for fincast

Purpose
-------
Second pipeline stage. Extracts the statistical signals the projection
engine builds on:

- Seasonality: per calendar month income/expense indices relative to the
  average month, with peak months and a ``detected`` flag.
- Recurring transactions: clusters of similar transactions that repeat at a
  near-constant interval and amount.
- Trend: mean monthly net flow with a two-sided confidence interval.
- Qualitative insights (optional): delegated to an InsightGenerator under a
  timeout; never fatal.

Mathematical notes
------------------
Seasonal index of month m (only months with data take part in the average):

    I_m = S_m / mean_{k with data}(S_k)

Recurring group statistics, with Δ the day-intervals between consecutive
members and a their amounts:

    CV_Δ = σ(Δ) / μ(Δ),  CV_a = σ(a) / |μ(a)|
    confidence = max(0, 1 - (CV_Δ + CV_a))

Trend interval on monthly net flows x_1..x_n:

    SE = s / sqrt(n),  CI = x̄ ± z · SE

where z comes from a fixed lookup (1.645 / 1.96 / 2.576) or from the
Student-t quantile with n - 1 degrees of freedom.
"""
from __future__ import annotations

import logging
import math
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from .config import ForecastConfig
from .constants import (
    CRITICAL_VALUES,
    DAYS_PER_MONTH,
    DEFAULT_AMOUNT_BUCKET_WIDTH,
    DEFAULT_CONFIDENCE_LEVEL,
    DEFAULT_RECURRING_AMOUNT_CV,
    DEFAULT_RECURRING_INTERVAL_CV,
    DEFAULT_RECURRING_MIN_OCCURRENCES,
    DEFAULT_SEASONALITY_THRESHOLD,
    MONTHS_PER_YEAR,
    RECENT_TRANSACTIONS_IN_CONTEXT,
    TREND_STRENGTH_CAP,
)
from .exceptions import (
    CollaboratorError,
    ConfigurationError,
    FincastError,
    InsufficientDataError,
)
from .insights import InsightBundle, InsightGenerator, request_insights
from .normalizer import NormalizedData, Transaction
from .utils import (
    amount_bucket,
    clamp,
    coefficient_of_variation,
    monthly_net_flow,
    normalize_description,
    safe_ratio,
)

__all__ = [
    "MonthlySeasonality",
    "SeasonalProfile",
    "RecurringPattern",
    "TrendEstimate",
    "PatternAnalysis",
    "PatternAnalyzer",
    "detect_seasonality",
    "recurring_group_key",
    "mine_recurring_patterns",
    "critical_value",
    "estimate_trend",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Seasonality
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MonthlySeasonality:
    month: int                  # 0 = January
    income_index: float
    expense_index: float
    classification: str
    has_data: bool = True

    @property
    def combined_index(self) -> float:
        return (self.income_index + self.expense_index) / 2.0

    def to_dict(self) -> dict:
        return {
            "month": self.month,
            "income_index": self.income_index,
            "expense_index": self.expense_index,
            "classification": self.classification,
            "has_data": self.has_data,
        }


@dataclass(frozen=True)
class SeasonalProfile:
    """Seasonal indices for the twelve calendar months."""
    months: Tuple[MonthlySeasonality, ...]
    detected: bool
    peak_income_months: Tuple[int, ...] = ()
    peak_expense_months: Tuple[int, ...] = ()
    threshold: float = DEFAULT_SEASONALITY_THRESHOLD

    @classmethod
    def neutral(cls, threshold: float = DEFAULT_SEASONALITY_THRESHOLD) -> "SeasonalProfile":
        """Profile with every index at 1.0, used when seasonality is skipped."""
        months = tuple(
            MonthlySeasonality(m, 1.0, 1.0, "no_data", has_data=False)
            for m in range(MONTHS_PER_YEAR)
        )
        return cls(months=months, detected=False, threshold=threshold)

    def multiplier(self, month: int) -> float:
        """Seasonal multiplier of calendar month *month* (0-11).

        1.0 unless seasonality was detected.
        """
        if not self.detected:
            return 1.0
        return self.months[month % MONTHS_PER_YEAR].combined_index

    def to_dict(self) -> dict:
        return {
            "detected": self.detected,
            "threshold": self.threshold,
            "peak_income_months": list(self.peak_income_months),
            "peak_expense_months": list(self.peak_expense_months),
            "months": [m.to_dict() for m in self.months],
        }


def _classify_month(income_index: float, expense_index: float, lower: float, upper: float) -> str:
    high_income = income_index > upper
    high_expense = expense_index > upper
    if high_income and high_expense:
        return "peak_income_expense"
    if high_income:
        return "peak_income"
    if high_expense:
        return "peak_expense"
    if income_index < lower or expense_index < lower:
        return "low_activity"
    return "normal"


def detect_seasonality(
    transactions: Sequence[Transaction],
    threshold: float = DEFAULT_SEASONALITY_THRESHOLD,
) -> SeasonalProfile:
    """
    Compute income and expense indices per calendar month.

    Transactions from all years are pooled by calendar month. Each month's
    income (expense) total is divided by the average monthly total over the
    months that have data; months without data stay at the neutral 1.0.

    Parameters
    ----------
    transactions : sequence of Transaction
        Normalized history.
    threshold : float
        Seasonality is detected when any index lies outside
        [1 - threshold, 1 + threshold].

    Returns
    -------
    SeasonalProfile

    Raises
    ------
    InsufficientDataError
        Fewer than two calendar months carry data.
    """
    income = np.zeros(MONTHS_PER_YEAR)
    expense = np.zeros(MONTHS_PER_YEAR)
    has_data = np.zeros(MONTHS_PER_YEAR, dtype=bool)
    for t in transactions:
        m = t.date.month - 1
        has_data[m] = True
        if t.amount > 0:
            income[m] += t.amount
        else:
            expense[m] += -t.amount

    n_months = int(has_data.sum())
    if n_months < 2:
        raise InsufficientDataError(
            f"Seasonality detection needs at least 2 calendar months of data, got {n_months}."
        )

    income_avg = float(income[has_data].mean())
    expense_avg = float(expense[has_data].mean())
    lower, upper = 1.0 - threshold, 1.0 + threshold

    months: List[MonthlySeasonality] = []
    for m in range(MONTHS_PER_YEAR):
        if not has_data[m]:
            months.append(MonthlySeasonality(m, 1.0, 1.0, "no_data", has_data=False))
            continue
        # Zero averages fall back to the neutral multiplier
        inc = safe_ratio(income[m], income_avg, default=1.0)
        exp = safe_ratio(expense[m], expense_avg, default=1.0)
        months.append(MonthlySeasonality(m, inc, exp, _classify_month(inc, exp, lower, upper)))

    observed = [ms for ms in months if ms.has_data]
    detected = any(
        not (lower <= idx <= upper)
        for ms in observed
        for idx in (ms.income_index, ms.expense_index)
    )
    return SeasonalProfile(
        months=tuple(months),
        detected=detected,
        peak_income_months=tuple(ms.month for ms in observed if ms.income_index > upper),
        peak_expense_months=tuple(ms.month for ms in observed if ms.expense_index > upper),
        threshold=threshold,
    )


# ---------------------------------------------------------------------------
# Recurring transactions
# ---------------------------------------------------------------------------

_FREQUENCY_BANDS = (
    ("weekly", 6, 8),
    ("biweekly", 13, 16),
    ("monthly", 27, 33),
    ("quarterly", 85, 95),
    ("annual", 355, 375),
)


@dataclass(frozen=True)
class RecurringPattern:
    """A cluster of transactions recurring at near-constant interval and amount."""
    group_key: str
    description: str
    category: str
    transactions: Tuple[Transaction, ...]
    average_interval_days: float
    average_amount: float
    interval_cv: float
    amount_cv: float
    confidence: float

    @property
    def occurrences(self) -> int:
        return len(self.transactions)

    @property
    def frequency(self) -> str:
        for label, low, high in _FREQUENCY_BANDS:
            if low <= self.average_interval_days <= high:
                return label
        return "irregular"

    @property
    def monthly_amount(self) -> float:
        """Signed amount per average calendar month."""
        return self.average_amount * DAYS_PER_MONTH / self.average_interval_days

    @property
    def last_date(self) -> date:
        return self.transactions[-1].date

    @property
    def next_expected_date(self) -> date:
        return self.last_date + timedelta(days=round(self.average_interval_days))

    def to_dict(self, include_transactions: bool = False) -> dict:
        data = {
            "group_key": self.group_key,
            "description": self.description,
            "category": self.category,
            "occurrences": self.occurrences,
            "frequency": self.frequency,
            "average_interval_days": self.average_interval_days,
            "average_amount": self.average_amount,
            "monthly_amount": self.monthly_amount,
            "interval_cv": self.interval_cv,
            "amount_cv": self.amount_cv,
            "confidence": self.confidence,
            "last_date": self.last_date.isoformat(),
            "next_expected_date": self.next_expected_date.isoformat(),
        }
        if include_transactions:
            data["transactions"] = [t.to_dict() for t in self.transactions]
        return data


def recurring_group_key(t: Transaction, bucket_width: float = DEFAULT_AMOUNT_BUCKET_WIDTH) -> str:
    """Grouping key: normalized description | amount bucket | category."""
    return f"{normalize_description(t.description)}|{amount_bucket(t.amount, bucket_width)}|{t.category.lower()}"


def mine_recurring_patterns(
    transactions: Sequence[Transaction],
    *,
    interval_cv_tolerance: float = DEFAULT_RECURRING_INTERVAL_CV,
    amount_cv_tolerance: float = DEFAULT_RECURRING_AMOUNT_CV,
    min_occurrences: int = DEFAULT_RECURRING_MIN_OCCURRENCES,
    bucket_width: float = DEFAULT_AMOUNT_BUCKET_WIDTH,
) -> Tuple[RecurringPattern, ...]:
    """
    Identify recurring transaction groups.

    Parameters
    ----------
    transactions : sequence of Transaction
        Normalized history (any order).
    interval_cv_tolerance, amount_cv_tolerance : float
        A group is recurring when both coefficients of variation are
        strictly below these tolerances.
    min_occurrences : int
        Minimum group size; smaller groups are never reported.
    bucket_width : float
        Width of the amount buckets in the group key.

    Returns
    -------
    tuple of RecurringPattern
        Sorted by confidence, then by monthly magnitude, descending.
    """
    if min_occurrences < 3:
        raise ConfigurationError(f"min_occurrences must be >= 3, got {min_occurrences}.")

    groups: Dict[str, List[Transaction]] = defaultdict(list)
    for t in transactions:
        groups[recurring_group_key(t, bucket_width)].append(t)

    patterns: List[RecurringPattern] = []
    for key, members in groups.items():
        if len(members) < min_occurrences:
            continue
        members = sorted(members, key=lambda t: t.date)
        ordinals = np.array([t.date.toordinal() for t in members], dtype=float)
        intervals = np.diff(ordinals)
        amounts = np.array([t.amount for t in members], dtype=float)

        interval_cv = coefficient_of_variation(intervals)
        amount_cv = coefficient_of_variation(amounts)
        # Same-day clusters and zero amounts have no usable cadence
        if interval_cv is None or amount_cv is None:
            continue
        if interval_cv >= interval_cv_tolerance or amount_cv >= amount_cv_tolerance:
            continue

        patterns.append(RecurringPattern(
            group_key=key,
            description=members[-1].description,
            category=members[-1].category,
            transactions=tuple(members),
            average_interval_days=float(intervals.mean()),
            average_amount=float(amounts.mean()),
            interval_cv=interval_cv,
            amount_cv=amount_cv,
            confidence=clamp(1.0 - (interval_cv + amount_cv), 0.0, 1.0),
        ))

    patterns.sort(key=lambda p: (p.confidence, abs(p.monthly_amount)), reverse=True)
    return tuple(patterns)


# ---------------------------------------------------------------------------
# Trend
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrendEstimate:
    """Mean monthly net flow with its confidence interval.

    ``direction`` is "increasing" or "decreasing" by the sign of the mean,
    and "stable" only when the mean is exactly zero.
    """
    mean: float
    standard_error: float
    confidence_interval: Tuple[float, float]
    confidence_level: float
    critical_value: float
    direction: str
    strength: float
    slope: float
    months: int

    @property
    def half_width(self) -> float:
        lower, upper = self.confidence_interval
        return (upper - lower) / 2.0

    def to_dict(self) -> dict:
        return {
            "mean": self.mean,
            "standard_error": self.standard_error,
            "confidence_interval": {
                "lower": self.confidence_interval[0],
                "upper": self.confidence_interval[1],
            },
            "confidence_level": self.confidence_level,
            "critical_value": self.critical_value,
            "direction": self.direction,
            "strength": self.strength,
            "slope": self.slope,
            "months": self.months,
        }


def critical_value(confidence_level: float, n: int, method: str = "lookup") -> float:
    """
    Two-sided critical value for *confidence_level*.

    ``method="lookup"`` uses the fixed normal values for 90/95/99%;
    ``method="student_t"`` uses the t quantile with n - 1 degrees of freedom.
    """
    if method == "lookup":
        key = round(confidence_level, 2)
        if key not in CRITICAL_VALUES:
            raise ConfigurationError(
                f"No lookup critical value for confidence level {confidence_level}; "
                f"supported: {sorted(CRITICAL_VALUES)}."
            )
        return CRITICAL_VALUES[key]
    if method == "student_t":
        if n < 2:
            raise InsufficientDataError(f"Student-t interval needs n >= 2, got {n}.")
        return float(stats.t.ppf((1.0 + confidence_level) / 2.0, df=n - 1))
    raise ConfigurationError(f"Unknown critical value method {method!r}.")


def estimate_trend(
    transactions: Sequence[Transaction],
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
    method: str = "lookup",
) -> TrendEstimate:
    """
    Estimate the mean monthly net flow and its confidence interval.

    Months between the first and last transaction without any activity
    count as zero net flow.

    Raises
    ------
    InsufficientDataError
        Fewer than two calendar months of history.
    """
    monthly = monthly_net_flow([t.date for t in transactions], [t.amount for t in transactions])
    n = len(monthly)
    if n < 2:
        raise InsufficientDataError(
            f"Trend estimation needs at least 2 months of history, got {n}."
        )

    values = monthly.to_numpy(dtype=float)
    mean = float(values.mean())
    variance = float(values.var(ddof=1))
    se = math.sqrt(variance / n)
    z = critical_value(confidence_level, n, method)

    if se > 0:
        strength = min(abs(mean) / se, TREND_STRENGTH_CAP)
    else:
        # Zero-variance history: as strong as the cap allows, unless flat at zero
        strength = TREND_STRENGTH_CAP if mean != 0 else 0.0

    if mean > 0:
        direction = "increasing"
    elif mean < 0:
        direction = "decreasing"
    else:
        direction = "stable"

    slope = float(np.polyfit(np.arange(n, dtype=float), values, 1)[0])
    return TrendEstimate(
        mean=mean,
        standard_error=se,
        confidence_interval=(mean - z * se, mean + z * se),
        confidence_level=confidence_level,
        critical_value=z,
        direction=direction,
        strength=float(strength),
        slope=slope,
        months=n,
    )


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PatternAnalysis:
    """Everything the pattern stage learned about a history."""
    seasonality: SeasonalProfile
    recurring: Tuple[RecurringPattern, ...] = ()
    trend: Optional[TrendEstimate] = None
    insights: InsightBundle = field(default_factory=InsightBundle)
    notes: Tuple[str, ...] = ()
    errors: Tuple[FincastError, ...] = ()

    @property
    def recurring_transaction_ids(self) -> frozenset:
        """Identities of transactions that belong to a recurring pattern."""
        return frozenset(id(t) for p in self.recurring for t in p.transactions)

    def to_dict(self) -> dict:
        return {
            "seasonality": self.seasonality.to_dict(),
            "recurring": [p.to_dict() for p in self.recurring],
            "trend": self.trend.to_dict() if self.trend is not None else None,
        }


class PatternAnalyzer:
    """
    Runs seasonality detection, recurring mining, trend estimation and the
    optional insight request over a normalized history.

    Parameters
    ----------
    config : ForecastConfig, optional
        Thresholds and tolerances; defaults to ``ForecastConfig()``.
    insight_generator : InsightGenerator, optional
        Collaborator for qualitative commentary. None skips the call.
    """

    def __init__(
        self,
        config: Optional[ForecastConfig] = None,
        insight_generator: Optional[InsightGenerator] = None,
    ):
        self.cfg = config or ForecastConfig()
        self.insight_generator = insight_generator

    def analyze(
        self,
        data: NormalizedData,
        cancel_event: Optional[threading.Event] = None,
    ) -> PatternAnalysis:
        """
        Analyze *data*. Insufficient history skips individual analyses with
        a note; collaborator failures are captured in ``errors``.
        """
        notes: List[str] = []
        errors: List[FincastError] = []
        txs = data.transactions

        try:
            seasonality = detect_seasonality(txs, self.cfg.seasonality_threshold)
        except InsufficientDataError as e:
            notes.append(f"Seasonality skipped: {e}")
            seasonality = SeasonalProfile.neutral(self.cfg.seasonality_threshold)

        recurring = mine_recurring_patterns(
            txs,
            interval_cv_tolerance=self.cfg.recurring_interval_cv,
            amount_cv_tolerance=self.cfg.recurring_amount_cv,
            min_occurrences=self.cfg.recurring_min_occurrences,
            bucket_width=self.cfg.amount_bucket_width,
        )

        try:
            trend: Optional[TrendEstimate] = estimate_trend(
                txs, self.cfg.confidence_level, self.cfg.critical_value_method
            )
        except InsufficientDataError as e:
            notes.append(f"Trend skipped: {e}")
            trend = None

        logger.info(
            "Patterns: seasonality=%s, recurring=%d, trend=%s",
            seasonality.detected, len(recurring), trend.direction if trend else None,
        )

        insights = InsightBundle.empty()
        if self.insight_generator is not None:
            context = self.build_insight_context(data, seasonality, recurring, trend)
            try:
                insights = request_insights(
                    self.insight_generator,
                    context,
                    timeout=self.cfg.insight_timeout,
                    cancel_event=cancel_event,
                )
            except CollaboratorError as e:
                logger.warning("Insight generation degraded to empty lists: %s", e)
                errors.append(e)

        return PatternAnalysis(
            seasonality=seasonality,
            recurring=recurring,
            trend=trend,
            insights=insights,
            notes=tuple(notes),
            errors=tuple(errors),
        )

    @staticmethod
    def build_insight_context(
        data: NormalizedData,
        seasonality: SeasonalProfile,
        recurring: Sequence[RecurringPattern],
        trend: Optional[TrendEstimate],
    ) -> Dict[str, Any]:
        """Structured, JSON-friendly summary handed to the insight generator."""
        recent = data.transactions[-RECENT_TRANSACTIONS_IN_CONTEXT:]
        return {
            "summary": data.summary.to_dict(),
            "seasonality": {
                "detected": seasonality.detected,
                "peak_income_months": list(seasonality.peak_income_months),
                "peak_expense_months": list(seasonality.peak_expense_months),
            },
            "recurring": [p.to_dict() for p in recurring[:10]],
            "trend": trend.to_dict() if trend is not None else None,
            "recent_transactions": [t.to_dict() for t in recent],
        }
