"""
Accuracy validation and quality scoring for fincast.

Purpose
-------
Fifth pipeline stage. Back-tests a projection function against held-out
months of the history and condenses data sufficiency, pattern strength,
insight richness and back-tested accuracy into one QualityScore.

Key components
--------------
- backtest:
    For each of the K most recent complete calendar months, train on everything
    before the month starts, predict that month's net flow and compare it
    with the actual net flow. Periods without enough train or test records
    are skipped with a note.

- compute_quality_score:
    overall = 0.30·data_quality + 0.25·algorithmic_strength
              + 0.20·ai_insight_quality + 0.25·forecast_reliability

- improvement_recommendations:
    Text guidance for every component below its threshold.

Example
-------
>>> result = backtest(data.transactions, make_backtest_projection(config))
>>> result.is_reliable
True
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import ForecastConfig
from .constants import (
    DEFAULT_BACKTEST_MIN_TEST,
    DEFAULT_BACKTEST_MIN_TRAIN,
    DEFAULT_BACKTEST_PERIODS,
    DEFAULT_RELIABILITY_THRESHOLD_PCT,
    FULL_DATA_TRANSACTION_COUNT,
    FULL_INSIGHT_COUNT,
    QUALITY_WEIGHTS,
    TREND_STRENGTH_NORMALIZER,
)
from .exceptions import InsufficientDataError
from .normalizer import Transaction, normalize_transactions
from .patterns import PatternAnalyzer
from .projection import ProjectionEngine
from .types import QualityScoreDict
from .utils import add_months, clamp, is_month_end

__all__ = [
    "BacktestPeriod",
    "BacktestResult",
    "QualityScore",
    "ProjectionFn",
    "backtest",
    "percentage_error",
    "make_backtest_projection",
    "compute_quality_score",
    "improvement_recommendations",
]

logger = logging.getLogger(__name__)

ProjectionFn = Callable[[Sequence[Transaction]], float]
"""Maps a training history to the predicted net flow of the following month."""


# ---------------------------------------------------------------------------
# Back-testing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BacktestPeriod:
    test_month: date
    train_count: int
    test_count: int
    predicted: float
    actual: float
    absolute_error: float
    percentage_error: float

    def to_dict(self) -> dict:
        return {
            "test_month": self.test_month.isoformat(),
            "train_count": self.train_count,
            "test_count": self.test_count,
            "predicted": self.predicted,
            "actual": self.actual,
            "absolute_error": self.absolute_error,
            "percentage_error": self.percentage_error,
        }


@dataclass(frozen=True)
class BacktestResult:
    """Outcome of a rolling-month back-test."""
    periods: Tuple[BacktestPeriod, ...] = ()
    notes: Tuple[str, ...] = ()
    threshold_pct: float = DEFAULT_RELIABILITY_THRESHOLD_PCT

    @property
    def mean_percentage_error(self) -> Optional[float]:
        if not self.periods:
            return None
        return float(np.mean([p.percentage_error for p in self.periods]))

    @property
    def mean_absolute_error(self) -> Optional[float]:
        if not self.periods:
            return None
        return float(np.mean([p.absolute_error for p in self.periods]))

    @property
    def is_reliable(self) -> bool:
        """True when at least one period ran and the mean error is below threshold."""
        mpe = self.mean_percentage_error
        return mpe is not None and mpe < self.threshold_pct

    @property
    def accuracy_fraction(self) -> Optional[float]:
        """1 - mean percentage error / 100, floored at 0; None if nothing ran."""
        mpe = self.mean_percentage_error
        if mpe is None:
            return None
        return max(0.0, 1.0 - mpe / 100.0)

    def to_dict(self) -> dict:
        return {
            "periods": [p.to_dict() for p in self.periods],
            "notes": list(self.notes),
            "mean_percentage_error": self.mean_percentage_error,
            "mean_absolute_error": self.mean_absolute_error,
            "accuracy_fraction": self.accuracy_fraction,
            "threshold_pct": self.threshold_pct,
            "is_reliable": self.is_reliable,
        }


def percentage_error(predicted: float, actual: float) -> float:
    """|predicted - actual| / |actual| × 100; 0 or 100 when actual is zero."""
    if actual == 0:
        return 0.0 if predicted == 0 else 100.0
    return abs(predicted - actual) / abs(actual) * 100.0


def backtest(
    transactions: Sequence[Transaction],
    projection_fn: ProjectionFn,
    periods: int = DEFAULT_BACKTEST_PERIODS,
    min_train: int = DEFAULT_BACKTEST_MIN_TRAIN,
    min_test: int = DEFAULT_BACKTEST_MIN_TEST,
    threshold_pct: float = DEFAULT_RELIABILITY_THRESHOLD_PCT,
) -> BacktestResult:
    """
    Back-test *projection_fn* over the most recent calendar months.

    Parameters
    ----------
    transactions : sequence of Transaction
        Date-ordered history.
    projection_fn : callable
        ``projection_fn(train) -> predicted net flow of the next month``.
    periods : int
        Number of most recent months to test (oldest first in the result).
    min_train, min_test : int
        Minimum records required on each side of the cutoff.
    threshold_pct : float
        Mean percentage error below which the model counts as reliable.

    Returns
    -------
    BacktestResult
        Skipped periods, a trailing partial month and failures of
        *projection_fn* appear in ``notes``, never as errors.
    """
    if not transactions:
        return BacktestResult(notes=("Back-test skipped: no transactions.",), threshold_pct=threshold_pct)

    last = transactions[-1].date
    # Only complete calendar months are tested
    anchor = last if is_month_end(last) else add_months(last, -1)
    results: List[BacktestPeriod] = []
    notes: List[str] = []
    if anchor != last:
        notes.append(
            f"Back-test excludes {last.strftime('%Y-%m')}: history ends on "
            f"{last.isoformat()}, before the month is complete."
        )
    for k in range(periods - 1, -1, -1):
        cutoff = add_months(anchor, -k)
        month_end = add_months(cutoff, 1)
        train = [t for t in transactions if t.date < cutoff]
        test = [t for t in transactions if cutoff <= t.date < month_end]
        label = cutoff.strftime("%Y-%m")

        if len(train) < min_train or len(test) < min_test:
            notes.append(
                f"Back-test period {label} skipped: {len(train)} train / {len(test)} test "
                f"records (need {min_train} / {min_test})."
            )
            continue
        try:
            predicted = float(projection_fn(train))
        except InsufficientDataError as e:
            notes.append(f"Back-test period {label} skipped: {e}")
            continue
        except Exception as e:
            logger.warning("Projection function failed for back-test period %s: %s", label, e)
            notes.append(f"Back-test period {label} skipped: projection failed ({type(e).__name__}: {e}).")
            continue
        if not math.isfinite(predicted):
            notes.append(f"Back-test period {label} skipped: non-finite prediction {predicted!r}.")
            continue

        actual = float(sum(t.amount for t in test))
        results.append(BacktestPeriod(
            test_month=cutoff,
            train_count=len(train),
            test_count=len(test),
            predicted=predicted,
            actual=actual,
            absolute_error=abs(predicted - actual),
            percentage_error=percentage_error(predicted, actual),
        ))

    result = BacktestResult(periods=tuple(results), notes=tuple(notes), threshold_pct=threshold_pct)
    logger.info(
        "Back-test: %d of %d periods evaluated, mean error %s",
        len(results), periods,
        f"{result.mean_percentage_error:.1f}%" if result.mean_percentage_error is not None else "n/a",
    )
    return result


def make_backtest_projection(config: Optional[ForecastConfig] = None) -> ProjectionFn:
    """Projection function running the pattern and projection stages without insights."""
    cfg = config or ForecastConfig()
    analyzer = PatternAnalyzer(cfg)
    engine = ProjectionEngine(cfg)

    def projection_fn(train: Sequence[Transaction]) -> float:
        data = normalize_transactions(list(train))
        return engine.next_month_flow(data, analyzer.analyze(data))

    return projection_fn


# ---------------------------------------------------------------------------
# Quality score
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QualityScore:
    data_quality: float
    algorithmic_strength: float
    ai_insight_quality: float
    forecast_reliability: float
    overall: float

    @property
    def components(self) -> Dict[str, float]:
        return {
            "data_quality": self.data_quality,
            "algorithmic_strength": self.algorithmic_strength,
            "ai_insight_quality": self.ai_insight_quality,
            "forecast_reliability": self.forecast_reliability,
        }

    def to_dict(self) -> QualityScoreDict:
        return {**self.components, "overall": self.overall, "weights": dict(QUALITY_WEIGHTS)}


def compute_quality_score(
    *,
    transaction_count: int,
    recurring_count: int = 0,
    seasonality_detected: bool = False,
    trend_strength: float = 0.0,
    insight_count: int = 0,
    base_confidence: float = 0.0,
    backtest_accuracy: Optional[float] = None,
) -> QualityScore:
    """
    Composite reliability score; every component and the overall lie in [0, 1].

    A back-test that evaluated no period contributes an accuracy of 0.
    """
    data_quality = min(1.0, transaction_count / FULL_DATA_TRANSACTION_COUNT)
    normalized_strength = min(1.0, trend_strength / TREND_STRENGTH_NORMALIZER)
    algorithmic_strength = min(
        1.0,
        min(1.0, 0.1 * recurring_count)
        + 0.5 * float(seasonality_detected)
        + 0.4 * normalized_strength,
    )
    ai_insight_quality = min(1.0, insight_count / FULL_INSIGHT_COUNT)
    accuracy = backtest_accuracy if backtest_accuracy is not None else 0.0
    forecast_reliability = clamp((base_confidence + accuracy) / 2.0, 0.0, 1.0)

    components = {
        "data_quality": clamp(data_quality, 0.0, 1.0),
        "algorithmic_strength": clamp(algorithmic_strength, 0.0, 1.0),
        "ai_insight_quality": clamp(ai_insight_quality, 0.0, 1.0),
        "forecast_reliability": forecast_reliability,
    }
    overall = sum(QUALITY_WEIGHTS[name] * value for name, value in components.items())
    return QualityScore(overall=clamp(overall, 0.0, 1.0), **components)


def improvement_recommendations(
    score: QualityScore,
    backtest_result: Optional[BacktestResult] = None,
) -> Tuple[str, ...]:
    """Guidance for each quality component below its threshold."""
    advice = []
    if score.data_quality < 0.7:
        advice.append("Add more transaction history; at least 100 transactions are recommended.")
    if score.algorithmic_strength < 0.5:
        advice.append("Categorize transactions consistently so recurring patterns can be detected.")
    if score.ai_insight_quality < 0.5:
        advice.append("Enable an insight generator for qualitative analysis.")
    if score.forecast_reliability < 0.6:
        advice.append("Treat long horizons with caution; forecast reliability is limited.")
    if backtest_result is not None and not backtest_result.is_reliable:
        if backtest_result.periods:
            advice.append(
                f"Back-tested error {backtest_result.mean_percentage_error:.1f}% exceeds "
                f"{backtest_result.threshold_pct:.0f}%; review irregular income and expenses."
            )
        else:
            advice.append("Provide several complete months of history to enable back-testing.")
    return tuple(advice)
