"""Projection engine for fincast

Turns a normalized history and its pattern analysis into per-horizon balance
projections with Monte Carlo uncertainty, a statistical confidence band,
a confidence score and percentile-based scenario variants.

Model
-----
Base monthly net flow B:

    B = sum(recurring monthly-equivalent amounts) + residual net / months

or ``Summary.net_income / 12`` when no recurring pattern was found.

For horizon H, the increment of month m (1..H) is

    inc_m = B * (1 + sign(B) * rate * m / H) * S(month_m)

with rate = clip(slope / |mean| * H, -max_shift, +max_shift) from the trend
estimate and S the seasonal multiplier of the projected calendar month
(1.0 unless seasonality was detected).

Design goals
------------
- Deterministic point estimates; randomness only in the Monte Carlo stage.
- One child RNG stream per horizon, so sequential and threaded Monte Carlo
  runs agree for a given seed.

Typical usage
-------------
>>> engine = ProjectionEngine(ForecastConfig(seed=42))
>>> projections = engine.project(data, patterns)
>>> projections.by_horizon(12).uncertainty.p50
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import ForecastConfig
from .constants import (
    BASE_CONFIDENCE,
    BASE_VOLATILITY,
    CONFIDENCE_DECAY_PER_MONTH,
    EXTREME_VARIANT_FACTOR,
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    MODERATE_VARIANT_FACTOR,
    MONTHS_PER_YEAR,
    PATTERN_CONFIDENCE_BONUS,
    PATTERN_CONFIDENCE_CAP,
    PERCENTILE_LEVELS,
    SEASONALITY_CONFIDENCE_BONUS,
    STRONG_TREND_THRESHOLD,
    TREND_CONFIDENCE_BONUS,
    VOLATILITY_PER_MONTH,
)
from .exceptions import InsufficientDataError
from .normalizer import NormalizedData
from .patterns import PatternAnalysis, SeasonalProfile, TrendEstimate
from .utils import add_months, clamp
from .types import BandDict, ProjectionDict, UncertaintyDict, VariantDict

__all__ = [
    "UncertaintyModel",
    "StatisticalBand",
    "Projection",
    "ScenarioVariant",
    "ProjectionSet",
    "ProjectionEngine",
    "base_monthly_flow",
    "trend_rate",
    "monthly_increments",
    "simulate_uncertainty",
    "projection_confidence",
    "select_variant_horizon",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UncertaintyModel:
    """Monte Carlo distribution summary of one horizon's balance."""
    p5: float
    p25: float
    p50: float
    p75: float
    p95: float
    mean: float
    volatility: float
    n_sims: int

    @property
    def percentiles(self) -> Dict[int, float]:
        return {5: self.p5, 25: self.p25, 50: self.p50, 75: self.p75, 95: self.p95}

    def to_dict(self) -> UncertaintyDict:
        return {
            "percentiles": {f"p{k}": v for k, v in self.percentiles.items()},
            "mean": self.mean,
            "volatility": self.volatility,
            "n_sims": self.n_sims,
        }


@dataclass(frozen=True)
class StatisticalBand:
    lower: float
    upper: float
    source: str = "trend"       # "trend" or "monte_carlo"

    def to_dict(self) -> BandDict:
        return {"lower": self.lower, "upper": self.upper, "source": self.source}


@dataclass(frozen=True)
class Projection:
    """Balance projection for a single horizon."""
    horizon_months: int
    current_balance: float
    projected_balance: float
    monthly_change: float
    monthly_increments: Tuple[float, ...]
    uncertainty: UncertaintyModel
    statistical_band: StatisticalBand
    confidence: float
    assumptions: Tuple[str, ...] = ()
    # Balance delta applied by scenarios on top of the increments
    adjustment: float = 0.0

    def to_dict(self) -> ProjectionDict:
        return {
            "horizon_months": self.horizon_months,
            "current_balance": self.current_balance,
            "projected_balance": self.projected_balance,
            "monthly_change": self.monthly_change,
            "monthly_increments": list(self.monthly_increments),
            "uncertainty": self.uncertainty.to_dict(),
            "statistical_band": self.statistical_band.to_dict(),
            "confidence": self.confidence,
            "assumptions": list(self.assumptions),
            "adjustment": self.adjustment,
        }


@dataclass(frozen=True)
class ScenarioVariant:
    """Percentile-based outcome at the variant horizon."""
    name: str
    horizon_months: int
    projected_balance: float
    confidence: float
    percentile: Optional[int] = None

    def to_dict(self) -> VariantDict:
        return {
            "name": self.name,
            "horizon_months": self.horizon_months,
            "projected_balance": self.projected_balance,
            "confidence": self.confidence,
            "percentile": self.percentile,
        }


@dataclass(frozen=True)
class ProjectionSet:
    """Projections for all configured horizons plus the scenario variants."""
    projections: Tuple[Projection, ...]
    variants: Tuple[ScenarioVariant, ...] = ()
    base_monthly_flow: float = 0.0
    variant_horizon: Optional[int] = None
    assumptions: Tuple[str, ...] = field(default_factory=tuple)

    def __iter__(self):
        return iter(self.projections)

    def __len__(self) -> int:
        return len(self.projections)

    @property
    def horizons(self) -> Tuple[int, ...]:
        return tuple(p.horizon_months for p in self.projections)

    def by_horizon(self, horizon: int) -> Projection:
        for p in self.projections:
            if p.horizon_months == horizon:
                return p
        raise KeyError(f"No projection for horizon {horizon}; available: {self.horizons}")

    @property
    def base_confidence(self) -> float:
        """Confidence of the projection at the variant horizon."""
        if not self.projections:
            return 0.0
        if self.variant_horizon is None:
            return self.projections[0].confidence
        return self.by_horizon(self.variant_horizon).confidence

    def to_dict(self) -> dict:
        return {
            "base_monthly_flow": self.base_monthly_flow,
            "variant_horizon": self.variant_horizon,
            "projections": {str(p.horizon_months): p.to_dict() for p in self.projections},
            "variants": {v.name: v.to_dict() for v in self.variants},
        }


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def base_monthly_flow(data: NormalizedData, patterns: Optional[PatternAnalysis]) -> Tuple[float, str]:
    """
    Deterministic monthly net flow the projection walks from.

    Returns
    -------
    (float, str)
        The base flow and a one-line description of how it was derived.
    """
    summary = data.summary
    recurring = patterns.recurring if patterns is not None else ()
    if not recurring:
        return summary.net_income / MONTHS_PER_YEAR, "net income / 12 (no recurring patterns)"

    recurring_flow = float(sum(p.monthly_amount for p in recurring))
    members = patterns.recurring_transaction_ids
    residual = sum(t.amount for t in data.transactions if id(t) not in members)
    months = max(summary.months_of_history, 1)
    return (
        recurring_flow + residual / months,
        f"{len(recurring)} recurring patterns ({recurring_flow:,.2f}/month) "
        f"plus residual average over {months} months",
    )


def trend_rate(trend: Optional[TrendEstimate], horizon: int, max_shift: float) -> float:
    """Relative trend shift reached at the end of *horizon*, clipped to ±max_shift."""
    if trend is None or trend.mean == 0:
        return 0.0
    raw = trend.slope / abs(trend.mean) * horizon
    return clamp(raw, -max_shift, max_shift)


def monthly_increments(
    base: float,
    horizon: int,
    start: date,
    seasonality: SeasonalProfile,
    trend: Optional[TrendEstimate],
    max_shift: float,
) -> np.ndarray:
    """
    Month-by-month balance increments for *horizon* months after *start*.

    Month m lands in the calendar month m months after ``start``.
    """
    rate = trend_rate(trend, horizon, max_shift)
    direction = float(np.sign(base))
    m = np.arange(1, horizon + 1, dtype=float)
    trend_mult = 1.0 + direction * rate * (m / horizon)
    season_mult = np.array(
        [seasonality.multiplier(add_months(start, k).month - 1) for k in range(1, horizon + 1)],
        dtype=float,
    )
    return base * trend_mult * season_mult


def simulate_uncertainty(
    point: float,
    horizon: int,
    n_sims: int,
    rng: np.random.Generator,
) -> UncertaintyModel:
    """Perturb *point* with Normal(1, σ) noise, σ = 0.15 + 0.01·horizon."""
    sigma = BASE_VOLATILITY + VOLATILITY_PER_MONTH * horizon
    samples = point * rng.normal(loc=1.0, scale=sigma, size=n_sims)
    # np.percentile is monotone in q, so p5 <= ... <= p95 always holds
    p5, p25, p50, p75, p95 = (float(v) for v in np.percentile(samples, PERCENTILE_LEVELS))
    return UncertaintyModel(
        p5=p5, p25=p25, p50=p50, p75=p75, p95=p95,
        mean=float(samples.mean()),
        volatility=sigma,
        n_sims=n_sims,
    )


def projection_confidence(
    horizon: int,
    n_patterns: int,
    seasonality_detected: bool,
    trend_strength: float,
) -> float:
    """Heuristic confidence of a horizon, clamped to [0.3, 0.95]."""
    score = BASE_CONFIDENCE - CONFIDENCE_DECAY_PER_MONTH * horizon
    score += min(PATTERN_CONFIDENCE_BONUS * n_patterns, PATTERN_CONFIDENCE_CAP)
    if seasonality_detected:
        score += SEASONALITY_CONFIDENCE_BONUS
    if trend_strength > STRONG_TREND_THRESHOLD:
        score += TREND_CONFIDENCE_BONUS
    return clamp(score, MIN_CONFIDENCE, MAX_CONFIDENCE)


def select_variant_horizon(horizons: Sequence[int], preferred: int) -> int:
    """*preferred* if configured, else the nearest horizon (shorter on ties)."""
    if preferred in horizons:
        return preferred
    return min(horizons, key=lambda h: (abs(h - preferred), h))


def _statistical_band(
    projected: float,
    horizon: int,
    trend: Optional[TrendEstimate],
    uncertainty: UncertaintyModel,
) -> StatisticalBand:
    if trend is None:
        return StatisticalBand(uncertainty.p5, uncertainty.p95, source="monte_carlo")
    spread = trend.half_width * horizon
    return StatisticalBand(projected - spread, projected + spread, source="trend")


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class ProjectionEngine:
    """Builds per-horizon projections from a history and its patterns.

    Parameters
    ----------
    config : ForecastConfig, optional
        Horizons, Monte Carlo sample count and seed, trend shift cap and
        variant horizon.
    """

    def __init__(self, config: Optional[ForecastConfig] = None):
        self.cfg = config or ForecastConfig()

    def _rngs(self) -> List[np.random.Generator]:
        children = np.random.SeedSequence(self.cfg.seed).spawn(len(self.cfg.horizons))
        return [np.random.default_rng(child) for child in children]

    def _simulate_all(self, points: Sequence[float]) -> List[UncertaintyModel]:
        rngs = self._rngs()
        jobs = list(zip(points, self.cfg.horizons, rngs))
        if self.cfg.parallel_monte_carlo and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="fincast-mc") as pool:
                return list(pool.map(
                    lambda job: simulate_uncertainty(job[0], job[1], self.cfg.n_sims, job[2]),
                    jobs,
                ))
        return [simulate_uncertainty(p, h, self.cfg.n_sims, rng) for p, h, rng in jobs]

    def next_month_flow(self, data: NormalizedData, patterns: Optional[PatternAnalysis]) -> float:
        """Deterministic net flow predicted for the month after the history."""
        if data.is_empty:
            raise InsufficientDataError("Cannot project from an empty transaction history.")
        seasonality = patterns.seasonality if patterns is not None else SeasonalProfile.neutral()
        trend = patterns.trend if patterns is not None else None
        base, _ = base_monthly_flow(data, patterns)
        increments = monthly_increments(
            base, 1, data.summary.end_date, seasonality, trend, self.cfg.max_trend_shift
        )
        return float(increments[0])

    def project(self, data: NormalizedData, patterns: Optional[PatternAnalysis] = None) -> ProjectionSet:
        """
        Project balances for every configured horizon.

        Parameters
        ----------
        data : NormalizedData
            Normalized history.
        patterns : PatternAnalysis, optional
            Output of the pattern stage. None projects with neutral
            seasonality, no recurring patterns and no trend.

        Returns
        -------
        ProjectionSet

        Raises
        ------
        InsufficientDataError
            If *data* holds no transactions.
        """
        if data.is_empty:
            raise InsufficientDataError("Cannot project from an empty transaction history.")

        seasonality = patterns.seasonality if patterns is not None else SeasonalProfile.neutral()
        trend = patterns.trend if patterns is not None else None
        n_patterns = len(patterns.recurring) if patterns is not None else 0
        strength = trend.strength if trend is not None else 0.0

        current = data.summary.current_balance
        base, base_note = base_monthly_flow(data, patterns)
        shared = [f"Base monthly net flow {base:,.2f} from {base_note}"]
        if seasonality.detected:
            shared.append("Seasonal multipliers applied to projected calendar months")
        if trend is not None:
            shared.append(f"Trend {trend.direction} (strength {trend.strength:.2f})")
        else:
            shared.append("No trend estimate; statistical band from Monte Carlo p5/p95")

        paths = [
            monthly_increments(
                base, h, data.summary.end_date, seasonality, trend, self.cfg.max_trend_shift
            )
            for h in self.cfg.horizons
        ]
        points = [current + float(path.sum()) for path in paths]
        uncertainties = self._simulate_all(points)

        projections = []
        for h, path, point, unc in zip(self.cfg.horizons, paths, points, uncertainties):
            rate = trend_rate(trend, h, self.cfg.max_trend_shift)
            projections.append(Projection(
                horizon_months=h,
                current_balance=current,
                projected_balance=point,
                monthly_change=(point - current) / h,
                monthly_increments=tuple(float(x) for x in path),
                uncertainty=unc,
                statistical_band=_statistical_band(point, h, trend, unc),
                confidence=projection_confidence(h, n_patterns, seasonality.detected, strength),
                assumptions=tuple(shared) + (
                    f"Trend shift reaches {rate:+.1%} by month {h}",
                    f"Monte Carlo volatility {unc.volatility:.2f} over {unc.n_sims} samples",
                ),
            ))

        variant_h = select_variant_horizon(self.cfg.horizons, self.cfg.variant_horizon)
        anchor = next(p for p in projections if p.horizon_months == variant_h)
        result = ProjectionSet(
            projections=tuple(projections),
            variants=self._variants(anchor),
            base_monthly_flow=base,
            variant_horizon=variant_h,
            assumptions=tuple(shared),
        )
        logger.info(
            "Projected %d horizons from balance %.2f (base flow %.2f/month)",
            len(projections), current, base,
        )
        return result

    @staticmethod
    def _variants(anchor: Projection) -> Tuple[ScenarioVariant, ...]:
        h, unc, conf = anchor.horizon_months, anchor.uncertainty, anchor.confidence
        return (
            ScenarioVariant("base", h, anchor.projected_balance, conf),
            ScenarioVariant("optimistic", h, unc.p75, conf * MODERATE_VARIANT_FACTOR, 75),
            ScenarioVariant("pessimistic", h, unc.p25, conf * MODERATE_VARIANT_FACTOR, 25),
            ScenarioVariant("best_case", h, unc.p95, conf * EXTREME_VARIANT_FACTOR, 95),
            ScenarioVariant("worst_case", h, unc.p5, conf * EXTREME_VARIANT_FACTOR, 5),
        )
