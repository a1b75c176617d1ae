"""
Pipeline orchestrator for fincast.

Purpose
-------
Sequences the five forecast stages against one ``ForecastState``:

    normalize -> patterns -> projection -> scenarios -> validation

Each stage returns a tagged ``StageOutcome``. Failures inside a stage are
appended to ``state.errors`` as ``StageError`` entries and the run goes on
with degraded output; downstream stages check for missing upstream
results. Only a FATAL normalizer outcome halts the run.

Cancellation is all-or-nothing: if the cancel event is set, the run raises
ForecastCancelledError and its state is discarded.

Example
-------
>>> pipeline = ForecastPipeline(ForecastConfig(seed=42))
>>> result = pipeline.run(records, scenarios=[{"type": "salary_change", "percentage": 10}])
>>> result.status, result.has_errors
('success', False)
>>> result.to_dict()["projections"]["12"]["projected_balance"]
"""

from __future__ import annotations

import logging
import threading
import time
from types import MappingProxyType
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .config import ForecastConfig
from .constants import VERSION
from .exceptions import (
    DataIngestionError,
    FincastError,
    ForecastCancelledError,
    ValidationError,
)
from .insights import InsightBundle, InsightGenerator
from .normalizer import NormalizedData, Summary, normalize_transactions
from .patterns import PatternAnalysis, PatternAnalyzer
from .projection import Projection, ProjectionEngine, ProjectionSet
from .scenario import Scenario, apply_scenarios, build_scenario
from .types import ForecastResultDict, StageErrorDict
from .validation import (
    BacktestResult,
    ProjectionFn,
    QualityScore,
    backtest,
    compute_quality_score,
    improvement_recommendations,
    make_backtest_projection,
)

__all__ = [
    "StageOutcome",
    "StageError",
    "ForecastState",
    "ForecastResult",
    "ForecastPipeline",
    "STAGES",
]

logger = logging.getLogger(__name__)

STAGES: Tuple[str, ...] = ("normalize", "patterns", "projection", "scenarios", "validation")


class StageOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FATAL = "fatal"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StageError:
    """Structured error entry recorded by a stage."""
    stage: str
    message: str
    kind: str

    @classmethod
    def from_exception(cls, stage: str, exc: BaseException) -> "StageError":
        return cls(stage=stage, message=str(exc), kind=type(exc).__name__)

    def to_dict(self) -> StageErrorDict:
        return {"stage": self.stage, "message": self.message, "kind": self.kind}


# ---------------------------------------------------------------------------
# State and result
# ---------------------------------------------------------------------------

@dataclass
class ForecastState:
    """Mutable accumulator threaded through the stages of one run."""
    raw: Any
    scenario_descriptors: Sequence[Any] = ()
    data: Optional[NormalizedData] = None
    patterns: Optional[PatternAnalysis] = None
    projections: Optional[ProjectionSet] = None
    scenarios: List[Scenario] = field(default_factory=list)
    scenario_projections: Tuple[Projection, ...] = ()
    backtest: Optional[BacktestResult] = None
    quality: Optional[QualityScore] = None
    recommendations: Tuple[str, ...] = ()
    errors: List[StageError] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    outcomes: Dict[str, StageOutcome] = field(default_factory=dict)
    timings_ms: Dict[str, float] = field(default_factory=dict)

    def fail(self, stage: str, exc: BaseException) -> None:
        self.errors.append(StageError.from_exception(stage, exc))


@dataclass(frozen=True)
class ForecastResult:
    """
    Immutable outcome of one pipeline run.

    ``advisory`` is True whenever the result is not reliable or carries
    errors; such results must not be presented as certain numbers.
    """
    status: str
    summary: Summary
    projections: Optional[ProjectionSet]
    scenario_projections: Tuple[Projection, ...]
    scenarios: Tuple[dict, ...]
    patterns: Optional[PatternAnalysis]
    insights: InsightBundle
    backtest: Optional[BacktestResult]
    quality: Optional[QualityScore]
    recommendations: Tuple[str, ...]
    errors: Tuple[StageError, ...]
    notes: Tuple[str, ...]
    metadata: Mapping[str, Any]

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def is_reliable(self) -> bool:
        return self.status != StageOutcome.FATAL.value and self.backtest is not None and self.backtest.is_reliable

    @property
    def advisory(self) -> bool:
        return self.has_errors or not self.is_reliable

    def to_dict(self) -> ForecastResultDict:
        """JSON-serializable representation."""
        projections = self.projections
        return {
            "status": self.status,
            "summary": self.summary.to_dict(),
            "projections": (
                {str(p.horizon_months): p.to_dict() for p in projections} if projections else {}
            ),
            "base_monthly_flow": projections.base_monthly_flow if projections else None,
            "variants": {v.name: v.to_dict() for v in projections.variants} if projections else {},
            "scenarios": list(self.scenarios),
            "scenario_projections": {
                str(p.horizon_months): p.to_dict() for p in self.scenario_projections
            },
            "patterns": self.patterns.to_dict() if self.patterns is not None else None,
            "insights": self.insights.to_dict(),
            "backtest": self.backtest.to_dict() if self.backtest is not None else None,
            "quality": self.quality.to_dict() if self.quality is not None else None,
            "recommendations": list(self.recommendations),
            "errors": [e.to_dict() for e in self.errors],
            "has_errors": self.has_errors,
            "is_reliable": self.is_reliable,
            "advisory": self.advisory,
            "notes": list(self.notes),
            "metadata": {k: dict(v) if isinstance(v, Mapping) else v for k, v in self.metadata.items()},
        }


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class ForecastPipeline:
    """
    Runs the forecast stages in sequence and assembles a ForecastResult.

    Parameters
    ----------
    config : ForecastConfig, optional
        Pipeline configuration; defaults to ``ForecastConfig()``.
    insight_generator : InsightGenerator, optional
        Collaborator for qualitative insights. None skips the call.
    projection_fn : callable, optional
        Projection function used for back-testing. Defaults to the pattern
        and projection stages run on the training window.
    """

    def __init__(
        self,
        config: Optional[ForecastConfig] = None,
        insight_generator: Optional[InsightGenerator] = None,
        projection_fn: Optional[ProjectionFn] = None,
    ):
        self.cfg = config or ForecastConfig()
        self.insight_generator = insight_generator
        self.projection_fn = projection_fn or make_backtest_projection(self.cfg)

    # -------------------- Public API --------------------
    def run(
        self,
        transactions: Sequence[Any],
        scenarios: Sequence[Any] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> ForecastResult:
        """
        Run the full pipeline.

        Raises
        ------
        ForecastCancelledError
            *cancel_event* was set before the run finished.
        """
        started_at = datetime.now(timezone.utc)
        t0 = time.perf_counter()
        state = ForecastState(raw=transactions, scenario_descriptors=list(scenarios or ()))

        stages: Sequence[Tuple[str, Callable[[ForecastState, Optional[threading.Event]], StageOutcome]]] = (
            ("normalize", self._normalize),
            ("patterns", self._analyze),
            ("projection", self._project),
            ("scenarios", self._compose),
            ("validation", self._validate),
        )
        for name, stage in stages:
            self._check_cancelled(cancel_event, name)
            outcome = self._run_stage(name, stage, state, cancel_event)
            if outcome is StageOutcome.FATAL:
                logger.error("Stage '%s' failed fatally; aborting run", name)
                break
        self._check_cancelled(cancel_event, "result")

        return self._assemble(state, started_at, (time.perf_counter() - t0) * 1000.0)

    def run_many(
        self,
        transactions: Sequence[Any],
        scenario_sets: Sequence[Sequence[Any]],
        cancel_event: Optional[threading.Event] = None,
        max_workers: Optional[int] = None,
    ) -> List[ForecastResult]:
        """Run one pipeline per scenario set against a shared immutable snapshot."""
        snapshot = tuple(transactions) if isinstance(transactions, (list, tuple)) else transactions
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="fincast-run") as pool:
            futures = [pool.submit(self.run, snapshot, scenarios, cancel_event) for scenarios in scenario_sets]
            return [f.result() for f in futures]

    # -------------------- Stage plumbing --------------------
    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event], where: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ForecastCancelledError(f"Forecast cancelled before stage '{where}'.")

    def _run_stage(self, name, stage, state: ForecastState, cancel_event) -> StageOutcome:
        t0 = time.perf_counter()
        logger.debug("Stage '%s' started", name)
        try:
            outcome = stage(state, cancel_event)
        except ForecastCancelledError:
            raise
        except FincastError as e:
            logger.warning("Stage '%s' failed: %s", name, e)
            state.fail(name, e)
            outcome = StageOutcome.FATAL if isinstance(e, DataIngestionError) else StageOutcome.PARTIAL
        except Exception as e:
            logger.exception("Stage '%s' raised an unexpected error", name)
            state.fail(name, e)
            outcome = StageOutcome.PARTIAL
        state.outcomes[name] = outcome
        state.timings_ms[name] = (time.perf_counter() - t0) * 1000.0
        logger.info("Stage '%s' finished: %s", name, outcome.value)
        return outcome

    # -------------------- Stages --------------------
    def _normalize(self, state: ForecastState, cancel_event) -> StageOutcome:
        data = normalize_transactions(state.raw)
        state.data = data
        if data.summary.dropped_count:
            state.notes.append(f"Dropped {data.summary.dropped_count} malformed transaction records.")
        if data.is_empty:
            state.fail("normalize", DataIngestionError("No usable transactions after normalization."))
            return StageOutcome.FATAL
        return StageOutcome.SUCCESS

    def _analyze(self, state: ForecastState, cancel_event) -> StageOutcome:
        if state.data is None:
            return StageOutcome.SKIPPED
        analyzer = PatternAnalyzer(self.cfg, self.insight_generator)
        patterns = analyzer.analyze(state.data, cancel_event=cancel_event)
        state.patterns = patterns
        state.notes.extend(patterns.notes)
        for e in patterns.errors:
            state.fail("patterns", e)
        return StageOutcome.PARTIAL if patterns.errors else StageOutcome.SUCCESS

    def _project(self, state: ForecastState, cancel_event) -> StageOutcome:
        if state.data is None:
            return StageOutcome.SKIPPED
        state.projections = ProjectionEngine(self.cfg).project(state.data, state.patterns)
        return StageOutcome.SUCCESS

    def _compose(self, state: ForecastState, cancel_event) -> StageOutcome:
        if not state.scenario_descriptors:
            return StageOutcome.SKIPPED
        failed = False
        for descriptor in state.scenario_descriptors:
            try:
                state.scenarios.append(build_scenario(descriptor))
            except ValidationError as e:
                state.fail("scenarios", e)
                failed = True
        if state.projections is None:
            state.notes.append("Scenarios not applied: no base projections.")
            return StageOutcome.SKIPPED
        state.scenario_projections = apply_scenarios(state.projections, state.scenarios)
        return StageOutcome.PARTIAL if failed else StageOutcome.SUCCESS

    def _validate(self, state: ForecastState, cancel_event) -> StageOutcome:
        if state.data is None:
            return StageOutcome.SKIPPED
        result = backtest(
            state.data.transactions,
            self.projection_fn,
            periods=self.cfg.backtest_periods,
            min_train=self.cfg.backtest_min_train,
            min_test=self.cfg.backtest_min_test,
            threshold_pct=self.cfg.reliability_threshold_pct,
        )
        state.backtest = result
        state.notes.extend(result.notes)

        patterns = state.patterns
        trend = patterns.trend if patterns is not None else None
        state.quality = compute_quality_score(
            transaction_count=state.data.summary.transaction_count,
            recurring_count=len(patterns.recurring) if patterns is not None else 0,
            seasonality_detected=patterns.seasonality.detected if patterns is not None else False,
            trend_strength=trend.strength if trend is not None else 0.0,
            insight_count=patterns.insights.total_count if patterns is not None else 0,
            base_confidence=state.projections.base_confidence if state.projections is not None else 0.0,
            backtest_accuracy=result.accuracy_fraction,
        )
        state.recommendations = improvement_recommendations(state.quality, result)
        return StageOutcome.SUCCESS

    # -------------------- Assembly --------------------
    def _assemble(self, state: ForecastState, started_at: datetime, elapsed_ms: float) -> ForecastResult:
        outcomes = state.outcomes
        if StageOutcome.FATAL in outcomes.values():
            status = "fatal"
        elif state.errors:
            status = "partial"
        else:
            status = "success"

        fatal = status == "fatal"
        patterns = state.patterns
        insights = patterns.insights if patterns is not None else InsightBundle.empty()
        metadata = MappingProxyType({
            "started_at": started_at.isoformat(),
            "processing_time_ms": elapsed_ms,
            "version": VERSION,
            "insight_source": insights.source,
            "stages": MappingProxyType({name: outcome.value for name, outcome in outcomes.items()}),
            "stage_timings_ms": MappingProxyType(dict(state.timings_ms)),
            "error_count": len(state.errors),
            "seed": self.cfg.seed,
        })
        logger.info(
            "Forecast finished with status %s in %.1f ms (%d errors)",
            status, elapsed_ms, len(state.errors),
        )
        return ForecastResult(
            status=status,
            summary=state.data.summary if state.data is not None else Summary(),
            projections=None if fatal else state.projections,
            scenario_projections=() if fatal else state.scenario_projections,
            scenarios=tuple(s.to_dict() for s in state.scenarios),
            patterns=None if fatal else patterns,
            insights=insights,
            backtest=state.backtest,
            quality=state.quality,
            recommendations=state.recommendations,
            errors=tuple(state.errors),
            notes=tuple(state.notes),
            metadata=metadata,
        )
