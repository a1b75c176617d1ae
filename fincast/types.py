"""
Type definitions for fincast.

Purpose
-------
TypedDict definitions of the raw input records and of the JSON structures
produced by ``ForecastResult.to_dict()``. They document the wire shape of
the result and give callers IDE completion on it.

Usage
-----
>>> from fincast.types import TransactionRecordDict, ForecastResultDict
>>>
>>> record: TransactionRecordDict = {
...     "date": "2025-01-03",
...     "description": "Rent",
...     "amount": -2200.0,
...     "category": "Housing",
... }
>>> payload: ForecastResultDict = result.to_dict()

Type Definitions
----------------
TransactionRecordDict
    Raw transaction record: {"date", "description", "amount", "category", "type"}

ScenarioDescriptorDict
    Scenario descriptor: {"type", "parameters", "name"}

ProjectionDict
    One horizon of the result: balance, increments, uncertainty, band

QualityScoreDict
    Composite score components, overall and weights

ForecastResultDict
    Top-level result structure
"""

from typing import Any, Dict, List, Optional, Union
from typing_extensions import TypedDict, NotRequired

__all__ = [
    "TransactionRecordDict",
    "ScenarioDescriptorDict",
    "PercentilesDict",
    "UncertaintyDict",
    "BandDict",
    "ProjectionDict",
    "VariantDict",
    "StageErrorDict",
    "QualityScoreDict",
    "InsightsDict",
    "ForecastResultDict",
]


class TransactionRecordDict(TypedDict):
    """
    Raw transaction record as delivered by the transaction-history provider.

    Only ``date`` and ``amount`` are required; records without a parseable
    date or numeric amount are dropped by the normalizer.

    Attributes
    ----------
    date : str
        ISO date, e.g. "2025-01-31".
    amount : float or str
        Signed amount, income positive. Strings may contain thousands
        separators ("1,250.00").
    """

    date: str
    amount: Union[float, str]
    description: NotRequired[str]
    category: NotRequired[str]
    type: NotRequired[str]


class ScenarioDescriptorDict(TypedDict):
    """
    Scenario descriptor accepted by ``build_scenario``.

    Examples
    --------
    >>> salary: ScenarioDescriptorDict = {"type": "salary_change", "parameters": {"percentage": 10}}
    >>> expense: ScenarioDescriptorDict = {"type": "one_time_expense", "parameters": {"amount": 500}}
    """

    type: str
    parameters: Dict[str, float]
    name: NotRequired[str]


class PercentilesDict(TypedDict):
    p5: float
    p25: float
    p50: float
    p75: float
    p95: float


class UncertaintyDict(TypedDict):
    percentiles: PercentilesDict
    mean: float
    volatility: float
    n_sims: int


class BandDict(TypedDict):
    lower: float
    upper: float
    source: str


class ProjectionDict(TypedDict):
    """
    One horizon of a forecast.

    Notes
    -----
    ``sum(monthly_increments) + adjustment == projected_balance - current_balance``;
    ``adjustment`` is nonzero only for scenario-adjusted projections.
    """

    horizon_months: int
    current_balance: float
    projected_balance: float
    monthly_change: float
    monthly_increments: List[float]
    uncertainty: UncertaintyDict
    statistical_band: BandDict
    confidence: float
    assumptions: List[str]
    adjustment: float


class VariantDict(TypedDict):
    name: str
    horizon_months: int
    projected_balance: float
    confidence: float
    percentile: Optional[int]


class StageErrorDict(TypedDict):
    stage: str
    message: str
    kind: str


class QualityScoreDict(TypedDict):
    """Composite quality score; every value lies in [0, 1]."""

    data_quality: float
    algorithmic_strength: float
    ai_insight_quality: float
    forecast_reliability: float
    overall: float
    weights: Dict[str, float]


class InsightsDict(TypedDict):
    strategic_insights: List[str]
    financial_risks: List[str]
    opportunities: List[str]
    recommendations: List[str]
    source: str


class ForecastResultDict(TypedDict):
    """
    Top-level structure of ``ForecastResult.to_dict()``.

    ``status`` is "success", "partial" or "fatal". A fatal result carries
    the summary and errors only; projections are empty.
    """

    status: str
    summary: Dict[str, Any]
    projections: Dict[str, ProjectionDict]
    base_monthly_flow: Optional[float]
    variants: Dict[str, VariantDict]
    scenarios: List[ScenarioDescriptorDict]
    scenario_projections: Dict[str, ProjectionDict]
    patterns: Optional[Dict[str, Any]]
    insights: InsightsDict
    backtest: Optional[Dict[str, Any]]
    quality: Optional[QualityScoreDict]
    recommendations: List[str]
    errors: List[StageErrorDict]
    has_errors: bool
    is_reliable: bool
    advisory: bool
    notes: List[str]
    metadata: Dict[str, Any]
