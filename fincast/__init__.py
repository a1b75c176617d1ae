"""
fincast — Transaction-based balance forecasting

Converts a history of account transactions into balance projections over
several horizons, with Monte Carlo uncertainty, scenario adjustments and a
back-tested quality score.

Modules
-------
- normalizer  : Record validation, ordering and summary statistics
- patterns    : Seasonality, recurring transactions, trend estimation
- insights    : Insight generator interface (OpenAI, heuristic)
- projection  : Per-horizon projections, Monte Carlo, confidence bands
- scenario    : Ordered scenario transforms
- validation  : Back-testing and quality scoring
- pipeline    : Stage orchestration and the ForecastResult
"""

from .constants import VERSION as __version__
from .config import AppSettings, ForecastConfig, ScenarioSpec
from .normalizer import Transaction, normalize_transactions
from .patterns import PatternAnalyzer
from .projection import ProjectionEngine
from .scenario import apply_scenarios, build_scenario
from .pipeline import ForecastPipeline, ForecastResult
from . import utils
