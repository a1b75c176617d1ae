"""
Serialization module for fincast inputs and results.

Purpose
-------
File I/O around the pipeline: loads transaction histories, scenario lists
and forecast configurations, and persists configurations and forecast
results as JSON. The pipeline itself never touches the filesystem.

Supported inputs
----------------
- Transactions: JSON list, JSON object ``{"transactions": [...]}`` or CSV
  with a header row (date, description, amount, category, type).
- Scenarios: JSON list or ``{"scenarios": [...]}``.
- Configuration: ``ForecastConfig`` JSON, flat or under a ``"forecast"`` key.

Design Principles
-----------------
- Type-safe: configurations go through Pydantic validation
- Human-readable: indented JSON
- Reproducible: the seed is part of the saved configuration
- Versioned: every written file carries ``schema_version``

Example
-------
>>> from pathlib import Path
>>> records = load_transactions(Path("history.csv"))
>>> config = load_config(Path("config.json"))
>>> result = ForecastPipeline(config).run(records)
>>> save_forecast_result(result, Path("forecast.json"))
"""

from __future__ import annotations
from typing import Any, Dict, List, TYPE_CHECKING
from pathlib import Path
import json
import warnings

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from .config import ForecastConfig
from .exceptions import ConfigurationError, DataIngestionError
from .types import ScenarioDescriptorDict, TransactionRecordDict

if TYPE_CHECKING:
    from .pipeline import ForecastResult

__all__ = [
    "SCHEMA_VERSION",
    "load_transactions",
    "load_scenarios",
    "load_config",
    "save_config",
    "save_forecast_result",
    "load_forecast_result",
]


# ---------------------------------------------------------------------------
# Schema Version
# ---------------------------------------------------------------------------

SCHEMA_VERSION = "0.1.0"


def _check_schema_version(payload: Dict[str, Any], path: Path) -> None:
    schema_version = payload.get("schema_version", SCHEMA_VERSION)
    if schema_version != SCHEMA_VERSION:
        warnings.warn(
            f"{path.name}: schema version {schema_version} differs from current "
            f"version {SCHEMA_VERSION}. May encounter compatibility issues.",
            UserWarning,
        )


def _read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise DataIngestionError(f"{path} is not valid JSON: {e}") from e


# ---------------------------------------------------------------------------
# Transactions and Scenarios
# ---------------------------------------------------------------------------

def load_transactions(path: Path) -> List[TransactionRecordDict]:
    """
    Load raw transaction records from a JSON or CSV file.

    Parameters
    ----------
    path : Path
        ``.csv`` files are read with pandas; anything else is parsed as JSON.

    Returns
    -------
    list of dict
        Raw records; validation happens in the normalizer.

    Raises
    ------
    DataIngestionError
        If the file does not hold a list of records.
    """
    path = Path(path)
    if path.suffix.lower() == ".csv":
        frame = pd.read_csv(path)
        # Empty cells become None rather than NaN
        frame = frame.astype(object).where(frame.notna(), None)
        return frame.to_dict(orient="records")

    payload = _read_json(path)
    if isinstance(payload, dict) and "transactions" in payload:
        payload = payload["transactions"]
    if not isinstance(payload, list):
        raise DataIngestionError(
            f"{path} must contain a list of transactions or an object with a "
            f"'transactions' list, got {type(payload).__name__}."
        )
    return payload


def load_scenarios(path: Path) -> List[ScenarioDescriptorDict]:
    """
    Load scenario descriptors from JSON.

    Descriptors are returned as-is; ``build_scenario`` validates them.
    """
    path = Path(path)
    payload = _read_json(path)
    if isinstance(payload, dict) and "scenarios" in payload:
        payload = payload["scenarios"]
    if not isinstance(payload, list):
        raise ConfigurationError(
            f"{path} must contain a list of scenarios or an object with a "
            f"'scenarios' list, got {type(payload).__name__}."
        )
    return payload


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def load_config(path: Path) -> ForecastConfig:
    """
    Load and validate a ForecastConfig from JSON.

    Raises
    ------
    ConfigurationError
        If the file content fails validation.
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ConfigurationError(f"{path} must contain a JSON object.")

    _check_schema_version(payload, path)
    data = payload.get("forecast", {k: v for k, v in payload.items() if k != "schema_version"})
    try:
        return ForecastConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}:\n{e}") from e


def save_config(config: ForecastConfig, path: Path) -> None:
    """
    Save a ForecastConfig to JSON.

    Examples
    --------
    >>> save_config(ForecastConfig(seed=42), Path("config.json"))
    """
    path = Path(path)
    payload = {
        "schema_version": SCHEMA_VERSION,
        "forecast": config.model_dump(mode="json"),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)


# ---------------------------------------------------------------------------
# Forecast Results
# ---------------------------------------------------------------------------

def save_forecast_result(result: ForecastResult, path: Path) -> None:
    """
    Save a ForecastResult as JSON.

    Parameters
    ----------
    result : ForecastResult
        Pipeline output.
    path : Path
        Output file path.
    """
    path = Path(path)
    payload = {"schema_version": SCHEMA_VERSION, **result.to_dict()}
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)


def load_forecast_result(path: Path) -> Dict[str, Any]:
    """
    Load a saved forecast result.

    Note: returns the dictionary form; results are plain data once written.
    """
    path = Path(path)
    payload = _read_json(path)
    if not isinstance(payload, dict):
        raise DataIngestionError(f"{path} does not contain a forecast result object.")
    _check_schema_version(payload, path)
    return payload
