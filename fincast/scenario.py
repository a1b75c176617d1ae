"""
Scenario composer for fincast

Purpose
-------
Applies an ordered list of user-defined adjustments to base projections.
Each scenario is a pure transform ``Projection -> Projection``; the base
projections are never modified.

Transform kinds
---------------
- salary_change:     balance × (100 + p) / 100
- expense_change:    balance × (100 - p) / 100
- one_time_expense:  balance - amount, identical at every horizon

Multiplicative and additive transforms do not commute, so scenarios are
applied strictly in the order given.

Example
-------
>>> scenarios = [
...     build_scenario({"type": "salary_change", "parameters": {"percentage": 10}}),
...     build_scenario({"type": "one_time_expense", "parameters": {"amount": 500}}),
... ]
>>> adjusted = apply_scenarios(projections, scenarios)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from .config import ScenarioSpec
from .exceptions import ValidationError
from .projection import Projection, ProjectionSet
from .types import ScenarioDescriptorDict
from .utils import is_finite_number

__all__ = [
    "Scenario",
    "PercentageAdjustment",
    "LumpSumExpense",
    "build_scenario",
    "apply_scenario",
    "apply_scenarios",
]

logger = logging.getLogger(__name__)

ScenarioLike = Union[ScenarioSpec, ScenarioDescriptorDict, Mapping[str, Any], "Scenario"]


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------

def _shift(p: Projection, new_balance: float, note: str) -> Projection:
    delta = new_balance - p.projected_balance
    return replace(
        p,
        projected_balance=new_balance,
        monthly_change=(new_balance - p.current_balance) / p.horizon_months,
        adjustment=p.adjustment + delta,
        assumptions=p.assumptions + (note,),
    )


@dataclass(frozen=True)
class PercentageAdjustment:
    """Multiply every horizon's projected balance by a percentage factor.

    ``salary_change`` raises the balance by *percentage* percent;
    ``expense_change`` lowers it by the same amount.
    """
    type: str
    percentage: float
    name: str = ""

    @property
    def factor(self) -> float:
        if self.type == "salary_change":
            return (100.0 + self.percentage) / 100.0
        return (100.0 - self.percentage) / 100.0

    @property
    def label(self) -> str:
        return self.name or f"{self.type} {self.percentage:+g}%"

    def apply(self, p: Projection) -> Projection:
        return _shift(p, p.projected_balance * self.factor, f"Scenario {self.label}: balance x {self.factor:.4f}")

    def to_dict(self) -> ScenarioDescriptorDict:
        return {"type": self.type, "parameters": {"percentage": self.percentage}, "name": self.label}


@dataclass(frozen=True)
class LumpSumExpense:
    """Subtract a one-time expense from every horizon.

    The amount is not time-weighted: a 3-month and a 36-month projection
    lose the same amount.
    """
    amount: float
    name: str = ""
    type: str = "one_time_expense"

    @property
    def label(self) -> str:
        return self.name or f"one_time_expense {self.amount:,.2f}"

    def apply(self, p: Projection) -> Projection:
        return _shift(p, p.projected_balance - self.amount, f"Scenario {self.label}: balance - {self.amount:,.2f}")

    def to_dict(self) -> ScenarioDescriptorDict:
        return {"type": self.type, "parameters": {"amount": self.amount}, "name": self.label}


Scenario = Union[PercentageAdjustment, LumpSumExpense]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def _numeric_parameter(spec: ScenarioSpec, key: str) -> float:
    value = spec.parameters.get(key)
    if not is_finite_number(value):
        raise ValidationError(
            f"Scenario '{spec.type}' requires a numeric '{key}' parameter, got {value!r}."
        )
    return float(value)


def build_scenario(descriptor: ScenarioLike) -> Scenario:
    """
    Turn a scenario descriptor into a transform.

    Parameters
    ----------
    descriptor : ScenarioSpec, Mapping or Scenario
        ``{"type": ..., "parameters": {...}}``. Parameters may also be given
        at the top level (``{"type": "salary_change", "percentage": 10}``).

    Raises
    ------
    ValidationError
        Unknown type, missing or non-numeric parameter.
    """
    if isinstance(descriptor, (PercentageAdjustment, LumpSumExpense)):
        return descriptor

    if isinstance(descriptor, ScenarioSpec):
        spec = descriptor
    elif isinstance(descriptor, Mapping):
        raw = dict(descriptor)
        parameters = raw.pop("parameters", None) or {}
        if not isinstance(parameters, Mapping):
            raise ValidationError(
                f"Scenario parameters must be a mapping, got {type(parameters).__name__} "
                f"{parameters!r}."
            )
        params = dict(parameters)
        for key in ("percentage", "amount"):
            if key in raw:
                params.setdefault(key, raw.pop(key))
        try:
            spec = ScenarioSpec(type=raw.get("type"), parameters=params, name=raw.get("name"))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid scenario descriptor {descriptor!r}: {e.errors()[0]['msg']}") from e
    else:
        raise ValidationError(f"Scenario descriptor must be a mapping, got {type(descriptor).__name__}.")

    if spec.type == "one_time_expense":
        return LumpSumExpense(amount=_numeric_parameter(spec, "amount"), name=spec.name or "")
    return PercentageAdjustment(
        type=spec.type, percentage=_numeric_parameter(spec, "percentage"), name=spec.name or ""
    )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

def apply_scenario(projection: Projection, scenario: Scenario) -> Projection:
    return scenario.apply(projection)


def apply_scenarios(
    projections: Union[ProjectionSet, Sequence[Projection]],
    scenarios: Sequence[Scenario],
) -> Tuple[Projection, ...]:
    """
    Apply *scenarios* in the given order to every projection.

    Returns new projections; the inputs are left untouched.
    """
    adjusted = []
    for p in projections:
        for scenario in scenarios:
            p = scenario.apply(p)
        adjusted.append(p)
    if scenarios:
        logger.info("Applied %d scenarios to %d horizons", len(scenarios), len(adjusted))
    return tuple(adjusted)
