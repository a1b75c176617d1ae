"""General utilities for fincast

Contents
--------
- Numeric guards (clamp, ratio, safe_ratio, coefficient_of_variation)
- Calendar helpers (month_start, add_months, month_span, is_month_end)
- Grouping helpers (normalize_description, amount_bucket)
- Monthly aggregation (monthly_net_flow)
- Logging setup (configure_logging)
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from .constants import DESCRIPTION_KEY_WORDS
from .exceptions import ComputationError

__all__ = [
    # Numeric
    "clamp",
    "ratio",
    "safe_ratio",
    "coefficient_of_variation",
    "is_finite_number",
    # Calendar
    "month_start",
    "add_months",
    "month_span",
    "is_month_end",
    # Grouping
    "normalize_description",
    "amount_bucket",
    # Aggregation
    "monthly_net_flow",
    # Logging
    "configure_logging",
]

_DIGITS = re.compile(r"\d+")
_NON_WORD = re.compile(r"[^a-z\s]+")


# ---------------------------------------------------------------------------
# Numeric guards
# ---------------------------------------------------------------------------

def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp *value* into [lower, upper]."""
    return float(min(max(value, lower), upper))


def ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator; raises ComputationError on a zero or non-finite denominator."""
    if denominator == 0 or not math.isfinite(denominator):
        raise ComputationError(f"Cannot divide {numerator!r} by {denominator!r}.")
    return float(numerator / denominator)


def safe_ratio(numerator: float, denominator: float, default: float = 1.0) -> float:
    """Return numerator / denominator, or *default* when the denominator is zero.

    Ratios over zero averages are the most common numerical hazard in the
    pattern analysis; the neutral multiplier 1.0 is the documented fallback.
    """
    try:
        return ratio(numerator, denominator)
    except ComputationError:
        return float(default)


def coefficient_of_variation(values: Sequence[float]) -> Optional[float]:
    """Population standard deviation over mean, or None for a zero mean."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return None
    mean = float(arr.mean())
    if mean == 0:
        return None
    return float(arr.std() / abs(mean))


def is_finite_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------

def month_start(d: date) -> date:
    """First day of the month containing *d*."""
    return date(d.year, d.month, 1)


def add_months(d: date, months: int) -> date:
    """First day of the month *months* after the month containing *d*."""
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_span(start: date, end: date) -> int:
    """Number of calendar months touched by [start, end], inclusive."""
    if end < start:
        return 0
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def is_month_end(d: date) -> bool:
    """True when *d* is the last day of its month."""
    return add_months(d, 1) - timedelta(days=1) == d


# ---------------------------------------------------------------------------
# Grouping helpers
# ---------------------------------------------------------------------------

def normalize_description(description: str, words: int = DESCRIPTION_KEY_WORDS) -> str:
    """Lower-case, strip digits and punctuation, keep the first *words* words.

    >>> normalize_description("NETFLIX.COM 8841 Subscription Monthly")
    'netflix com subscription'
    """
    text = _DIGITS.sub(" ", str(description).lower())
    text = _NON_WORD.sub(" ", text)
    return " ".join(text.split()[:words])


def amount_bucket(amount: float, width: float) -> int:
    """Index of the width-sized bucket holding *amount* (sign preserved)."""
    return int(math.floor(amount / width))


# ---------------------------------------------------------------------------
# Monthly aggregation
# ---------------------------------------------------------------------------

def monthly_net_flow(dates: Iterable[date], amounts: Iterable[float]) -> pd.Series:
    """Net flow per calendar month, gap months filled with zero.

    Returns a Series indexed by monthly ``Period`` covering the full span
    from the first to the last transaction month.
    """
    frame = pd.DataFrame({"date": pd.to_datetime(list(dates)), "amount": list(amounts)})
    if frame.empty:
        return pd.Series(dtype=float, name="net_flow")
    periods = frame["date"].dt.to_period("M")
    net = frame.groupby(periods)["amount"].sum()
    full = pd.period_range(periods.min(), periods.max(), freq="M")
    return net.reindex(full, fill_value=0.0).astype(float).rename("net_flow")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger for command-line use."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
