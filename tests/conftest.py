"""
Pytest configuration and fixtures for the fincast test suite.

This module provides reusable transaction histories and configurations.
Fixtures follow the principle of "arrange-act-assert" with clear separation.
"""

from datetime import date, timedelta
from typing import Dict, List

import pytest

from fincast.config import ForecastConfig
from fincast.normalizer import NormalizedData, normalize_transactions
from fincast.patterns import PatternAnalyzer
from fincast.utils import add_months


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def monthly_records(
    start: date,
    months: int,
    day: int,
    description: str,
    amount: float,
    category: str = "Other",
) -> List[Dict]:
    """One record per month on a fixed day of the month."""
    records = []
    for k in range(months):
        first = add_months(start, k)
        records.append({
            "date": first.replace(day=day).isoformat(),
            "description": description,
            "amount": amount,
            "category": category,
        })
    return records


def steady_history(start: date = date(2023, 1, 1), months: int = 24) -> List[Dict]:
    """Salary, rent, subscription and irregular groceries over *months* months."""
    records = []
    records += monthly_records(start, months, 1, "ACME Corp Payroll", 5000.0, "Income")
    records += monthly_records(start, months, 3, "Rent Payment", -2200.0, "Housing")
    records += monthly_records(start, months, 15, "Streaming Service", -15.99, "Entertainment")
    for k in range(months):
        first = add_months(start, k)
        for j, amount in enumerate((-82.10, -143.75, -61.40)):
            records.append({
                "date": (first + timedelta(days=5 + 8 * j)).isoformat(),
                "description": f"Grocery Store #{100 + k}",
                "amount": amount,
                "category": "Food",
            })
    return records


# ---------------------------------------------------------------------------
# Date Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def start_date() -> date:
    """Standard start date for histories."""
    return date(2023, 1, 1)


@pytest.fixture
def seed() -> int:
    """Standard random seed for reproducibility."""
    return 42


# ---------------------------------------------------------------------------
# Configuration Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config(seed) -> ForecastConfig:
    """Seeded default configuration."""
    return ForecastConfig(seed=seed)


@pytest.fixture
def fast_config(seed) -> ForecastConfig:
    """Seeded configuration with the minimum Monte Carlo sample count."""
    return ForecastConfig(seed=seed, n_sims=100)


# ---------------------------------------------------------------------------
# Transaction Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def rent_records(start_date) -> List[Dict]:
    """
    24 months of a fixed $2,200 rent payment on the 3rd of every month.
    """
    return monthly_records(start_date, 24, 3, "Rent Payment", -2200.0, "Housing")


@pytest.fixture
def linear_growth_records(start_date) -> List[Dict]:
    """
    6 months of strictly linear balance growth: +100 net every month.
    """
    return monthly_records(start_date, 6, 10, "Side Income", 100.0, "Income")


@pytest.fixture
def steady_records(start_date) -> List[Dict]:
    """24 months of salary, rent, subscription and groceries."""
    return steady_history(start_date, 24)


@pytest.fixture
def steady_data(steady_records) -> NormalizedData:
    return normalize_transactions(steady_records)


@pytest.fixture
def steady_patterns(steady_data, fast_config):
    return PatternAnalyzer(fast_config).analyze(steady_data)


@pytest.fixture
def seasonal_records(start_date) -> List[Dict]:
    """
    Two years with December spending three times a normal month.
    """
    records = []
    for k in range(24):
        first = add_months(start_date, k)
        records.append({
            "date": first.replace(day=1).isoformat(),
            "description": "Payroll",
            "amount": 4000.0,
            "category": "Income",
        })
        spend = -3000.0 if first.month == 12 else -1000.0
        records.append({
            "date": first.replace(day=20).isoformat(),
            "description": f"Shopping {k}",
            "amount": spend,
            "category": "Shopping",
        })
    return records
