"""
Unit tests for utils.py module.

Tests numeric guards, calendar arithmetic, grouping helpers and monthly
aggregation.
"""

import math
from datetime import date

import pandas as pd
import pytest

from fincast.exceptions import ComputationError
from fincast.utils import (
    add_months,
    amount_bucket,
    clamp,
    coefficient_of_variation,
    is_finite_number,
    is_month_end,
    month_span,
    monthly_net_flow,
    normalize_description,
    ratio,
    safe_ratio,
)


class TestNumericGuards:
    """Test ratio guards and clamping."""

    def test_ratio_zero_denominator_raises(self):
        with pytest.raises(ComputationError):
            ratio(5.0, 0.0)
        with pytest.raises(ComputationError):
            ratio(5.0, math.inf)

    def test_safe_ratio_falls_back(self):
        """Zero averages give the neutral multiplier."""
        assert safe_ratio(5.0, 0.0) == 1.0
        assert safe_ratio(5.0, 0.0, default=0.0) == 0.0
        assert safe_ratio(6.0, 3.0) == 2.0

    def test_clamp(self):
        assert clamp(1.5, 0.0, 1.0) == 1.0
        assert clamp(-1.0, 0.0, 1.0) == 0.0
        assert clamp(0.4, 0.0, 1.0) == 0.4

    def test_coefficient_of_variation(self):
        assert coefficient_of_variation([10.0, 10.0, 10.0]) == 0.0
        assert coefficient_of_variation([-100.0, -100.0]) == 0.0
        assert coefficient_of_variation([]) is None
        assert coefficient_of_variation([1.0, -1.0]) is None
        assert coefficient_of_variation([90.0, 110.0]) == pytest.approx(0.1)

    def test_is_finite_number(self):
        assert is_finite_number(3)
        assert is_finite_number(-2.5)
        assert not is_finite_number(True)
        assert not is_finite_number(float("nan"))
        assert not is_finite_number("10")


class TestCalendar:
    """Test month arithmetic."""

    def test_add_months_returns_month_start(self):
        assert add_months(date(2024, 12, 22), 1) == date(2025, 1, 1)
        assert add_months(date(2024, 12, 22), -2) == date(2024, 10, 1)
        assert add_months(date(2024, 1, 31), -1) == date(2023, 12, 1)

    def test_month_span(self):
        assert month_span(date(2024, 1, 15), date(2024, 1, 20)) == 1
        assert month_span(date(2023, 11, 30), date(2024, 2, 1)) == 4
        assert month_span(date(2024, 2, 1), date(2024, 1, 1)) == 0

    def test_is_month_end(self):
        assert is_month_end(date(2024, 2, 29)) is True
        assert is_month_end(date(2023, 12, 31)) is True
        assert is_month_end(date(2024, 6, 10)) is False
        assert is_month_end(date(2023, 2, 28)) is True


class TestGrouping:
    """Test description normalisation and amount buckets."""

    def test_normalize_description(self):
        assert normalize_description("NETFLIX.COM 8841 Subscription Monthly") == "netflix com subscription"
        assert normalize_description("Grocery Store #104") == normalize_description("grocery store #221")

    def test_amount_bucket(self):
        assert amount_bucket(-2200.0, 50.0) == -44
        assert amount_bucket(49.99, 50.0) == 0
        assert amount_bucket(-0.01, 50.0) == -1


class TestMonthlyNetFlow:
    """Test monthly aggregation."""

    def test_gap_months_filled(self):
        series = monthly_net_flow(
            [date(2025, 1, 5), date(2025, 1, 20), date(2025, 3, 2)],
            [100.0, -40.0, 10.0],
        )

        assert list(series.index) == list(pd.period_range("2025-01", "2025-03", freq="M"))
        assert list(series) == [60.0, 0.0, 10.0]

    def test_empty(self):
        assert monthly_net_flow([], []).empty
