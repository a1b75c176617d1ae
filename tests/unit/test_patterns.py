"""
Unit tests for patterns.py module.

Tests seasonality detection, recurring-transaction mining, trend
estimation and the analyzer's degradation paths.
"""

import time
from datetime import date, timedelta

import pytest
from scipy import stats

from fincast.config import ForecastConfig
from fincast.exceptions import ConfigurationError, InsufficientDataError
from fincast.insights import InsightBundle
from fincast.normalizer import Transaction, normalize_transactions
from fincast.patterns import (
    PatternAnalyzer,
    SeasonalProfile,
    critical_value,
    detect_seasonality,
    estimate_trend,
    mine_recurring_patterns,
    recurring_group_key,
)


def _txs(records):
    return normalize_transactions(records).transactions


# ============================================================================
# SEASONALITY
# ============================================================================

class TestSeasonality:
    """Tests for detect_seasonality."""

    def test_flat_history_not_detected(self, steady_records):
        """Identical months keep every index within [0.8, 1.2]."""
        profile = detect_seasonality(_txs(steady_records))

        assert profile.detected is False
        for m in profile.months:
            assert 0.8 <= m.income_index <= 1.2
            assert 0.8 <= m.expense_index <= 1.2

    def test_december_peak_detected(self, seasonal_records):
        """Tripled December spending is detected as an expense peak."""
        profile = detect_seasonality(_txs(seasonal_records))

        assert profile.detected is True
        assert 11 in profile.peak_expense_months
        assert profile.months[11].classification == "peak_expense"
        assert profile.multiplier(11) > 1.2

    def test_not_detected_means_indices_within_bounds(self, seasonal_records, steady_records):
        """detected is False only when all indices lie within the threshold."""
        for records in (seasonal_records, steady_records):
            profile = detect_seasonality(_txs(records))
            within = all(
                0.8 <= idx <= 1.2
                for m in profile.months
                for idx in (m.income_index, m.expense_index)
            )
            assert profile.detected is (not within)

    def test_months_without_data_are_neutral(self):
        """Only months with data take part in the average."""
        records = [
            {"date": "2025-01-05", "amount": -100},
            {"date": "2025-02-05", "amount": -100},
        ]
        profile = detect_seasonality(_txs(records))

        assert profile.months[0].expense_index == pytest.approx(1.0)
        assert profile.months[5].has_data is False
        assert profile.months[5].classification == "no_data"
        assert profile.detected is False

    def test_zero_average_uses_neutral_multiplier(self, linear_growth_records):
        """No expenses at all: expense indices fall back to 1.0."""
        profile = detect_seasonality(_txs(linear_growth_records))

        assert all(m.expense_index == 1.0 for m in profile.months)

    def test_single_month_insufficient(self):
        """One calendar month of data is not enough."""
        with pytest.raises(InsufficientDataError):
            detect_seasonality(_txs([{"date": "2025-01-05", "amount": 1}]))

    def test_neutral_profile_multiplier(self):
        """Neutral profiles never scale a month."""
        profile = SeasonalProfile.neutral()

        assert all(profile.multiplier(m) == 1.0 for m in range(12))


# ============================================================================
# RECURRING TRANSACTIONS
# ============================================================================

class TestRecurring:
    """Tests for mine_recurring_patterns."""

    def test_fixed_rent_detected(self, rent_records):
        """24 equal monthly payments form one confident pattern."""
        patterns = mine_recurring_patterns(_txs(rent_records))

        assert len(patterns) == 1
        p = patterns[0]
        assert p.confidence > 0.8
        assert p.average_interval_days == pytest.approx(30.4, abs=1.0)
        assert p.average_amount == pytest.approx(-2200.0)
        assert p.frequency == "monthly"
        assert p.occurrences == 24

    def test_every_pattern_has_three_members(self, steady_records):
        """No singleton or duo group is ever reported."""
        patterns = mine_recurring_patterns(_txs(steady_records))

        assert patterns
        for p in patterns:
            assert p.occurrences >= 3
            assert 0.0 <= p.confidence <= 1.0

    def test_two_members_never_reported(self):
        """Two identical payments are not a pattern."""
        records = [
            {"date": "2025-01-03", "description": "Gym", "amount": -40},
            {"date": "2025-02-03", "description": "Gym", "amount": -40},
        ]

        assert mine_recurring_patterns(_txs(records)) == ()

    def test_varying_amount_rejected(self):
        """Amount CV above 0.05 disqualifies a group."""
        records = [
            {"date": f"2025-0{m}-03", "description": "Utility Bill", "amount": a, "category": "Bills"}
            for m, a in zip(range(1, 7), (-60, -95, -55, -90, -60, -99))
        ]

        assert mine_recurring_patterns(_txs(records)) == ()

    def test_irregular_interval_rejected(self):
        """Interval CV above 0.30 disqualifies a group."""
        start = date(2025, 1, 1)
        offsets = (0, 3, 40, 45, 120, 121)
        records = [
            {"date": (start + timedelta(days=d)).isoformat(), "description": "Coffee", "amount": -5}
            for d in offsets
        ]

        assert mine_recurring_patterns(_txs(records)) == ()

    def test_group_key_strips_digits(self):
        """Digits and punctuation do not split a group."""
        a = Transaction(date(2025, 1, 1), "NETFLIX.COM 8841", -15.99, "Entertainment")
        b = Transaction(date(2025, 2, 1), "Netflix.com 9912", -15.49, "entertainment")

        assert recurring_group_key(a) == recurring_group_key(b)

    def test_min_occurrences_validated(self):
        """Fewer than three members can never be configured."""
        with pytest.raises(ConfigurationError):
            mine_recurring_patterns([], min_occurrences=2)

    def test_monthly_amount(self, rent_records):
        """Monthly equivalent of a monthly payment is close to the payment."""
        p = mine_recurring_patterns(_txs(rent_records))[0]

        assert p.monthly_amount == pytest.approx(-2200.0, rel=0.02)


# ============================================================================
# TREND
# ============================================================================

class TestTrend:
    """Tests for estimate_trend and critical_value."""

    def test_linear_growth_is_increasing(self, linear_growth_records):
        """Constant +100 monthly net flow is an increasing trend."""
        trend = estimate_trend(_txs(linear_growth_records))

        assert trend.direction == "increasing"
        assert trend.mean == pytest.approx(100.0)
        assert trend.standard_error == 0.0
        assert trend.strength == 10.0
        assert trend.months == 6

    def test_decreasing(self, rent_records):
        """Only expenses: decreasing trend."""
        trend = estimate_trend(_txs(rent_records))

        assert trend.direction == "decreasing"

    def test_zero_mean_is_stable(self):
        """Offsetting months average exactly zero: stable."""
        records = [
            {"date": "2025-01-05", "amount": 100},
            {"date": "2025-02-05", "amount": -100},
        ]
        trend = estimate_trend(_txs(records))

        assert trend.mean == 0.0
        assert trend.direction == "stable"
        assert trend.strength == 0.0

    def test_interval_uses_lookup(self):
        """Default interval is mean ± 1.96·SE."""
        records = [
            {"date": "2025-01-05", "amount": 100},
            {"date": "2025-02-05", "amount": 300},
            {"date": "2025-03-05", "amount": 200},
        ]
        trend = estimate_trend(_txs(records))

        se = trend.standard_error
        assert se == pytest.approx(100.0 / 3 ** 0.5)
        assert trend.confidence_interval[0] == pytest.approx(200 - 1.96 * se)
        assert trend.confidence_interval[1] == pytest.approx(200 + 1.96 * se)

    def test_gap_months_count_as_zero(self):
        """An empty month between two active months lowers the mean."""
        records = [
            {"date": "2025-01-05", "amount": 300},
            {"date": "2025-03-05", "amount": 300},
        ]
        trend = estimate_trend(_txs(records))

        assert trend.months == 3
        assert trend.mean == pytest.approx(200.0)

    def test_single_month_insufficient(self):
        """Less than two months raises InsufficientDataError."""
        with pytest.raises(InsufficientDataError):
            estimate_trend(_txs([{"date": "2025-01-05", "amount": 1}]))

    def test_critical_values(self):
        """Lookup table and Student-t estimator."""
        assert critical_value(0.90, 10) == 1.645
        assert critical_value(0.95, 10) == 1.96
        assert critical_value(0.99, 10) == 2.576
        assert critical_value(0.95, 10, "student_t") == pytest.approx(stats.t.ppf(0.975, 9))

        with pytest.raises(ConfigurationError):
            critical_value(0.80, 10)


# ============================================================================
# ANALYZER
# ============================================================================

class _SlowGenerator:
    name = "slow"

    def generate_insights(self, context):
        time.sleep(1.0)
        return {"strategicInsights": ["late"]}


class _FixedGenerator:
    name = "fixed"

    def generate_insights(self, context):
        return {"strategicInsights": ["a", "b"], "financialRisks": ["c"]}


class TestPatternAnalyzer:
    """Tests for PatternAnalyzer.analyze."""

    def test_analysis_without_generator(self, steady_data, fast_config):
        """No generator: empty insights, no errors."""
        analysis = PatternAnalyzer(fast_config).analyze(steady_data)

        assert analysis.insights == InsightBundle.empty()
        assert analysis.errors == ()
        assert len(analysis.recurring) >= 3
        assert analysis.trend is not None

    def test_insights_collected(self, steady_data, fast_config):
        """Generator payload lands in the bundle."""
        analysis = PatternAnalyzer(fast_config, _FixedGenerator()).analyze(steady_data)

        assert analysis.insights.strategic_insights == ("a", "b")
        assert analysis.insights.financial_risks == ("c",)
        assert analysis.insights.source == "fixed"

    def test_generator_timeout_degrades(self, steady_data):
        """A slow generator leaves empty insights and one error."""
        cfg = ForecastConfig(seed=1, n_sims=100, insight_timeout=0.1)
        analysis = PatternAnalyzer(cfg, _SlowGenerator()).analyze(steady_data)

        assert analysis.insights.total_count == 0
        assert len(analysis.errors) == 1
        assert type(analysis.errors[0]).__name__ == "CollaboratorTimeoutError"

    def test_short_history_notes(self, fast_config):
        """Single-month history skips seasonality and trend with notes."""
        data = normalize_transactions([{"date": "2025-01-05", "amount": 10}])
        analysis = PatternAnalyzer(fast_config).analyze(data)

        assert analysis.trend is None
        assert analysis.seasonality.detected is False
        assert len(analysis.notes) == 2
        assert analysis.errors == ()

    def test_insight_context_is_structured(self, steady_data, steady_patterns):
        """Context carries summary, patterns and recent transactions."""
        context = PatternAnalyzer.build_insight_context(
            steady_data, steady_patterns.seasonality, steady_patterns.recurring, steady_patterns.trend
        )

        assert set(context) == {"summary", "seasonality", "recurring", "trend", "recent_transactions"}
        assert len(context["recent_transactions"]) == 20
