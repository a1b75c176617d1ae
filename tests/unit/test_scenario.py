"""
Unit tests for scenario.py module.

Tests scenario construction, each transform kind, purity and order
dependence.
"""

import pytest

from fincast.config import ScenarioSpec
from fincast.exceptions import ValidationError
from fincast.scenario import (
    LumpSumExpense,
    PercentageAdjustment,
    apply_scenarios,
    build_scenario,
)
from fincast.projection import ProjectionEngine


@pytest.fixture
def projections(steady_data, steady_patterns, fast_config):
    return ProjectionEngine(fast_config).project(steady_data, steady_patterns)


SALARY_UP = {"type": "salary_change", "parameters": {"percentage": 10}}
ONE_OFF = {"type": "one_time_expense", "parameters": {"amount": 500}}


# ============================================================================
# CONSTRUCTION
# ============================================================================

class TestBuildScenario:
    """Tests for build_scenario."""

    def test_from_mapping(self):
        scenario = build_scenario(SALARY_UP)

        assert isinstance(scenario, PercentageAdjustment)
        assert scenario.factor == pytest.approx(1.10)

    def test_top_level_parameters(self):
        """Parameters may be given next to the type."""
        scenario = build_scenario({"type": "one_time_expense", "amount": 250})

        assert isinstance(scenario, LumpSumExpense)
        assert scenario.amount == 250.0

    def test_from_scenario_spec(self):
        spec = ScenarioSpec(type="expense_change", parameters={"percentage": 20}, name="Cut costs")
        scenario = build_scenario(spec)

        assert scenario.factor == pytest.approx(0.80)
        assert scenario.label == "Cut costs"

    @pytest.mark.parametrize("descriptor", [
        {"type": "lottery_win", "parameters": {"amount": 1e6}},
        {"type": "salary_change", "parameters": {}},
        {"type": "salary_change", "parameters": {"percentage": "ten"}},
        {"type": "one_time_expense", "parameters": {"amount": float("nan")}},
        {"parameters": {"amount": 5}},
        "salary_change",
        {"type": "salary_change", "parameters": "percentage=10"},
        {"type": "salary_change", "parameters": [("percentage", 10)]},
    ])
    def test_invalid_descriptors(self, descriptor):
        """Unknown or malformed descriptors raise ValidationError."""
        with pytest.raises(ValidationError):
            build_scenario(descriptor)


# ============================================================================
# APPLICATION
# ============================================================================

class TestApplyScenarios:
    """Tests for apply_scenarios."""

    def test_salary_change_multiplies(self, projections):
        adjusted = apply_scenarios(projections, [build_scenario(SALARY_UP)])

        for base, new in zip(projections, adjusted):
            assert new.projected_balance == pytest.approx(base.projected_balance * 1.1)

    def test_expense_change_multiplies(self, projections):
        scenario = build_scenario({"type": "expense_change", "parameters": {"percentage": 10}})
        adjusted = apply_scenarios(projections, [scenario])

        for base, new in zip(projections, adjusted):
            assert new.projected_balance == pytest.approx(base.projected_balance * 0.9)

    def test_lump_sum_identical_at_every_horizon(self, projections):
        """A one-time expense is not time-weighted."""
        adjusted = apply_scenarios(projections, [build_scenario(ONE_OFF)])

        for base, new in zip(projections, adjusted):
            assert base.projected_balance - new.projected_balance == pytest.approx(500.0)

    def test_base_untouched(self, projections):
        """Applying scenarios never mutates the inputs."""
        before = [p.projected_balance for p in projections]

        adjusted = apply_scenarios(projections, [build_scenario(SALARY_UP), build_scenario(ONE_OFF)])

        assert [p.projected_balance for p in projections] == before
        assert adjusted[0] is not projections.projections[0]

    def test_adjustment_keeps_increment_identity(self, projections):
        """Σ increments + adjustment == projected - current."""
        adjusted = apply_scenarios(projections, [build_scenario(SALARY_UP), build_scenario(ONE_OFF)])

        for p in adjusted:
            assert sum(p.monthly_increments) + p.adjustment == pytest.approx(
                p.projected_balance - p.current_balance
            )

    def test_salary_then_expense(self, projections):
        """+10% then -$500."""
        adjusted = apply_scenarios(projections, [build_scenario(SALARY_UP), build_scenario(ONE_OFF)])
        base = projections.by_horizon(12).projected_balance

        assert adjusted[2].projected_balance == pytest.approx(base * 1.1 - 500)

    def test_expense_then_salary(self, projections):
        """-$500 then +10%."""
        adjusted = apply_scenarios(projections, [build_scenario(ONE_OFF), build_scenario(SALARY_UP)])
        base = projections.by_horizon(12).projected_balance

        assert adjusted[2].projected_balance == pytest.approx((base - 500) * 1.1)

    def test_order_changes_result(self, projections):
        """The two orders give different 12-month balances."""
        forward = apply_scenarios(projections, [build_scenario(SALARY_UP), build_scenario(ONE_OFF)])
        reverse = apply_scenarios(projections, [build_scenario(ONE_OFF), build_scenario(SALARY_UP)])

        assert forward[2].horizon_months == 12
        assert forward[2].projected_balance != pytest.approx(reverse[2].projected_balance)
        assert forward[2].projected_balance - reverse[2].projected_balance == pytest.approx(50.0)

    def test_no_scenarios(self, projections):
        assert apply_scenarios(projections, []) == projections.projections
