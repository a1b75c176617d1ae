"""
Unit tests for serialization.py module.

Tests transaction, scenario and configuration loading and result
persistence.
"""

import json

import pytest

from fincast.config import ForecastConfig
from fincast.exceptions import ConfigurationError, DataIngestionError
from fincast.pipeline import ForecastPipeline
from fincast.serialization import (
    SCHEMA_VERSION,
    load_config,
    load_forecast_result,
    load_scenarios,
    load_transactions,
    save_config,
    save_forecast_result,
)


# ============================================================================
# TRANSACTIONS
# ============================================================================

class TestLoadTransactions:
    """Tests for load_transactions."""

    def test_csv(self, tmp_path):
        path = tmp_path / "history.csv"
        path.write_text(
            "date,description,amount,category\n"
            "2025-01-03,Rent Payment,-2200,Housing\n"
            "2025-01-05,Coffee,-4.5,\n"
        )

        records = load_transactions(path)

        assert len(records) == 2
        assert records[0]["description"] == "Rent Payment"
        assert records[0]["amount"] == -2200
        assert records[1]["category"] is None

    def test_json_list(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text(json.dumps([{"date": "2025-01-03", "amount": -10}]))

        assert load_transactions(path) == [{"date": "2025-01-03", "amount": -10}]

    def test_json_object(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text(json.dumps({"transactions": [{"date": "2025-01-03", "amount": 5}]}))

        assert len(load_transactions(path)) == 1

    def test_json_not_a_list(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text(json.dumps({"rows": []}))

        with pytest.raises(DataIngestionError):
            load_transactions(path)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("{broken")

        with pytest.raises(DataIngestionError):
            load_transactions(path)


class TestLoadScenarios:
    """Tests for load_scenarios."""

    def test_list_and_object(self, tmp_path):
        scenarios = [{"type": "salary_change", "parameters": {"percentage": 5}}]
        a = tmp_path / "a.json"
        b = tmp_path / "b.json"
        a.write_text(json.dumps(scenarios))
        b.write_text(json.dumps({"scenarios": scenarios}))

        assert load_scenarios(a) == scenarios
        assert load_scenarios(b) == scenarios

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "s.json"
        path.write_text(json.dumps({"type": "salary_change"}))

        with pytest.raises(ConfigurationError):
            load_scenarios(path)


# ============================================================================
# CONFIGURATION
# ============================================================================

class TestConfigFiles:
    """Tests for save_config and load_config."""

    def test_round_trip(self, tmp_path):
        cfg = ForecastConfig(horizons=(6, 12), n_sims=1000, seed=7)
        path = tmp_path / "nested" / "config.json"

        save_config(cfg, path)

        assert json.loads(path.read_text())["schema_version"] == SCHEMA_VERSION
        assert load_config(path) == cfg

    def test_flat_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"n_sims": 200, "seed": 1}))

        cfg = load_config(path)

        assert cfg.n_sims == 200
        assert cfg.seed == 1

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"forecast": {"n_sims": 5}}))

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_schema_version_mismatch_warns(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"schema_version": "0.0.1", "forecast": {}}))

        with pytest.warns(UserWarning, match="schema version"):
            load_config(path)


# ============================================================================
# RESULTS
# ============================================================================

class TestForecastResultFiles:
    """Tests for save_forecast_result and load_forecast_result."""

    def test_round_trip(self, tmp_path, steady_records, fast_config):
        result = ForecastPipeline(fast_config).run(steady_records)
        path = tmp_path / "forecast.json"

        save_forecast_result(result, path)
        loaded = load_forecast_result(path)

        assert loaded["schema_version"] == SCHEMA_VERSION
        assert loaded["status"] == result.status
        assert set(loaded["projections"]) == {"3", "6", "12", "24", "36"}
        assert loaded["projections"]["12"]["projected_balance"] == pytest.approx(
            result.projections.by_horizon(12).projected_balance
        )
