"""Tests for finhealth.features.metric_aggregation (Layer 1)."""

from __future__ import annotations

import dataclasses
import math

import pytest

from finhealth.constants import METRIC_GROUPS, RiskBand
from finhealth.features.metric_aggregation import (
    CALCULATORS,
    AggregatedMetrics,
    MetricAggregator,
    PortfolioFigures,
    aggregate_metrics,
    camel_case,
)
from finhealth.features.normalization import score_to_risk_band
from finhealth.inputs import FinancialHealthInput


def _home(value: float, pid: str = "p1") -> dict:
    return {"id": pid, "name": "Home", "type": "HOME", "currentValue": value}


def _home_loan(principal: float, pid: str = "p1", lid: str = "l1", **extra) -> dict:
    loan = {"id": lid, "name": "Mortgage", "type": "HOME", "principal": principal, "propertyId": pid}
    loan.update(extra)
    return loan


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestScenarios:

    def test_scenario_a_emergency_buffer(self, make_input, engine_config):
        data = make_input(income=8_000, expenses=6_000, cash=48_000)
        metrics = aggregate_metrics(data, engine_config)
        buf = metrics.liquidity["emergency_buffer"]
        assert buf.value == pytest.approx(8.0)
        assert buf.benchmark == 6
        assert buf.score == 100.0
        assert buf.risk_band == RiskBand.EXCELLENT

    def test_scenario_b_no_property_no_loans(self, make_input, engine_config):
        metrics = aggregate_metrics(make_input(income=5_000, expenses=3_000), engine_config)
        lvr = metrics.debt["lvr"]
        assert lvr.value == 0.0
        assert lvr.score == 100.0
        assert lvr.risk_band == RiskBand.EXCELLENT

    def test_scenario_d_lvr_at_benchmark(self, make_input, engine_config):
        data = make_input(
            income=10_000, expenses=4_000,
            properties=[_home(500_000)], loans=[_home_loan(400_000)],
        )
        lvr = aggregate_metrics(data, engine_config).debt["lvr"]
        assert lvr.value == 80.0
        # ((80 - 80) / 80 + 1) * 50
        assert lvr.score == 50.0
        assert lvr.risk_band == RiskBand.MODERATE

    def test_savings_rate(self, make_input, engine_config):
        metrics = aggregate_metrics(make_input(income=8_000, expenses=6_000), engine_config)
        assert metrics.liquidity["savings_rate"].value == pytest.approx(25.0)


# ---------------------------------------------------------------------------
# Division guards
# ---------------------------------------------------------------------------


class TestDivisionGuards:

    def test_zero_expenses_gives_max_buffer(self, make_input, engine_config):
        metrics = aggregate_metrics(make_input(income=5_000, cash=1_000), engine_config)
        assert metrics.liquidity["emergency_buffer"].value == 12
        assert metrics.risk["emergency_runway"].value == 12

    def test_zero_income_and_expenses_all_finite(self, make_input, engine_config):
        metrics = aggregate_metrics(make_input(), engine_config)
        for group, key, metric in metrics.iter_metrics():
            assert math.isfinite(metric.value), f"{group}.{key} value"
            assert math.isfinite(metric.benchmark), f"{group}.{key} benchmark"
            assert 0.0 <= metric.score <= 100.0, f"{group}.{key} score"

    def test_zero_income_fixed_cost_sentinel(self, make_input, engine_config):
        metrics = aggregate_metrics(make_input(expenses=2_000, essential=True), engine_config)
        assert metrics.cashflow["fixed_cost_ratio"].value == 100.0
        assert metrics.liquidity["savings_rate"].value == 0.0
        assert metrics.debt["dti"].value == 0.0

    def test_negative_net_worth_liquid_ratio(self, make_input, engine_config):
        data = make_input(income=4_000, expenses=3_000, cash=5_000, net_worth=-20_000)
        metrics = aggregate_metrics(data, engine_config)
        assert metrics.liquidity["liquid_net_worth_ratio"].value == 0.0


# ---------------------------------------------------------------------------
# Formulas on a full household
# ---------------------------------------------------------------------------


class TestFullHousehold:

    def test_liquid_assets_include_listed_investments(self, full_input, engine_config):
        figures = PortfolioFigures.from_input(full_input, engine_config.assumptions)
        # offset + savings + ETF + SHARE; credit card and crypto excluded
        assert figures.liquid_assets == 130_000
        assert figures.credit_card_debt == 2_000
        assert figures.total_debt == 652_000

    def test_interest_rate_exposure_counts_variable_loans(self, full_input, engine_config):
        metrics = aggregate_metrics(full_input, engine_config)
        assert metrics.debt["interest_risk_exposure"].value == pytest.approx(400_000 * 100 / 652_000)
        assert metrics.debt["interest_only_risk"].value == pytest.approx(250_000 * 100 / 652_000)

    def test_property_metrics(self, full_input, engine_config):
        metrics = aggregate_metrics(full_input, engine_config)
        assert metrics.debt["lvr"].value == pytest.approx(650_000 * 100 / 1_200_000)
        assert metrics.property["rental_yield_performance"].value == pytest.approx(4.8)
        assert metrics.property["property_concentration"].value == pytest.approx(1_200_000 * 100 / 1_335_000)

    def test_per_property_lvrs(self, full_input, engine_config):
        figures = PortfolioFigures.from_input(full_input, engine_config.assumptions)
        assert dict(figures.property_lvrs) == {
            "p1": pytest.approx(50.0),
            "p2": pytest.approx(62.5),
        }

    def test_asset_class_concentration(self, full_input, engine_config):
        metrics = aggregate_metrics(full_input, engine_config)
        assert metrics.investments["asset_class_concentration"].value == pytest.approx(60_000 * 100 / 85_000)

    def test_band_matches_score_everywhere(self, full_input, engine_config):
        for _, _, metric in aggregate_metrics(full_input, engine_config).iter_metrics():
            assert metric.risk_band == score_to_risk_band(metric.score)

    def test_static_confidences_in_range(self, full_input, engine_config):
        metrics = aggregate_metrics(full_input, engine_config)
        confidences = [m.confidence for _, _, m in metrics.iter_metrics()]
        assert min(confidences) == 40  # insurance: no data source
        assert max(confidences) == 95  # LVR
        assert metrics.debt["lvr"].confidence == 95


# ---------------------------------------------------------------------------
# Goal-adjusted benchmarks
# ---------------------------------------------------------------------------


class TestUserGoalBenchmarks:

    def test_savings_goal_replaces_surplus_benchmark(self, full_input, engine_config):
        metrics = aggregate_metrics(full_input, engine_config)
        assert metrics.cashflow["surplus"].benchmark == 1_000

    def test_retirement_target_replaces_20_year_benchmark(self, full_input, engine_config):
        metrics = aggregate_metrics(full_input, engine_config)
        assert metrics.forecast["net_worth_20_year"].benchmark == 2_000_000
        # 5-year benchmark stays a multiple of net worth
        assert metrics.forecast["net_worth_5_year"].benchmark == pytest.approx(683_000 * 1.5)

    def test_risk_tolerance_selects_volatility_benchmark(self, full_payload, engine_config):
        full_payload["userGoals"]["riskTolerance"] = "CONSERVATIVE"
        metrics = aggregate_metrics(FinancialHealthInput.from_dict(full_payload), engine_config)
        assert metrics.risk["volatility_exposure"].benchmark == 20

    def test_default_benchmarks_without_goals(self, without_sections, engine_config):
        data = FinancialHealthInput.from_dict(without_sections("userGoals"))
        metrics = aggregate_metrics(data, engine_config)
        assert metrics.cashflow["surplus"].benchmark == 500
        assert metrics.risk["volatility_exposure"].benchmark == 40


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------


class TestStructure:

    def test_all_seven_groups_populated(self, full_input, engine_config):
        metrics = MetricAggregator(engine_config).aggregate(full_input)
        assert isinstance(metrics, AggregatedMetrics)
        for group in METRIC_GROUPS:
            assert 3 <= len(metrics.group(group)) <= 5

    def test_every_configured_metric_has_a_calculator(self, engine_config):
        for cat in engine_config.categories:
            for m in cat.metrics:
                assert (cat.group, m.key) in CALCULATORS

    def test_metrics_are_immutable(self, full_input, engine_config):
        metrics = aggregate_metrics(full_input, engine_config)
        with pytest.raises(dataclasses.FrozenInstanceError):
            metrics.liquidity = None
        with pytest.raises(TypeError):
            metrics.liquidity.metrics["savings_rate"] = None

    def test_fresh_result_per_call(self, full_input, engine_config):
        a = aggregate_metrics(full_input, engine_config)
        b = aggregate_metrics(full_input, engine_config)
        assert a is not b
        assert a == b

    def test_to_dict_uses_camel_case(self, full_input, engine_config):
        out = aggregate_metrics(full_input, engine_config).to_dict()
        assert "emergencyBuffer" in out["liquidity"]
        assert "netWorth5Year" in out["forecast"]
        assert out["debt"]["lvr"]["riskBand"] in {b.value for b in RiskBand}

    def test_camel_case(self):
        assert camel_case("net_worth_20_year") == "netWorth20Year"
        assert camel_case("lvr") == "lvr"
