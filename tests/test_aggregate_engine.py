"""Tests for finhealth.models.financial_health (Layer 3 and report assembly).

Covers the composite rule, penalty application, confidence degradation
for absent sections, purity of the report and the public entry points.
"""

from __future__ import annotations

import json
import logging
from datetime import date

import pytest

from finhealth import (
    FinancialHealthInput,
    PreconditionViolation,
    generate_health_report,
    quick_health_check,
)
from finhealth.constants import HealthCategoryName, RiskBand, TrendDirection
from finhealth.features.normalization import score_to_risk_band
from finhealth.models.category_scoring import HealthCategory
from finhealth.models.financial_health import (
    AggregateEngine,
    compute_base_score,
    compute_final_score,
    compute_report_confidence,
)
from finhealth.models.modifiers import ScoreModifiers


def _cat(name: HealthCategoryName, score: float, weight: float) -> HealthCategory:
    return HealthCategory(name=name, score=score, weight=weight, risk_band=score_to_risk_band(score))


# ---------------------------------------------------------------------------
# Scoring rules
# ---------------------------------------------------------------------------


class TestCompositeRules:

    def test_base_score_is_linear(self):
        names = list(HealthCategoryName)
        cats = [_cat(names[0], 90, 0.20), _cat(names[1], 10, 0.20)]
        cats += [_cat(n, 50, 0.12) for n in names[2:]]
        assert compute_base_score(cats) == pytest.approx(50.0)

    def test_base_score_empty(self):
        assert compute_base_score([]) == 0.0

    def test_final_subtracts_penalty_and_clamps(self):
        assert compute_final_score(80.3, ScoreModifiers(insight_severity_penalty=2, linkage_penalty=0.2)) == 78
        assert compute_final_score(5.0, ScoreModifiers(10, 15, 5, 10, 5)) == 0
        assert compute_final_score(100.0, ScoreModifiers()) == 100

    @pytest.mark.parametrize("dc,metric,missing,expected", [
        (100, 40, 0, 40),
        (100, 40, 1, 38),
        (100, 40, 4, 32),
        (30, 90, 0, 30),
        (60, 95, 2, 54),
    ])
    def test_report_confidence(self, dc, metric, missing, expected):
        assert compute_report_confidence(dc, metric, missing) == expected


# ---------------------------------------------------------------------------
# Full report
# ---------------------------------------------------------------------------


class TestFullReport:

    def test_headline(self, full_input, engine_config, now):
        report = generate_health_report(full_input, now=now, config=engine_config)
        hs = report.health_score
        assert hs.score == 78
        assert hs.risk_band == RiskBand.GOOD
        assert hs.base_score == pytest.approx(80.3, abs=0.11)
        assert hs.confidence == 40
        assert hs.timestamp == now
        assert report.generated_at == now
        assert report.missing_sections == ()

    def test_modifiers(self, full_input, engine_config, now):
        mods = generate_health_report(full_input, now=now, config=engine_config).modifiers
        assert mods.data_confidence_penalty == 0
        assert mods.insight_severity_penalty == 2
        assert mods.forecast_risk_penalty == 0
        assert mods.strategy_conflict_penalty == 0
        assert mods.linkage_penalty == pytest.approx(0.25, abs=0.05)

    def test_contents(self, full_input, engine_config, now):
        report = generate_health_report(full_input, now=now, config=engine_config)
        assert len(report.categories) == 7
        assert report.health_score.breakdown == report.categories
        assert len(report.risk_signals) == 3
        assert [a.priority for a in report.improvement_actions] == [1, 2]
        assert report.evidence.confidence_level == 40
        assert report.evidence.data_confidence == 100
        assert report.user_id == "user-1"

    def test_history_drives_trend(self, full_input, engine_config, now):
        history = [(date(2026, 1, 15), 70), (date(2025, 11, 1), 72)]
        report = generate_health_report(full_input, now=now, history=history, config=engine_config)
        trend = report.health_score.trend
        assert trend.direction == TrendDirection.IMPROVING
        assert [p.date for p in trend.history] == ["2025-11-01", "2026-01-15", "2026-03-31"]
        assert report.evidence.historical_trend == trend.history

    def test_accepts_payload_dict(self, full_payload, engine_config, now):
        report = generate_health_report(full_payload, now=now, config=engine_config)
        assert report.health_score.score == 78

    def test_default_config(self, full_input, now):
        assert generate_health_report(full_input, now=now).health_score.score == 78


# ---------------------------------------------------------------------------
# Degradation
# ---------------------------------------------------------------------------


class TestDegradation:

    def test_one_missing_section(self, without_sections, engine_config, now):
        report = generate_health_report(without_sections("userGoals"), now=now, config=engine_config)
        assert report.missing_sections == ("userGoals",)
        assert report.health_score.confidence == 38

    def test_all_optional_sections_missing(self, without_sections, engine_config, now):
        payload = without_sections("insights", "strategyData", "linkageHealth", "userGoals")
        report = generate_health_report(payload, now=now, config=engine_config)
        assert set(report.missing_sections) == {"insights", "strategyData", "linkageHealth", "userGoals"}
        assert report.health_score.confidence == 32
        assert 0 <= report.health_score.score <= 100
        assert len(report.evidence.inputs_used) == 1

    def test_missing_sections_logged(self, without_sections, engine_config, now, caplog):
        with caplog.at_level(logging.WARNING, logger="finhealth.models.financial_health"):
            generate_health_report(without_sections("linkageHealth"), now=now, config=engine_config)
        assert "linkageHealth" in caplog.text

    def test_empty_snapshot_still_scores(self, make_input, engine_config, now):
        report = generate_health_report(make_input(), now=now, config=engine_config)
        assert 0 <= report.health_score.score <= 100
        assert report.health_score.risk_band == score_to_risk_band(report.health_score.score)
        json.loads(report.to_json())

    def test_struggling_household(self, make_input, engine_config, now):
        data = make_input(income=3_000, expenses=4_000, cash=500)
        report = generate_health_report(data, now=now, config=engine_config)
        assert report.health_score.score < 60
        assert report.risk_signals[0].severity.value == "CRITICAL"
        assert report.improvement_actions


# ---------------------------------------------------------------------------
# Purity and serialisation
# ---------------------------------------------------------------------------


class TestPurity:

    def test_identical_input_identical_json(self, full_input, engine_config, now):
        history = [(date(2026, 1, 15), 70)]
        first = generate_health_report(full_input, now=now, history=history, config=engine_config)
        second = generate_health_report(full_input, now=now, history=history, config=engine_config)
        assert first.to_json() == second.to_json()

    def test_json_has_no_nan(self, full_input, engine_config, now):
        text = generate_health_report(full_input, now=now, config=engine_config).to_json()
        assert "NaN" not in text and "Infinity" not in text
        out = json.loads(text)
        assert out["healthScore"]["score"] == 78
        assert out["generatedAt"] == "2026-03-31T09:30:00"
        assert out["categories"][0]["name"] == "LIQUIDITY"

    def test_history_iterator_consumed_once(self, full_input, engine_config, now):
        history = iter([(date(2026, 1, 15), 70)])
        report = generate_health_report(full_input, now=now, history=history, config=engine_config)
        assert len(report.health_score.trend.history) == 2


# ---------------------------------------------------------------------------
# Errors and entry points
# ---------------------------------------------------------------------------


class TestEntryPoints:

    def test_now_required_as_datetime(self, full_input, engine_config):
        with pytest.raises(TypeError):
            generate_health_report(full_input, now="2026-03-31", config=engine_config)

    def test_invalid_input_raises(self, make_payload, engine_config, now):
        with pytest.raises(PreconditionViolation):
            generate_health_report(make_payload(income=-5), now=now, config=engine_config)

    def test_invalid_history_raises(self, full_input, engine_config, now):
        with pytest.raises(PreconditionViolation):
            generate_health_report(full_input, now=now, history=[(now, 150)], config=engine_config)

    def test_quick_check_matches_report(self, full_input, engine_config, now):
        quick = quick_health_check(full_input, engine_config)
        report = generate_health_report(full_input, now=now, config=engine_config)
        assert quick == {
            "score": report.health_score.score,
            "riskBand": report.health_score.risk_band.value,
            "confidence": report.health_score.confidence,
        }

    def test_quick_check_validates(self, make_payload, engine_config):
        data = FinancialHealthInput.from_dict(make_payload(expenses=-1))
        with pytest.raises(PreconditionViolation):
            quick_health_check(data, engine_config)

    def test_engine_reusable(self, full_input, make_input, engine_config, now):
        engine = AggregateEngine(engine_config)
        a = engine.generate(full_input, now=now)
        engine.generate(make_input(income=1_000), now=now)
        assert engine.generate(full_input, now=now).to_json() == a.to_json()

    def test_unparseable_history_date_raises(self, full_input, engine_config, now):
        with pytest.raises(PreconditionViolation) as info:
            generate_health_report(full_input, now=now, history=[("not-a-date", 70)], config=engine_config)
        assert info.value.details[0]["field"] == "history[0].date"

    def test_malformed_orphans_rejected(self, full_payload, engine_config, now):
        full_payload["linkageHealth"]["orphans"] = "orphan-record-id"
        with pytest.raises(PreconditionViolation):
            generate_health_report(full_payload, now=now, config=engine_config)
