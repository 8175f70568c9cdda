"""Layer 3 -- aggregate health engine and report assembly.

Combines the seven category scores into one composite, applies the
bounded penalty modifiers, classifies the trend and assembles the full
``FinancialHealthReport`` together with risk signals, improvement
actions and the evidence pack.

**Composite:**

    base_score  = sum(category.score * category.weight)
    final_score = clamp(0, 100, round(base_score - modifiers.total_penalty))

**Report confidence:**

    round(min(DataConfidence, weakest metric confidence)
          * (1 - 0.05 * number of absent optional sections))

A report can never claim more confidence than its weakest evidential
input, and every absent optional section (insights, strategyData,
linkageHealth, userGoals) visibly lowers it.  Absent sections never
block computation; structurally invalid input raises
``PreconditionViolation`` before Layer 1 runs.

The engine is pure: the report time is injected (``now``), nothing reads
the clock, and identical input yields a byte-identical ``to_json()``.

Top-level entry points:
    ``generate_health_report(data, now=..., history=None)``
    ``quick_health_check(data)``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from finhealth.analysis.improvement_actions import ImprovementAction, ImprovementActionGenerator
from finhealth.analysis.risk_modelling import RiskModellingSystem, RiskSignal
from finhealth.constants import RiskBand
from finhealth.features.definitions import EngineConfig
from finhealth.features.metric_aggregation import AggregatedMetrics, MetricAggregator
from finhealth.features.normalization import score_to_risk_band
from finhealth.inputs import FinancialHealthInput
from finhealth.models.category_scoring import (
    CategoryScorer,
    HealthCategory,
    category_contributions,
)
from finhealth.models.modifiers import ModifierContext, ScoreModifiers, compute_modifiers
from finhealth.models.trend import ScoreTrend, compute_trend
from finhealth.quality.data_confidence import assess_data_confidence
from finhealth.quality.input_validation import validate_history, validate_input
from finhealth.report.evidence import EvidencePack, EvidencePackBuilder
from finhealth.report.serialization import json_serialisable, to_json

logger = logging.getLogger(__name__)

_DEFAULT_MISSING_SECTION_FACTOR = 0.05

History = Iterable[tuple[Any, float]]


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FinancialHealthScore:
    score: int
    confidence: int
    breakdown: tuple[HealthCategory, ...]
    trend: ScoreTrend
    timestamp: datetime
    base_score: float = 0.0
    risk_band: RiskBand = RiskBand.CRITICAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "riskBand": self.risk_band.value,
            "baseScore": self.base_score,
            "confidence": self.confidence,
            "breakdown": [c.to_dict() for c in self.breakdown],
            "trend": self.trend.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class FinancialHealthReport:
    """Everything the engine produces for one user and one point in time."""
    health_score: FinancialHealthScore
    categories: tuple[HealthCategory, ...]
    risk_signals: tuple[RiskSignal, ...]
    improvement_actions: tuple[ImprovementAction, ...]
    evidence: EvidencePack
    metrics: AggregatedMetrics
    modifiers: ScoreModifiers
    generated_at: datetime
    user_id: str
    missing_sections: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return json_serialisable({
            "healthScore": self.health_score.to_dict(),
            "categories": [c.to_dict() for c in self.categories],
            "riskSignals": [s.to_dict() for s in self.risk_signals],
            "improvementActions": [a.to_dict() for a in self.improvement_actions],
            "evidence": self.evidence.to_dict(),
            "metrics": self.metrics.to_dict(),
            "modifiers": self.modifiers.to_dict(),
            "missingSections": list(self.missing_sections),
            "generatedAt": self.generated_at.isoformat(),
            "userId": self.user_id,
        })

    def to_json(self, *, indent: int | None = None) -> str:
        return to_json(self.to_dict(), indent=indent)


# ---------------------------------------------------------------------------
# Scoring rules
# ---------------------------------------------------------------------------


def compute_base_score(categories: Sequence[HealthCategory]) -> float:
    """Weighted sum of category scores (weights sum to 1.0)."""
    if not categories:
        return 0.0
    scores = np.array([c.score for c in categories], dtype=float)
    weights = np.array([c.weight for c in categories], dtype=float)
    return float(np.dot(scores, weights))


def compute_final_score(base_score: float, modifiers: ScoreModifiers) -> int:
    return int(np.clip(round(base_score - modifiers.total_penalty), 0, 100))


def compute_report_confidence(
    data_confidence: float,
    min_metric_confidence: float,
    missing_sections: int,
    missing_section_factor: float = _DEFAULT_MISSING_SECTION_FACTOR,
) -> int:
    """Report confidence, bounded by the weakest evidential input.

    Parameters
    ----------
    data_confidence:
        Snapshot completeness score (0-100).
    min_metric_confidence:
        Lowest static base confidence across all metrics.
    missing_sections:
        Number of absent optional sections.
    missing_section_factor:
        Fractional reduction per absent section.

    Returns
    -------
    int
        Confidence in [0, 100].
    """
    ceiling = min(float(data_confidence), float(min_metric_confidence))
    factor = max(0.0, 1.0 - missing_section_factor * missing_sections)
    return int(np.clip(round(ceiling * factor), 0, 100))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class AggregateEngine:
    """Runs the three layers plus risk, action and evidence builders.

    Parameters
    ----------
    config:
        Engine tables shared by every component; defaults to the
        packaged ``health_engine.yml``.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config if config is not None else EngineConfig.load()
        self.aggregator = MetricAggregator(self.config)
        self.scorer = CategoryScorer(self.config)
        self.risk_system = RiskModellingSystem(self.config)
        self.action_generator = ImprovementActionGenerator(self.config)
        self.evidence_builder = EvidencePackBuilder(self.config)

    def _score(self, data: FinancialHealthInput):
        metrics = self.aggregator.aggregate(data)
        categories = self.scorer.score_all(metrics)
        dc = assess_data_confidence(data, self.config)
        modifiers = compute_modifiers(
            ModifierContext(data=data, categories=categories, data_confidence=dc.score),
            self.config.modifiers,
        )
        base = compute_base_score(categories)
        final = compute_final_score(base, modifiers)

        missing = tuple(k for k, present in data.optional_sections_present().items() if not present)
        factor = float(self.config.report_confidence.get(
            "missing_section_factor", _DEFAULT_MISSING_SECTION_FACTOR,
        ))
        confidence = compute_report_confidence(dc.score, metrics.min_confidence(), len(missing), factor)
        if missing:
            logger.warning(
                "Degraded confidence for user %s: missing %s (confidence %d)",
                data.user_id, ", ".join(missing), confidence,
            )
        return metrics, categories, dc, modifiers, base, final, confidence, missing

    def quick_check(self, data: FinancialHealthInput) -> dict[str, Any]:
        """Score, band and confidence without signals, actions or evidence."""
        validate_input(data)
        *_, final, confidence, _missing = self._score(data)
        return {
            "score": final,
            "riskBand": score_to_risk_band(final).value,
            "confidence": confidence,
        }

    def generate(
        self,
        data: FinancialHealthInput,
        *,
        now: datetime,
        history: History | None = None,
    ) -> FinancialHealthReport:
        if not isinstance(now, datetime):
            raise TypeError(f"now must be a datetime, got {type(now).__name__}")
        validate_input(data)
        history = list(history) if history is not None else None
        validate_history(history)

        metrics, categories, dc, modifiers, base, final, confidence, missing = self._score(data)

        trend = compute_trend(final, now, history, self.config.trend)
        health_score = FinancialHealthScore(
            score=final,
            confidence=confidence,
            breakdown=tuple(categories),
            trend=trend,
            timestamp=now,
            base_score=round(base, 2),
            risk_band=score_to_risk_band(final),
        )

        signals = self.risk_system.analyze(metrics, data)
        actions = self.action_generator.generate(categories, signals, data)
        evidence = self.evidence_builder.build(
            data, categories, trend,
            confidence=confidence,
            data_confidence=dc.score,
            now=now,
            contributions=category_contributions(categories),
        )

        logger.info(
            "Health score for user %s: %d (base %.1f, penalty %.1f, confidence %d, trend %s)",
            data.user_id, final, base, modifiers.total_penalty, confidence, trend.direction.value,
        )
        return FinancialHealthReport(
            health_score=health_score,
            categories=tuple(categories),
            risk_signals=tuple(signals),
            improvement_actions=tuple(actions),
            evidence=evidence,
            metrics=metrics,
            modifiers=modifiers,
            generated_at=now,
            user_id=data.user_id,
            missing_sections=missing,
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _coerce_input(data: FinancialHealthInput | Mapping[str, Any]) -> FinancialHealthInput:
    if isinstance(data, FinancialHealthInput):
        return data
    return FinancialHealthInput.from_dict(data)


def generate_health_report(
    data: FinancialHealthInput | Mapping[str, Any],
    *,
    now: datetime,
    history: History | None = None,
    config: EngineConfig | None = None,
) -> FinancialHealthReport:
    """Produce the full health report.

    Parameters
    ----------
    data:
        ``FinancialHealthInput`` or its camelCase payload dict.
    now:
        Report time; recorded as ``generatedAt`` and used as the end of
        the trend window.
    history:
        Prior ``(date, score)`` points from the persistence layer.
    config:
        Alternate engine tables.

    Returns
    -------
    FinancialHealthReport

    Raises
    ------
    PreconditionViolation
        If the input or history is structurally invalid.
    """
    return AggregateEngine(config).generate(_coerce_input(data), now=now, history=history)


def quick_health_check(
    data: FinancialHealthInput | Mapping[str, Any],
    config: EngineConfig | None = None,
) -> dict[str, Any]:
    """``{score, riskBand, confidence}`` without building the full report."""
    return AggregateEngine(config).quick_check(_coerce_input(data))
