"""Ranked improvement actions.

A category gets (at most) one action when it scores below the concern
threshold (default 40) or when a CRITICAL/HIGH risk signal maps onto it.
Each action cites the responsible metrics (weighted metrics scoring
below 50, else the weakest one) and estimates:

- ``scoreImprovement`` -- composite points regained if every responsible
  metric reached its benchmark:
  ``sum((target - score) * metric weight) * category weight``, where the
  target is the score a metric earns exactly at its benchmark
- ``financialImpact`` -- dollars: the shortfall against the benchmark
  scaled by the metric's configured impact basis
- ``timeframe`` -- from the action difficulty

Priority 1 is the highest ``scoreImprovement / effort`` (EASY 1,
MODERATE 2, HARD 3); ties fall back to category order, so priorities are
strictly ordered and stable across runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from finhealth.constants import (
    CATEGORY_ORDER,
    HealthCategoryName,
    ImprovementDifficulty,
    RiskSeverity,
)
from finhealth.features.definitions import CategoryDefinition, EngineConfig
from finhealth.features.metric_aggregation import PortfolioFigures
from finhealth.features.normalization import normalize_score
from finhealth.models.category_scoring import ContributingMetric, HealthCategory

if TYPE_CHECKING:
    from finhealth.analysis.risk_modelling import RiskSignal
    from finhealth.inputs import FinancialHealthInput

logger = logging.getLogger(__name__)

_WEAK_METRIC_SCORE = 50.0


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImpactEstimate:
    score_improvement: float
    financial_impact: float
    timeframe: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "scoreImprovement": self.score_improvement,
            "financialImpact": self.financial_impact,
            "timeframe": self.timeframe,
        }


@dataclass(frozen=True)
class ImprovementAction:
    id: str
    title: str
    description: str
    impact: ImpactEstimate
    category: HealthCategoryName
    difficulty: ImprovementDifficulty
    priority: int
    responsible_metrics: tuple[str, ...] = field(default_factory=tuple)
    alternative_options: tuple[str, ...] = field(default_factory=tuple)
    sbs_link: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "impact": self.impact.to_dict(),
            "category": self.category.value,
            "difficulty": self.difficulty.value,
            "priority": self.priority,
            "responsibleMetrics": list(self.responsible_metrics),
            "alternativeOptions": list(self.alternative_options),
            "sbsLink": self.sbs_link,
        }


# ---------------------------------------------------------------------------
# Estimation helpers
# ---------------------------------------------------------------------------


def responsible_metrics(category: HealthCategory) -> list[ContributingMetric]:
    """Weighted metrics scoring below 50, or the single weakest one."""
    weak = [m for m in category.contributing_metrics if m.score < _WEAK_METRIC_SCORE]
    if weak or not category.contributing_metrics:
        return weak
    return [min(category.contributing_metrics, key=lambda m: m.score)]


def estimate_score_improvement(category: HealthCategory, metrics: Sequence[ContributingMetric]) -> float:
    gain = 0.0
    for m in metrics:
        target = normalize_score(m.benchmark, m.benchmark, m.higher_is_better)
        gain += max(0.0, target - m.score) * m.weight
    return round(gain * category.weight, 1)


def estimate_financial_impact(
    definition: CategoryDefinition,
    metrics: Sequence[ContributingMetric],
    figures: PortfolioFigures | None,
) -> float:
    if figures is None:
        return 0.0
    total = 0.0
    for m in metrics:
        spec = definition.metric(m.key)
        if not spec.impact_basis:
            continue
        if m.higher_is_better:
            shortfall = max(0.0, m.benchmark - m.value)
        else:
            shortfall = max(0.0, m.value - m.benchmark)
        total += shortfall * spec.impact_scale * figures.impact_basis(spec.impact_basis)
    return round(total, 2)


def find_strategy_link(
    recommendations: Sequence[Mapping[str, Any]],
    definition: CategoryDefinition,
) -> str | None:
    """Id of the first strategy recommendation aimed at this category."""
    wanted = {definition.name.value, definition.risk_category.value}
    for rec in recommendations:
        if not isinstance(rec, Mapping):
            continue
        category = str(rec.get("category", "")).upper()
        if category in wanted and rec.get("id") is not None:
            return str(rec["id"])
    return None


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class ImprovementActionGenerator:
    """Synthesises ranked actions for weak or flagged categories."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config if config is not None else EngineConfig.load()
        self.settings = self.config.improvement_actions

    def triggered_categories(
        self,
        categories: Sequence[HealthCategory],
        signals: Sequence[RiskSignal] = (),
    ) -> list[HealthCategoryName]:
        threshold = float(self.settings.get("concern_threshold", 40))
        severities = {RiskSeverity(s) for s in self.settings.get("signal_severities", ("CRITICAL", "HIGH"))}
        signal_map = self.settings.get("signal_categories") or {}

        flagged = {c.name for c in categories if c.score < threshold}
        for signal in signals:
            if signal.severity in severities and signal.category.value in signal_map:
                flagged.add(HealthCategoryName(signal_map[signal.category.value]))
        return [name for name in CATEGORY_ORDER if name in flagged]

    def build_action(
        self,
        category: HealthCategory,
        figures: PortfolioFigures | None,
        recommendations: Sequence[Mapping[str, Any]] = (),
    ) -> tuple[ImprovementAction, float]:
        """Build the unranked action for *category* and its impact-per-effort."""
        definition = self.config.category(category.name)
        template = (self.settings.get("templates") or {}).get(category.name.value) or {}
        difficulty = ImprovementDifficulty(template.get("difficulty", ImprovementDifficulty.MODERATE.value))
        effort = float((self.settings.get("effort") or {}).get(difficulty.value, 2))
        timeframe = str((self.settings.get("timeframes") or {}).get(difficulty.value, ""))

        metrics = responsible_metrics(category)
        names = [m.name for m in metrics]
        score_gain = estimate_score_improvement(category, metrics)

        action = ImprovementAction(
            id=f"action_{category.name.value.lower()}",
            title=str(template.get("title", f"Improve {category.name.value.title()}")),
            description=str(template.get("description", "Focus on {metrics}.")).format(
                metrics=", ".join(names) or category.name.value.lower(),
            ),
            impact=ImpactEstimate(
                score_improvement=score_gain,
                financial_impact=estimate_financial_impact(definition, metrics, figures),
                timeframe=timeframe,
            ),
            category=category.name,
            difficulty=difficulty,
            priority=0,
            responsible_metrics=tuple(names),
            alternative_options=tuple(template.get("alternatives") or ()),
            sbs_link=find_strategy_link(recommendations, definition),
        )
        return action, score_gain / effort

    def generate(
        self,
        categories: Sequence[HealthCategory],
        signals: Sequence[RiskSignal] = (),
        data: FinancialHealthInput | None = None,
    ) -> list[ImprovementAction]:
        figures = PortfolioFigures.from_input(data, self.config.assumptions) if data is not None else None
        recommendations: Sequence[Mapping[str, Any]] = ()
        if data is not None and data.strategy_data is not None:
            recommendations = data.strategy_data.recommendations

        by_name = {c.name: c for c in categories}
        ranked = []
        for name in self.triggered_categories(categories, signals):
            if name not in by_name:
                continue
            action, per_effort = self.build_action(by_name[name], figures, recommendations)
            ranked.append((per_effort, CATEGORY_ORDER.index(name), action))

        ranked.sort(key=lambda item: (-item[0], item[1]))
        limit = int(self.settings.get("max_actions", 10))
        actions = [
            _with_priority(action, i + 1)
            for i, (_, _, action) in enumerate(ranked[:limit])
        ]
        logger.info("Generated %d improvement action(s)", len(actions))
        return actions


def _with_priority(action: ImprovementAction, priority: int) -> ImprovementAction:
    return replace(action, priority=priority)


def generate_improvement_actions(
    categories: Sequence[HealthCategory],
    signals: Sequence[RiskSignal] = (),
    data: FinancialHealthInput | None = None,
    config: EngineConfig | None = None,
) -> list[ImprovementAction]:
    return ImprovementActionGenerator(config).generate(categories, signals, data)
