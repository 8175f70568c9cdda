"""Layer 2 -- category scoring.

Reduces each metric group into one ``HealthCategory`` using the
intra-category weight table from the engine config.  Scores are weighted
*metric scores*, not raw values:

    category.score = round(sum(metric.weight * metric.score))

Informational metrics (no weight) are skipped.  The category's risk band
uses the same ``score_to_risk_band`` as Layer 1.

Also exposes the reporting helpers: weakest / strongest category (ties
broken by fixed category order), categories below a concern threshold,
and each category's weighted contribution to the composite.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

from finhealth.constants import CATEGORY_ORDER, HealthCategoryName, RiskBand
from finhealth.features.definitions import CategoryDefinition, EngineConfig
from finhealth.features.metric_aggregation import AggregatedMetrics
from finhealth.features.normalization import score_to_risk_band

logger = logging.getLogger(__name__)

_DEFAULT_CONCERN_THRESHOLD = 40.0


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContributingMetric:
    """Snapshot of one weighted metric inside a category."""
    key: str
    name: str
    value: float
    weight: float
    score: float
    benchmark: float
    higher_is_better: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "weight": self.weight,
            "score": self.score,
            "benchmark": self.benchmark,
        }


@dataclass(frozen=True)
class HealthCategory:
    name: HealthCategoryName
    score: float
    weight: float
    contributing_metrics: tuple[ContributingMetric, ...] = field(default_factory=tuple)
    risk_band: RiskBand = RiskBand.CRITICAL

    @property
    def contribution(self) -> float:
        """Weighted share of the composite base score."""
        return self.score * self.weight

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name.value,
            "score": self.score,
            "weight": self.weight,
            "riskBand": self.risk_band.value,
            "contributingMetrics": [m.to_dict() for m in self.contributing_metrics],
        }


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------


class CategoryScorer:
    """Layer 2: ``AggregatedMetrics`` -> seven ``HealthCategory`` objects."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config if config is not None else EngineConfig.load()

    def score_category(self, definition: CategoryDefinition, metrics: AggregatedMetrics) -> HealthCategory:
        group = metrics.group(definition.group)
        contributing = tuple(
            ContributingMetric(
                key=m.key,
                name=m.label,
                value=group[m.key].value,
                weight=float(m.weight),
                score=group[m.key].score,
                benchmark=group[m.key].benchmark,
                higher_is_better=m.higher_is_better,
            )
            for m in definition.weighted_metrics
        )

        weights = np.array([c.weight for c in contributing], dtype=float)
        scores = np.array([c.score for c in contributing], dtype=float)
        raw = float(np.clip(np.dot(weights, scores), 0.0, 100.0)) if len(contributing) else 0.0
        score = round(raw)

        return HealthCategory(
            name=definition.name,
            score=score,
            weight=definition.weight,
            contributing_metrics=contributing,
            risk_band=score_to_risk_band(score),
        )

    def score_all(self, metrics: AggregatedMetrics) -> list[HealthCategory]:
        categories = [self.score_category(d, metrics) for d in self.config.categories]
        logger.info(
            "Scored categories: %s",
            ", ".join(f"{c.name.value}={c.score}" for c in categories),
        )
        return categories


def score_all_categories(
    metrics: AggregatedMetrics,
    config: EngineConfig | None = None,
) -> list[HealthCategory]:
    return CategoryScorer(config).score_all(metrics)


# ---------------------------------------------------------------------------
# Reporting helpers
# ---------------------------------------------------------------------------


def _order_key(category: HealthCategory) -> int:
    return CATEGORY_ORDER.index(category.name)


def weakest_category(categories: Sequence[HealthCategory]) -> HealthCategory | None:
    """Lowest-scoring category; earlier categories win ties."""
    if not categories:
        return None
    return min(categories, key=lambda c: (c.score, _order_key(c)))


def strongest_category(categories: Sequence[HealthCategory]) -> HealthCategory | None:
    """Highest-scoring category; earlier categories win ties."""
    if not categories:
        return None
    return min(categories, key=lambda c: (-c.score, _order_key(c)))


def concerning_categories(
    categories: Sequence[HealthCategory],
    threshold: float = _DEFAULT_CONCERN_THRESHOLD,
) -> list[HealthCategory]:
    """Categories scoring strictly below *threshold*, in category order."""
    return sorted((c for c in categories if c.score < threshold), key=_order_key)


def category_contributions(categories: Sequence[HealthCategory]) -> dict[str, float]:
    """``{category name: score * weight}`` for reporting."""
    return {c.name.value: round(c.contribution, 2) for c in sorted(categories, key=_order_key)}
