"""Typed view over ``config/health_engine.yml``.

One ``CategoryDefinition`` (name, metric list, weight table) drives both
metric aggregation and category scoring, so the seven categories are
described once as data.  Alternate benchmark sets (other jurisdictions)
are substituted by passing a different dict to ``EngineConfig.from_dict``.

Loading validates:

- top-level category weights sum to 1.0 (within 1e-9)
- each category's weighted metrics sum to 1.0 (within 1e-9)
- every metric key has a registered calculator
- every risk rule references a known metric and a known signal category

and raises ``ValueError`` otherwise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from finhealth.config_loader import load_config
from finhealth.constants import (
    CATEGORY_ORDER,
    EPSILON,
    ENGINE_CONFIG_NAME,
    METRIC_GROUPS,
    HealthCategoryName,
    RiskSeverity,
    RiskSignalCategory,
    SignalTrend,
)

logger = logging.getLogger(__name__)

_WEIGHT_TOLERANCE = EPSILON


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MetricDefinition:
    """Benchmark, direction, confidence and weight of one metric."""
    key: str
    label: str
    benchmark: float
    higher_is_better: bool
    confidence: float
    weight: float | None = None
    impact_basis: str | None = None
    impact_scale: float = 0.0
    benchmark_basis: str | None = None
    goal_override: str | None = None
    benchmark_by_risk_tolerance: Mapping[str, float] = field(default_factory=dict)

    @property
    def weighted(self) -> bool:
        """False for informational metrics that do not enter the category score."""
        return self.weight is not None


@dataclass(frozen=True)
class CategoryDefinition:
    name: HealthCategoryName
    group: str
    weight: float
    risk_category: RiskSignalCategory
    metrics: tuple[MetricDefinition, ...]

    @property
    def weighted_metrics(self) -> tuple[MetricDefinition, ...]:
        return tuple(m for m in self.metrics if m.weighted)

    def metric(self, key: str) -> MetricDefinition:
        for m in self.metrics:
            if m.key == key:
                return m
        raise KeyError(f"{self.name.value} has no metric {key!r}")


@dataclass(frozen=True)
class RiskLevel:
    """One severity step of a risk rule; the first matching step wins."""
    threshold: float
    severity: RiskSeverity
    title: str
    description: str
    trend: SignalTrend = SignalTrend.STABLE


@dataclass(frozen=True)
class RiskRuleDefinition:
    id: str
    category: RiskSignalCategory
    group: str
    metric: str
    trigger: str  # "above" (value >= threshold) or "below" (value < threshold)
    evidence_threshold: float
    levels: tuple[RiskLevel, ...]


@dataclass(frozen=True)
class EngineConfig:
    """All tables the engine consumes, validated."""
    categories: tuple[CategoryDefinition, ...]
    risk_rules: tuple[RiskRuleDefinition, ...] = ()
    assumptions: Mapping[str, Any] = field(default_factory=dict)
    data_confidence: Mapping[str, Any] = field(default_factory=dict)
    report_confidence: Mapping[str, Any] = field(default_factory=dict)
    modifiers: Mapping[str, Any] = field(default_factory=dict)
    trend: Mapping[str, Any] = field(default_factory=dict)
    risk_map: Mapping[str, Any] = field(default_factory=dict)
    improvement_actions: Mapping[str, Any] = field(default_factory=dict)

    def category(self, name: HealthCategoryName | str) -> CategoryDefinition:
        name = HealthCategoryName(name)
        for cat in self.categories:
            if cat.name == name:
                return cat
        raise KeyError(name)

    def by_group(self, group: str) -> CategoryDefinition:
        for cat in self.categories:
            if cat.group == group:
                return cat
        raise KeyError(group)

    def metric_definition(self, group: str, key: str) -> MetricDefinition:
        return self.by_group(group).metric(key)

    # -- construction -------------------------------------------------------

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> EngineConfig:
        """Build and validate an ``EngineConfig`` from a parsed YAML dict."""
        # Registry lives next to the calculators; imported lazily since
        # metric_aggregation depends on this module.
        from finhealth.features.metric_aggregation import CALCULATORS

        raw_categories = raw.get("categories") or {}
        if not isinstance(raw_categories, Mapping) or not raw_categories:
            raise ValueError("Engine config has no categories")

        missing = [c.value for c in CATEGORY_ORDER if c.value not in raw_categories]
        if missing:
            raise ValueError(f"Engine config is missing categories: {missing}")

        categories: list[CategoryDefinition] = []
        for name in CATEGORY_ORDER:
            spec = raw_categories[name.value]
            group = spec["group"]
            if group not in METRIC_GROUPS or any(c.group == group for c in categories):
                raise ValueError(f"{name.value}: group {group!r} is unknown or used twice")
            metrics = tuple(
                _metric_from_dict(key, m) for key, m in (spec.get("metrics") or {}).items()
            )
            for m in metrics:
                if (group, m.key) not in CALCULATORS:
                    raise ValueError(f"No calculator registered for metric {group}.{m.key}")
            cat = CategoryDefinition(
                name=name,
                group=group,
                weight=float(spec["weight"]),
                risk_category=RiskSignalCategory(spec["risk_category"]),
                metrics=metrics,
            )
            _check_weight_sum(
                [m.weight for m in cat.weighted_metrics],
                f"metric weights of {name.value}",
            )
            categories.append(cat)

        _check_weight_sum([c.weight for c in categories], "category weights")

        known = {(c.group, m.key) for c in categories for m in c.metrics}
        rules = tuple(_rule_from_dict(r) for r in raw.get("risk_rules") or ())
        for rule in rules:
            if (rule.group, rule.metric) not in known:
                raise ValueError(f"Risk rule {rule.id!r} references unknown metric {rule.group}.{rule.metric}")

        return cls(
            categories=tuple(categories),
            risk_rules=rules,
            assumptions=dict(raw.get("assumptions") or {}),
            data_confidence=dict(raw.get("data_confidence") or {}),
            report_confidence=dict(raw.get("report_confidence") or {}),
            modifiers=dict(raw.get("modifiers") or {}),
            trend=dict(raw.get("trend") or {}),
            risk_map=dict(raw.get("risk_map") or {}),
            improvement_actions=dict(raw.get("improvement_actions") or {}),
        )

    @classmethod
    def load(cls, name: str = ENGINE_CONFIG_NAME, *, reload: bool = False) -> EngineConfig:
        """Load the packaged YAML tables (or another config by name)."""
        config = cls.from_dict(load_config(name, reload=reload))
        logger.debug(
            "Engine config %s: %d categories, %d risk rules",
            name, len(config.categories), len(config.risk_rules),
        )
        return config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_weight_sum(weights: list[float | None], what: str) -> None:
    total = sum(float(w) for w in weights if w is not None)
    if abs(total - 1.0) > _WEIGHT_TOLERANCE:
        raise ValueError(f"{what} sum to {total:.12g}, expected 1.0")


def _metric_from_dict(key: str, spec: Mapping[str, Any]) -> MetricDefinition:
    impact = spec.get("impact") or {}
    weight = spec.get("weight")
    return MetricDefinition(
        key=key,
        label=str(spec.get("label", key)),
        benchmark=float(spec["benchmark"]),
        higher_is_better=bool(spec["higher_is_better"]),
        confidence=float(spec.get("confidence", 80)),
        weight=float(weight) if weight is not None else None,
        impact_basis=impact.get("basis"),
        impact_scale=float(impact.get("scale", 0.0)),
        benchmark_basis=spec.get("benchmark_basis"),
        goal_override=spec.get("goal_override"),
        benchmark_by_risk_tolerance={
            str(k): float(v) for k, v in (spec.get("benchmark_by_risk_tolerance") or {}).items()
        },
    )


def _rule_from_dict(spec: Mapping[str, Any]) -> RiskRuleDefinition:
    group, _, metric = str(spec["metric"]).partition(".")
    trigger = spec.get("trigger", "above")
    if trigger not in ("above", "below"):
        raise ValueError(f"Risk rule {spec.get('id')!r}: trigger must be 'above' or 'below'")
    levels = tuple(
        RiskLevel(
            threshold=float(lvl["threshold"]),
            severity=RiskSeverity(lvl["severity"]),
            title=str(lvl["title"]),
            description=str(lvl["description"]),
            trend=SignalTrend(lvl.get("trend", SignalTrend.STABLE.value)),
        )
        for lvl in spec.get("levels") or ()
    )
    if not levels:
        raise ValueError(f"Risk rule {spec.get('id')!r} has no levels")
    return RiskRuleDefinition(
        id=str(spec["id"]),
        category=RiskSignalCategory(spec["category"]),
        group=group,
        metric=metric,
        trigger=trigger,
        evidence_threshold=float(spec.get("evidence_threshold", levels[-1].threshold)),
        levels=levels,
    )
