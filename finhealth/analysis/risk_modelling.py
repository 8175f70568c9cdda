"""Rule-based risk signals.

A parallel hard-threshold detector over the Layer 1 metric set.  Each
configured rule compares one metric's *raw value* (not its score) to a
ladder of thresholds and emits at most one ``RiskSignal``:

- ``trigger: above`` fires when ``value >= threshold``
- ``trigger: below`` fires when ``value < threshold``

Levels are tried in config order and the first match wins, so a rule
lists its most severe step first.  Signals are not deduplicated against
category risk bands: one CRITICAL metric inside a GOOD category still
surfaces here.

Six signal categories are covered: SPENDING, BORROWING, LIQUIDITY,
CONCENTRATION, MARKET and LONGEVITY.  Output is sorted CRITICAL first,
keeping config order within a severity.  Signal ids are
``risk_<category>_<rule id>`` so repeated runs yield identical ids.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from finhealth.constants import (
    SEVERITY_ORDER,
    SEVERITY_TIER,
    RiskSeverity,
    RiskSignalCategory,
    SignalTrend,
)
from finhealth.features.definitions import EngineConfig, RiskLevel, RiskRuleDefinition
from finhealth.features.metric_aggregation import AggregatedMetrics, PortfolioFigures

if TYPE_CHECKING:
    from finhealth.inputs import FinancialHealthInput

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskEvidence:
    metric: str
    current_value: float
    threshold: float
    trend: SignalTrend = SignalTrend.STABLE
    data_points: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "metric": self.metric,
            "currentValue": self.current_value,
            "threshold": self.threshold,
            "trend": self.trend.value,
        }
        if self.data_points:
            out["dataPoints"] = [dict(p) for p in self.data_points]
        return out


@dataclass(frozen=True)
class RiskSignal:
    id: str
    category: RiskSignalCategory
    severity: RiskSeverity
    title: str
    description: str
    evidence: RiskEvidence
    tier: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "evidence": self.evidence.to_dict(),
            "tier": self.tier,
        }


# ---------------------------------------------------------------------------
# Per-record evidence
# ---------------------------------------------------------------------------

# (group, metric) -> extractor of per-record data points for the evidence
_DATA_POINTS: dict[tuple[str, str], Callable[[PortfolioFigures], list[dict[str, Any]]]] = {
    ("debt", "lvr"): lambda f: [
        {"id": prop_id, "value": round(lvr, 2)} for prop_id, lvr in f.property_lvrs
    ],
}


# ---------------------------------------------------------------------------
# Rule evaluation
# ---------------------------------------------------------------------------


def _matches(rule: RiskRuleDefinition, level: RiskLevel, value: float) -> bool:
    if rule.trigger == "above":
        return value >= level.threshold
    return value < level.threshold


def evaluate_rule(
    rule: RiskRuleDefinition,
    metrics: AggregatedMetrics,
    label: str,
    figures: PortfolioFigures | None = None,
) -> RiskSignal | None:
    """Fire *rule* against the metric set; ``None`` when no level matches."""
    value = metrics.metric(rule.group, rule.metric).value
    for level in rule.levels:
        if not _matches(rule, level, value):
            continue
        points: tuple[dict[str, Any], ...] = ()
        extractor = _DATA_POINTS.get((rule.group, rule.metric))
        if extractor is not None and figures is not None:
            points = tuple(extractor(figures))
        return RiskSignal(
            id=f"risk_{rule.category.value.lower()}_{rule.id}",
            category=rule.category,
            severity=level.severity,
            title=level.title,
            description=level.description.format(value=value, abs_value=abs(value)),
            evidence=RiskEvidence(
                metric=label,
                current_value=value,
                threshold=rule.evidence_threshold,
                trend=level.trend,
                data_points=points,
            ),
            tier=SEVERITY_TIER[level.severity],
        )
    return None


class RiskModellingSystem:
    """Derives ``RiskSignal``s from metrics using the configured rules."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config if config is not None else EngineConfig.load()

    def analyze(
        self,
        metrics: AggregatedMetrics,
        data: FinancialHealthInput | None = None,
    ) -> list[RiskSignal]:
        figures = None
        if data is not None:
            figures = PortfolioFigures.from_input(data, self.config.assumptions)

        signals: list[RiskSignal] = []
        for rule in self.config.risk_rules:
            label = self.config.metric_definition(rule.group, rule.metric).label
            signal = evaluate_rule(rule, metrics, label, figures)
            if signal is not None:
                logger.debug("Rule %s fired: %s %s", rule.id, signal.severity.value, signal.title)
                signals.append(signal)

        # sorted() is stable: config order is kept within a severity
        signals = sorted(signals, key=lambda s: SEVERITY_ORDER[s.severity])
        logger.info(
            "Risk analysis: %d signal(s), %d critical",
            len(signals), sum(1 for s in signals if s.severity == RiskSeverity.CRITICAL),
        )
        return signals


def analyze_all_risks(
    metrics: AggregatedMetrics,
    data: FinancialHealthInput | None = None,
    config: EngineConfig | None = None,
) -> list[RiskSignal]:
    return RiskModellingSystem(config).analyze(metrics, data)
