"""Evidence pack: the explainability bundle attached to every report.

Contents:

- ``inputsUsed``      -- one entry per input section that was present
                         (SNAPSHOT always; INSIGHT, STRATEGY, LINKAGE and
                         USER_GOAL when supplied)
- ``confidenceLevel`` -- the report confidence; ``dataConfidence`` the
                         completeness score it was derived from
- ``insightsLinked``  -- ids of the insights considered
- ``historicalTrend`` -- windowed ``(date, score)`` points behind the trend
- ``riskMap``         -- categories below 50 with the metrics dragging them down
- ``lastUpdated``     -- the injected report time
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from finhealth.constants import InputSourceType, RiskSeverity, RiskSignalCategory
from finhealth.features.definitions import EngineConfig
from finhealth.features.normalization import risk_band_to_severity
from finhealth.models.category_scoring import HealthCategory, concerning_categories
from finhealth.models.trend import ScoreTrend, TrendPoint

if TYPE_CHECKING:
    from finhealth.inputs import FinancialHealthInput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InputSource:
    type: InputSourceType
    value: Mapping[str, Any]
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "value": dict(self.value), "timestamp": self.timestamp.isoformat()}


@dataclass(frozen=True)
class RiskMapEntry:
    category: RiskSignalCategory
    health_category: str
    level: RiskSeverity
    factors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "healthCategory": self.health_category,
            "level": self.level.value,
            "factors": list(self.factors),
        }


@dataclass(frozen=True)
class EvidencePack:
    inputs_used: tuple[InputSource, ...]
    confidence_level: float
    data_confidence: float
    insights_linked: tuple[str, ...]
    historical_trend: tuple[TrendPoint, ...]
    risk_map: tuple[RiskMapEntry, ...]
    last_updated: datetime
    category_contributions: Mapping[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "inputsUsed": [s.to_dict() for s in self.inputs_used],
            "confidenceLevel": self.confidence_level,
            "dataConfidence": self.data_confidence,
            "insightsLinked": list(self.insights_linked),
            "historicalTrend": [p.to_dict() for p in self.historical_trend],
            "riskMap": [e.to_dict() for e in self.risk_map],
            "categoryContributions": dict(self.category_contributions),
            "lastUpdated": self.last_updated.isoformat(),
        }


def collect_inputs_used(data: FinancialHealthInput, now: datetime) -> list[InputSource]:
    snap = data.portfolio_snapshot
    sources = [
        InputSource(
            InputSourceType.SNAPSHOT,
            {
                "netWorth": snap.net_worth,
                "totalAssets": snap.total_assets,
                "totalLiabilities": snap.total_liabilities,
            },
            now,
        )
    ]
    if data.insights:
        sources.append(InputSource(InputSourceType.INSIGHT, {"count": len(data.insights)}, now))
    if data.strategy_data is not None:
        sd = data.strategy_data
        sources.append(InputSource(
            InputSourceType.STRATEGY,
            {"recommendationCount": len(sd.recommendations), "conflictCount": len(sd.conflicts)},
            now,
        ))
    if data.linkage_health is not None:
        lh = data.linkage_health
        sources.append(InputSource(
            InputSourceType.LINKAGE,
            {
                "consistencyScore": lh.consistency_score,
                "orphans": len(lh.orphans),
                "missingLinks": len(lh.missing_links),
            },
            now,
        ))
    if data.user_goals is not None:
        ug = data.user_goals
        sources.append(InputSource(
            InputSourceType.USER_GOAL,
            {
                "retirementTarget": ug.retirement_target,
                "savingsGoal": ug.savings_goal,
                "riskTolerance": ug.risk_tolerance,
                "investmentStyle": ug.investment_style,
            },
            now,
        ))
    return sources


def build_risk_map(
    categories: Sequence[HealthCategory],
    config: EngineConfig,
) -> list[RiskMapEntry]:
    """Risk map entries for every category below the map threshold.

    The level follows the category's band: CRITICAL below 20, HIGH
    below 40, MEDIUM otherwise.
    """
    threshold = float(config.risk_map.get("threshold", 50))

    entries = []
    for cat in concerning_categories(categories, threshold):
        entries.append(RiskMapEntry(
            category=config.category(cat.name).risk_category,
            health_category=cat.name.value,
            level=risk_band_to_severity(cat.risk_band),
            factors=tuple(m.name for m in cat.contributing_metrics if m.score < 50),
        ))
    return entries


class EvidencePackBuilder:
    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config if config is not None else EngineConfig.load()

    def build(
        self,
        data: FinancialHealthInput,
        categories: Sequence[HealthCategory],
        trend: ScoreTrend,
        *,
        confidence: float,
        data_confidence: float,
        now: datetime,
        contributions: Mapping[str, float] | None = None,
    ) -> EvidencePack:
        pack = EvidencePack(
            inputs_used=tuple(collect_inputs_used(data, now)),
            confidence_level=confidence,
            data_confidence=data_confidence,
            insights_linked=tuple(i.id for i in data.insights or ()),
            historical_trend=trend.history,
            risk_map=tuple(build_risk_map(categories, self.config)),
            last_updated=now,
            category_contributions=dict(contributions or {}),
        )
        logger.debug(
            "Evidence pack: %d inputs, %d risk map entries",
            len(pack.inputs_used), len(pack.risk_map),
        )
        return pack


def build_evidence_pack(
    data: FinancialHealthInput,
    categories: Sequence[HealthCategory],
    trend: ScoreTrend,
    *,
    confidence: float,
    data_confidence: float,
    now: datetime,
    config: EngineConfig | None = None,
) -> EvidencePack:
    return EvidencePackBuilder(config).build(
        data, categories, trend,
        confidence=confidence, data_confidence=data_confidence, now=now,
    )
