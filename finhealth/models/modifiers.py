"""Bounded penalty modifiers applied to the composite base score.

Five independent rules, each computing a raw deduction that is clipped
into ``[0, cap]`` and rounded to one decimal:

- ``data_confidence``   -- (100 - DataConfidence) * 0.1, cap 10
- ``insight_severity``  -- 5 per critical + 2 per high insight, cap 15
- ``forecast_risk``     -- 5 if LONG_TERM_OUTLOOK < 40, 2 if < 60, cap 5
- ``linkage``           -- 1 per orphan + 0.5 per missing link
                           + 0.05 per point of lost consistency, cap 10
- ``strategy_conflict`` -- 2 per strategy conflict, cap 5

Rates and caps come from the ``modifiers`` section of the engine config.
Rules register through ``penalty_rule`` so another deduction can be
plugged in without touching the aggregate engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

import numpy as np

from finhealth.constants import HealthCategoryName

if TYPE_CHECKING:
    from finhealth.inputs import FinancialHealthInput
    from finhealth.models.category_scoring import HealthCategory

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoreModifiers:
    data_confidence_penalty: float = 0.0
    insight_severity_penalty: float = 0.0
    forecast_risk_penalty: float = 0.0
    linkage_penalty: float = 0.0
    strategy_conflict_penalty: float = 0.0

    @property
    def total_penalty(self) -> float:
        return round(
            self.data_confidence_penalty
            + self.insight_severity_penalty
            + self.forecast_risk_penalty
            + self.linkage_penalty
            + self.strategy_conflict_penalty,
            1,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "dataConfidencePenalty": self.data_confidence_penalty,
            "insightSeverityPenalty": self.insight_severity_penalty,
            "forecastRiskPenalty": self.forecast_risk_penalty,
            "linkagePenalty": self.linkage_penalty,
            "strategyConflictPenalty": self.strategy_conflict_penalty,
            "totalPenalty": self.total_penalty,
        }


@dataclass(frozen=True)
class ModifierContext:
    """Everything a penalty rule may look at."""
    data: FinancialHealthInput
    categories: Sequence[HealthCategory]
    data_confidence: float

    def category_score(self, name: HealthCategoryName | str) -> float | None:
        name = HealthCategoryName(name)
        for c in self.categories:
            if c.name == name:
                return c.score
        return None


# ---------------------------------------------------------------------------
# Rule registry
# ---------------------------------------------------------------------------

RuleFn = Callable[[ModifierContext, Mapping[str, Any]], float]


@dataclass(frozen=True)
class PenaltyRule:
    name: str
    compute: RuleFn
    default_cap: float

    def apply(self, ctx: ModifierContext, settings: Mapping[str, Any]) -> float:
        cap = float(settings.get("cap", self.default_cap))
        raw = float(self.compute(ctx, settings))
        return round(float(np.clip(raw, 0.0, cap)), 1)


PENALTY_RULES: dict[str, PenaltyRule] = {}


def penalty_rule(name: str, default_cap: float) -> Callable[[RuleFn], RuleFn]:
    """Register a capped penalty rule under *name*."""
    def register(fn: RuleFn) -> RuleFn:
        PENALTY_RULES[name] = PenaltyRule(name, fn, default_cap)
        return fn
    return register


@penalty_rule("data_confidence", default_cap=10)
def _data_confidence(ctx: ModifierContext, s: Mapping[str, Any]) -> float:
    return (100.0 - ctx.data_confidence) * float(s.get("per_missing_point", 0.1))


@penalty_rule("insight_severity", default_cap=15)
def _insight_severity(ctx: ModifierContext, s: Mapping[str, Any]) -> float:
    per = s.get("per_insight") or {"critical": 5, "high": 2}
    return sum(float(per.get(i.severity, 0)) for i in ctx.data.insights or ())


@penalty_rule("forecast_risk", default_cap=5)
def _forecast_risk(ctx: ModifierContext, s: Mapping[str, Any]) -> float:
    score = ctx.category_score(s.get("category", HealthCategoryName.LONG_TERM_OUTLOOK.value))
    if score is None:
        return 0.0
    steps = s.get("steps") or [{"below": 40, "penalty": 5}, {"below": 60, "penalty": 2}]
    for step in sorted(steps, key=lambda st: st["below"]):
        if score < step["below"]:
            return float(step["penalty"])
    return 0.0


@penalty_rule("linkage", default_cap=10)
def _linkage(ctx: ModifierContext, s: Mapping[str, Any]) -> float:
    lh = ctx.data.linkage_health
    if lh is None:
        return 0.0
    return (
        len(lh.orphans) * float(s.get("per_orphan", 1.0))
        + len(lh.missing_links) * float(s.get("per_missing_link", 0.5))
        + (100.0 - lh.consistency_score) * float(s.get("per_consistency_point", 0.05))
    )


@penalty_rule("strategy_conflict", default_cap=5)
def _strategy_conflict(ctx: ModifierContext, s: Mapping[str, Any]) -> float:
    sd = ctx.data.strategy_data
    if sd is None:
        return 0.0
    return len(sd.conflicts) * float(s.get("per_conflict", 2))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def compute_modifiers(
    ctx: ModifierContext,
    settings: Mapping[str, Any] | None = None,
) -> ScoreModifiers:
    """Evaluate every registered rule.

    Parameters
    ----------
    ctx:
        Input, scored categories and DataConfidence.
    settings:
        The ``modifiers`` section of the engine config (rates and caps).

    Returns
    -------
    ScoreModifiers
        Per-rule penalties; unregistered field names stay at 0.
    """
    settings = settings or {}
    values = {
        f"{name}_penalty": rule.apply(ctx, settings.get(name) or {})
        for name, rule in PENALTY_RULES.items()
    }
    known = set(ScoreModifiers.__dataclass_fields__)
    modifiers = ScoreModifiers(**{k: v for k, v in values.items() if k in known})
    logger.debug("Penalty modifiers: %s", modifiers.to_dict())
    return modifiers
