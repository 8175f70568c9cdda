"""Data-completeness confidence.

``DataConfidence`` (0-100) scores how complete the portfolio snapshot is:
each non-empty sub-collection earns its configured points
(income 20, expenses 20, properties / loans / accounts / investments 15
each), and an external linkage-consistency score above 80 adds a bonus
of 10, capped at 100.

It feeds the report-level confidence and the data-confidence penalty,
never the confidence of individual metrics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from finhealth.features.definitions import EngineConfig
    from finhealth.inputs import FinancialHealthInput

logger = logging.getLogger(__name__)

_DEFAULT_WEIGHTS: dict[str, float] = {
    "income": 20,
    "expenses": 20,
    "properties": 15,
    "loans": 15,
    "accounts": 15,
    "investments": 15,
}


@dataclass
class DataConfidenceResult:
    """DataConfidence score plus which collections contributed."""
    score: float = 0.0
    present: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    linkage_bonus: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "present": list(self.present),
            "missing": list(self.missing),
            "linkageBonus": self.linkage_bonus,
        }


def assess_data_confidence(
    data: FinancialHealthInput,
    config: EngineConfig | None = None,
) -> DataConfidenceResult:
    """Score snapshot completeness.

    Parameters
    ----------
    data:
        Validated engine input.
    config:
        Engine tables; only the ``data_confidence`` section is used.

    Returns
    -------
    DataConfidenceResult
    """
    settings = config.data_confidence if config is not None else {}
    weights = settings.get("collection_weights") or _DEFAULT_WEIGHTS
    bonus = float(settings.get("linkage_bonus", 10))
    bonus_threshold = float(settings.get("linkage_bonus_threshold", 80))

    snapshot = data.portfolio_snapshot
    result = DataConfidenceResult()
    total = 0.0
    for collection, points in weights.items():
        if len(getattr(snapshot, collection, ()) or ()) > 0:
            total += float(points)
            result.present.append(collection)
        else:
            result.missing.append(collection)

    lh = data.linkage_health
    if lh is not None and lh.consistency_score > bonus_threshold:
        result.linkage_bonus = bonus
        total += bonus

    result.score = min(100.0, total)
    if result.missing:
        logger.debug("Empty snapshot collections: %s", ", ".join(result.missing))
    return result
