"""Shared score normalization and risk-band discretisation.

One rule turns a raw metric value into a 0-100 score against its
benchmark; one function turns any 0-100 score into a ``RiskBand``.
Both Layer 1 (metric aggregation) and Layer 2 (category scoring) call
these, so a metric and a category with the same score always land in
the same band.

Normalization rule:

- higher-is-better: ``min(100, value / benchmark * 100)``, floored at 0.
  A non-positive benchmark is degenerate: any positive value meets it
  (100), anything else scores 0.
- lower-is-better: ``value <= 0`` -> 100; ``benchmark <= 0`` -> 0;
  otherwise ``clamp(0, 100, ((benchmark - value) / benchmark + 1) * 50)``.
  A value equal to its benchmark scores exactly 50.

Non-finite inputs never leak out: NaN/Inf values score 0.
"""

from __future__ import annotations

import math

from finhealth.constants import (
    RISK_BAND_CUT_POINTS,
    SCORE_MAX,
    SCORE_MIN,
    RiskBand,
    RiskSeverity,
)

# Band -> signal severity used by the evidence risk map.
_BAND_SEVERITY: dict[RiskBand, RiskSeverity] = {
    RiskBand.EXCELLENT: RiskSeverity.LOW,
    RiskBand.GOOD: RiskSeverity.LOW,
    RiskBand.MODERATE: RiskSeverity.MEDIUM,
    RiskBand.CONCERNING: RiskSeverity.HIGH,
    RiskBand.CRITICAL: RiskSeverity.CRITICAL,
}


def clamp_score(score: float) -> float:
    """Clamp *score* into [0, 100]; non-finite maps to 0."""
    if score is None or not math.isfinite(score):
        return SCORE_MIN
    return max(SCORE_MIN, min(SCORE_MAX, float(score)))


def normalize_score(value: float, benchmark: float, higher_is_better: bool) -> float:
    """Score *value* against *benchmark* on a 0-100 scale.

    Parameters
    ----------
    value:
        Raw metric value.
    benchmark:
        Target the metric is measured against.
    higher_is_better:
        Direction of the rule.

    Returns
    -------
    float
        Score in [0, 100].  Never NaN.
    """
    if not (math.isfinite(value) and math.isfinite(benchmark)):
        return SCORE_MIN

    if higher_is_better:
        if benchmark <= 0:
            return SCORE_MAX if value > 0 else SCORE_MIN
        return clamp_score(min(SCORE_MAX, value / benchmark * 100.0))

    if value <= 0:
        return SCORE_MAX
    if benchmark <= 0:
        return SCORE_MIN
    return clamp_score(((benchmark - value) / benchmark + 1.0) * 50.0)


def score_to_risk_band(score: float) -> RiskBand:
    """Map a 0-100 score onto the 80/60/40/20 risk bands."""
    s = clamp_score(score)
    for lower, band in RISK_BAND_CUT_POINTS:
        if s >= lower:
            return band
    return RiskBand.CRITICAL


def risk_band_to_severity(band: RiskBand) -> RiskSeverity:
    return _BAND_SEVERITY[RiskBand(band)]
