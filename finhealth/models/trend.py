"""Score trend classification over a caller-supplied history.

The ``(date, score)`` history is owned by an external persistence
collaborator.  Here it is windowed to the last ``window_months`` ending
at the injected ``now``; the current score is appended at ``now`` unless
the history already has a point on that day.

    change_percent = (latest - earliest) / earliest * 100

``> +2`` is IMPROVING, ``< -2`` is DECLINING, anything else STABLE.
Fewer than two points, or a non-positive earliest score with no change,
is STABLE with zero change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Mapping

import pandas as pd

from finhealth.constants import TrendDirection

logger = logging.getLogger(__name__)

_DEFAULT_THRESHOLD = 2.0
_DEFAULT_WINDOW_MONTHS = 6


@dataclass(frozen=True)
class TrendPoint:
    date: str  # ISO-8601 day
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "score": self.score}


@dataclass(frozen=True)
class ScoreTrend:
    direction: TrendDirection = TrendDirection.STABLE
    change_percent: float = 0.0
    period_months: int = _DEFAULT_WINDOW_MONTHS
    history: tuple[TrendPoint, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction.value,
            "changePercent": self.change_percent,
            "periodMonths": self.period_months,
            "history": [p.to_dict() for p in self.history],
        }


def _naive_day(when: date | datetime | str) -> pd.Timestamp:
    # Aware points keep their wall-clock day so they mix with naive ones
    stamp = pd.Timestamp(when)
    if stamp.tz is not None:
        stamp = stamp.tz_localize(None)
    return stamp.normalize()


def history_series(
    history: Iterable[tuple[date | datetime | str, float]] | None,
) -> pd.Series:
    """Turn ``(date, score)`` pairs into a day-indexed, sorted Series.

    Later entries win when two points fall on the same day.
    """
    pairs = list(history or ())
    if not pairs:
        return pd.Series(dtype=float, index=pd.DatetimeIndex([]))
    index = pd.DatetimeIndex([_naive_day(p[0]) for p in pairs])
    series = pd.Series([float(p[1]) for p in pairs], index=index, dtype=float)
    series = series[~series.index.duplicated(keep="last")]
    return series.sort_index()


def classify_change(change_percent: float, threshold: float = _DEFAULT_THRESHOLD) -> TrendDirection:
    if change_percent > threshold:
        return TrendDirection.IMPROVING
    if change_percent < -threshold:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def compute_trend(
    current_score: float,
    now: datetime,
    history: Iterable[tuple[date | datetime | str, float]] | None = None,
    settings: Mapping[str, Any] | None = None,
) -> ScoreTrend:
    """Classify the score trend over the configured window.

    Parameters
    ----------
    current_score:
        Final score of this report.
    now:
        Injected report time; the window ends here.
    history:
        Prior ``(date, score)`` points, any order.
    settings:
        ``trend`` section of the engine config
        (``change_threshold_percent``, ``window_months``).

    Returns
    -------
    ScoreTrend
    """
    settings = settings or {}
    threshold = float(settings.get("change_threshold_percent", _DEFAULT_THRESHOLD))
    months = int(settings.get("window_months", _DEFAULT_WINDOW_MONTHS))

    today = _naive_day(now)
    start = today - pd.DateOffset(months=months)

    series = history_series(history)
    series = series[(series.index >= start) & (series.index <= today)].copy()
    if today not in series.index:
        series.loc[today] = float(current_score)
        series = series.sort_index()

    points = tuple(
        TrendPoint(date=ts.date().isoformat(), score=float(score))
        for ts, score in series.items()
    )

    if len(series) < 2:
        return ScoreTrend(period_months=months, history=points)

    earliest = float(series.iloc[0])
    latest = float(series.iloc[-1])
    if earliest > 0:
        change = (latest - earliest) / earliest * 100.0
    else:
        # No base to measure a percentage against
        change = 100.0 if latest > earliest else 0.0
    change = round(change, 1)

    trend = ScoreTrend(
        direction=classify_change(change, threshold),
        change_percent=change,
        period_months=months,
        history=points,
    )
    logger.debug("Trend over %d points: %s (%.1f%%)", len(points), trend.direction.value, change)
    return trend
