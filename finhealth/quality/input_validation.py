"""Precondition checks on a FinancialHealthInput.

Validates the structural contract of the engine input before Layer 1
runs:

  - **Required fields**: ``user_id`` and the portfolio snapshot must be
    present, every snapshot collection must be a sequence (never None).
  - **Finite numbers**: no NaN/Inf anywhere in the numeric fields.
  - **Sign constraints**: amounts that cannot be negative (property
    values, loan principal, income, expenses, investment values) are
    rejected when negative.  Account balances and net worth may be
    negative.
  - **Enumerations / ranges**: insight severities, goal risk tolerance
    and investment style, linkage consistency score and history scores.
  - **History dates**: every point must carry a date pandas can parse.

Any failure raises ``PreconditionViolation`` carrying every problem
found, so the caller can map it to a client error.  Nothing is coerced.

Absent *optional* sections are not errors; they lower confidence
downstream (see ``finhealth.quality.data_confidence``).
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Iterable, Sequence

import pandas as pd

from finhealth.constants import InsightSeverity, InvestmentStyle, RiskTolerance

if TYPE_CHECKING:
    from finhealth.inputs import FinancialHealthInput

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PreconditionViolation(Exception):
    """Raised when the engine input is structurally invalid."""

    def __init__(self, details: list[dict[str, Any]]) -> None:
        self.details = details
        msgs = "; ".join(f"{d['field']}: {d['reason']}" for d in details)
        super().__init__(f"Invalid financial health input: {msgs}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "PRECONDITION_VIOLATION",
            "details": [
                {"field": d["field"], "value": _describe(d.get("value")), "reason": d["reason"]}
                for d in self.details
            ],
        }


def _describe(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, (int, float, str, bool)) or value is None:
        return value
    return repr(value)


# ---------------------------------------------------------------------------
# Field checks
# ---------------------------------------------------------------------------

# (collection attribute, record fields that must be finite and >= 0)
_NON_NEGATIVE_FIELDS: dict[str, tuple[str, ...]] = {
    "properties": ("current_value", "purchase_price", "debt", "monthly_income", "monthly_expenses"),
    "loans": ("principal", "interest_rate", "monthly_repayment"),
    "accounts": (),
    "investments": ("value", "cost_base"),
    "income": ("monthly_amount",),
    "expenses": ("monthly_amount",),
}

# Fields that only need to be finite.
_FINITE_FIELDS: dict[str, tuple[str, ...]] = {
    "accounts": ("balance",),
}

# Snapshot totals -> must be non-negative
_SNAPSHOT_TOTALS: dict[str, bool] = {
    "net_worth": False,
    "total_assets": True,
    "total_liabilities": True,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_number(
    problems: list[dict[str, Any]],
    path: str,
    value: Any,
    *,
    non_negative: bool = False,
    upper: float | None = None,
) -> None:
    if not _is_number(value):
        problems.append({"field": path, "value": value, "reason": "must be a number"})
        return
    if not math.isfinite(value):
        problems.append({"field": path, "value": value, "reason": "must be finite"})
        return
    if non_negative and value < 0:
        problems.append({"field": path, "value": value, "reason": "must not be negative"})
    if upper is not None and value > upper:
        problems.append({"field": path, "value": value, "reason": f"must not exceed {upper:g}"})


def _check_collection(
    problems: list[dict[str, Any]],
    path: str,
    records: Any,
) -> Sequence[Any]:
    if records is None or isinstance(records, (str, bytes)) or not isinstance(records, Iterable):
        problems.append({"field": path, "value": records, "reason": "required collection is missing"})
        return ()
    return list(records)


def _check_ids(problems: list[dict[str, Any]], path: str, records: Sequence[Any]) -> None:
    seen: set[str] = set()
    for i, rec in enumerate(records):
        rec_id = getattr(rec, "id", None)
        if not isinstance(rec_id, str) or not rec_id:
            problems.append({"field": f"{path}[{i}].id", "value": rec_id, "reason": "must be a non-empty string"})
        elif rec_id in seen:
            problems.append({"field": f"{path}[{i}].id", "value": rec_id, "reason": "duplicate id"})
        else:
            seen.add(rec_id)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def find_violations(data: FinancialHealthInput) -> list[dict[str, Any]]:
    """Return every precondition problem in *data* (empty if valid)."""
    problems: list[dict[str, Any]] = []

    if not isinstance(data.user_id, str) or not data.user_id.strip():
        problems.append({"field": "userId", "value": data.user_id, "reason": "must be a non-empty string"})

    snapshot = data.portfolio_snapshot
    if snapshot is None:
        problems.append({"field": "portfolioSnapshot", "value": None, "reason": "required section is missing"})
        return problems

    for attr, non_negative in _SNAPSHOT_TOTALS.items():
        _check_number(problems, f"portfolioSnapshot.{attr}", getattr(snapshot, attr, None),
                      non_negative=non_negative)

    for collection in ("properties", "loans", "accounts", "investments", "income", "expenses"):
        path = f"portfolioSnapshot.{collection}"
        records = _check_collection(problems, path, getattr(snapshot, collection, None))
        _check_ids(problems, path, records)
        for i, rec in enumerate(records):
            for fld in _NON_NEGATIVE_FIELDS.get(collection, ()):
                _check_number(problems, f"{path}[{i}].{fld}", getattr(rec, fld, None), non_negative=True)
            for fld in _FINITE_FIELDS.get(collection, ()):
                _check_number(problems, f"{path}[{i}].{fld}", getattr(rec, fld, None))

    insights = _check_collection(problems, "insights", data.insights)
    allowed = {s.value for s in InsightSeverity}
    for i, insight in enumerate(insights):
        if getattr(insight, "severity", None) not in allowed:
            problems.append({
                "field": f"insights[{i}].severity",
                "value": getattr(insight, "severity", None),
                "reason": f"must be one of {sorted(allowed)}",
            })

    if data.linkage_health is not None:
        lh = data.linkage_health
        _check_number(problems, "linkageHealth.consistency_score", lh.consistency_score,
                      non_negative=True, upper=100.0)
        _check_collection(problems, "linkageHealth.orphans", lh.orphans)
        _check_collection(problems, "linkageHealth.missing_links", lh.missing_links)

    if data.strategy_data is not None:
        sd = data.strategy_data
        _check_collection(problems, "strategyData.recommendations", sd.recommendations)
        _check_collection(problems, "strategyData.conflicts", sd.conflicts)
        for i, s in enumerate(_check_collection(problems, "strategyData.sbs_scores", sd.sbs_scores)):
            _check_number(problems, f"strategyData.sbs_scores[{i}]", s)

    if data.user_goals is not None:
        ug = data.user_goals
        _check_number(problems, "userGoals.retirement_target", ug.retirement_target, non_negative=True)
        _check_number(problems, "userGoals.savings_goal", ug.savings_goal, non_negative=True)
        for attr, path, enum in (
            ("risk_tolerance", "userGoals.risk_tolerance", RiskTolerance),
            ("investment_style", "userGoals.investment_style", InvestmentStyle),
        ):
            choices = {e.value for e in enum}
            if getattr(ug, attr) not in choices:
                problems.append({
                    "field": path,
                    "value": getattr(ug, attr),
                    "reason": f"must be one of {sorted(choices)}",
                })

    return problems


def validate_input(data: FinancialHealthInput) -> None:
    """Raise ``PreconditionViolation`` if *data* breaks the input contract."""
    problems = find_violations(data)
    if problems:
        logger.warning("Rejected input for user %r: %d violation(s)", data.user_id, len(problems))
        raise PreconditionViolation(problems)


def validate_history(history: Iterable[tuple[Any, Any]] | None) -> None:
    """Check a caller-supplied ``(date, score)`` history."""
    if history is None:
        return
    problems: list[dict[str, Any]] = []
    for i, point in enumerate(history):
        try:
            when, score = point
        except (TypeError, ValueError):
            problems.append({"field": f"history[{i}]", "value": point, "reason": "must be a (date, score) pair"})
            continue
        if when is None:
            problems.append({"field": f"history[{i}].date", "value": when, "reason": "date is required"})
        else:
            try:
                stamp = pd.Timestamp(when)
            except (TypeError, ValueError, OverflowError):
                stamp = pd.NaT
            if pd.isna(stamp):
                problems.append({"field": f"history[{i}].date", "value": when, "reason": "not a valid date"})
        _check_number(problems, f"history[{i}].score", score, non_negative=True, upper=100.0)
    if problems:
        raise PreconditionViolation(problems)
