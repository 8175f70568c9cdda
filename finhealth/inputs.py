"""Engine input: the normalised financial-position snapshot plus optional
insight, strategy, linkage and goal context.

The snapshot is assembled by an external provider; this module only
defines its shape and parses it from the camelCase payload produced by
the API layer (``FinancialHealthInput.from_dict``).  Shape problems
(missing required fields, non-numeric amounts) raise
``PreconditionViolation``; value constraints are checked by
``finhealth.quality.input_validation.validate_input``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from finhealth.quality.input_validation import PreconditionViolation

_MISSING = object()


# ---------------------------------------------------------------------------
# Snapshot records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PropertyRecord:
    id: str
    name: str
    type: str  # HOME | INVESTMENT
    current_value: float
    purchase_price: float = 0.0
    debt: float = 0.0
    monthly_income: float = 0.0
    monthly_expenses: float = 0.0


@dataclass(frozen=True)
class LoanRecord:
    id: str
    name: str
    type: str  # HOME | INVESTMENT | PERSONAL
    principal: float
    interest_rate: float = 0.0
    is_interest_only: bool = False
    is_fixed_rate: bool = False
    monthly_repayment: float = 0.0
    property_id: str | None = None


@dataclass(frozen=True)
class AccountRecord:
    id: str
    name: str
    type: str  # OFFSET | SAVINGS | TRANSACTIONAL | CREDIT_CARD
    balance: float


@dataclass(frozen=True)
class InvestmentRecord:
    id: str
    ticker: str
    type: str  # SHARE | ETF | MANAGED_FUND | CRYPTO
    value: float
    cost_base: float = 0.0


@dataclass(frozen=True)
class IncomeRecord:
    id: str
    name: str
    type: str
    monthly_amount: float
    is_taxable: bool = True


@dataclass(frozen=True)
class ExpenseRecord:
    id: str
    name: str
    category: str
    monthly_amount: float
    is_essential: bool = False


@dataclass(frozen=True)
class PortfolioSnapshot:
    net_worth: float
    total_assets: float
    total_liabilities: float
    properties: tuple[PropertyRecord, ...] = ()
    loans: tuple[LoanRecord, ...] = ()
    accounts: tuple[AccountRecord, ...] = ()
    investments: tuple[InvestmentRecord, ...] = ()
    income: tuple[IncomeRecord, ...] = ()
    expenses: tuple[ExpenseRecord, ...] = ()


# ---------------------------------------------------------------------------
# Optional context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InsightRecord:
    id: str
    severity: str  # critical | high | medium | low
    category: str
    title: str


@dataclass(frozen=True)
class StrategyData:
    recommendations: tuple[Mapping[str, Any], ...] = ()
    conflicts: tuple[Any, ...] = ()
    sbs_scores: tuple[float, ...] = ()


@dataclass(frozen=True)
class LinkageHealth:
    orphans: tuple[str, ...] = ()
    missing_links: tuple[str, ...] = ()
    consistency_score: float = 100.0


@dataclass(frozen=True)
class UserGoals:
    retirement_target: float
    savings_goal: float
    risk_tolerance: str = "MODERATE"
    investment_style: str = "BALANCED"


@dataclass(frozen=True)
class FinancialHealthInput:
    """Everything the engine consumes for one user."""

    user_id: str
    portfolio_snapshot: PortfolioSnapshot
    insights: tuple[InsightRecord, ...] = field(default_factory=tuple)
    strategy_data: StrategyData | None = None
    linkage_health: LinkageHealth | None = None
    user_goals: UserGoals | None = None

    def optional_sections_present(self) -> dict[str, bool]:
        """Which optional context sections carry data."""
        return {
            "insights": len(self.insights or ()) > 0,
            "strategyData": self.strategy_data is not None,
            "linkageHealth": self.linkage_health is not None,
            "userGoals": self.user_goals is not None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> FinancialHealthInput:
        """Parse the camelCase payload assembled by the snapshot provider."""
        parser = _PayloadParser()
        result = parser.parse(payload)
        if parser.problems:
            raise PreconditionViolation(parser.problems)
        return result


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


class _PayloadParser:
    """Collects every shape problem instead of stopping at the first."""

    def __init__(self) -> None:
        self.problems: list[dict[str, Any]] = []

    def _get(self, data: Mapping[str, Any], key: str, path: str, default: Any = _MISSING) -> Any:
        if key in data and data[key] is not None:
            return data[key]
        if default is _MISSING:
            self.problems.append({"field": f"{path}.{key}" if path else key, "value": None,
                                  "reason": "required field is missing"})
            return None
        return default

    def _number(self, data: Mapping[str, Any], key: str, path: str, default: Any = _MISSING) -> float:
        value = self._get(data, key, path, default)
        if value is None:
            return 0.0
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            self.problems.append({"field": f"{path}.{key}", "value": value, "reason": "must be a number"})
            return 0.0
        return float(value)

    def _flag(self, data: Mapping[str, Any], key: str, path: str, default: bool) -> bool:
        value = self._get(data, key, path, default)
        if not isinstance(value, bool):
            self.problems.append({"field": f"{path}.{key}", "value": value, "reason": "must be a boolean"})
            return default
        return value

    def _text(self, data: Mapping[str, Any], key: str, path: str, default: Any = _MISSING) -> str:
        value = self._get(data, key, path, default)
        return "" if value is None else str(value)

    def _records(self, data: Mapping[str, Any], key: str, path: str, required: bool = True) -> list[tuple[str, Mapping[str, Any]]]:
        value = self._get(data, key, path, _MISSING if required else [])
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            self.problems.append({"field": f"{path}.{key}", "value": value, "reason": "must be a list"})
            return []
        out = []
        for i, item in enumerate(value):
            item_path = f"{path}.{key}[{i}]"
            if not isinstance(item, Mapping):
                self.problems.append({"field": item_path, "value": item, "reason": "must be an object"})
                continue
            out.append((item_path, item))
        return out

    def _items(self, data: Mapping[str, Any], key: str, path: str) -> tuple[Any, ...]:
        value = data.get(key)
        if value is None:
            return ()
        if not isinstance(value, (list, tuple)):
            self.problems.append({"field": f"{path}.{key}", "value": value, "reason": "must be a list"})
            return ()
        return tuple(value)

    # -- sections -----------------------------------------------------------

    def parse(self, payload: Mapping[str, Any]) -> FinancialHealthInput:
        if not isinstance(payload, Mapping):
            self.problems.append({"field": "", "value": payload, "reason": "payload must be an object"})
            return FinancialHealthInput(user_id="", portfolio_snapshot=None)  # type: ignore[arg-type]

        user_id = self._text(payload, "userId", "")
        snap_data = self._get(payload, "portfolioSnapshot", "")
        snapshot = self._snapshot(snap_data) if isinstance(snap_data, Mapping) else None
        if snap_data is not None and snapshot is None:
            self.problems.append({"field": "portfolioSnapshot", "value": snap_data, "reason": "must be an object"})

        insights = tuple(
            InsightRecord(
                id=self._text(item, "id", p),
                severity=self._text(item, "severity", p),
                category=self._text(item, "category", p, ""),
                title=self._text(item, "title", p, ""),
            )
            for p, item in self._records(payload, "insights", "", required=False)
        )

        return FinancialHealthInput(
            user_id=user_id,
            portfolio_snapshot=snapshot,  # type: ignore[arg-type]
            insights=insights,
            strategy_data=self._strategy(payload.get("strategyData")),
            linkage_health=self._linkage(payload.get("linkageHealth")),
            user_goals=self._goals(payload.get("userGoals")),
        )

    def _snapshot(self, d: Mapping[str, Any]) -> PortfolioSnapshot:
        p = "portfolioSnapshot"
        return PortfolioSnapshot(
            net_worth=self._number(d, "netWorth", p),
            total_assets=self._number(d, "totalAssets", p),
            total_liabilities=self._number(d, "totalLiabilities", p),
            properties=tuple(
                PropertyRecord(
                    id=self._text(r, "id", rp),
                    name=self._text(r, "name", rp, ""),
                    type=self._text(r, "type", rp, "HOME"),
                    current_value=self._number(r, "currentValue", rp),
                    purchase_price=self._number(r, "purchasePrice", rp, 0.0),
                    debt=self._number(r, "debt", rp, 0.0),
                    monthly_income=self._number(r, "monthlyIncome", rp, 0.0),
                    monthly_expenses=self._number(r, "monthlyExpenses", rp, 0.0),
                )
                for rp, r in self._records(d, "properties", p)
            ),
            loans=tuple(
                LoanRecord(
                    id=self._text(r, "id", rp),
                    name=self._text(r, "name", rp, ""),
                    type=self._text(r, "type", rp, "HOME"),
                    principal=self._number(r, "principal", rp),
                    interest_rate=self._number(r, "interestRate", rp, 0.0),
                    is_interest_only=self._flag(r, "isInterestOnly", rp, False),
                    is_fixed_rate=self._flag(r, "isFixedRate", rp, False),
                    monthly_repayment=self._number(r, "monthlyRepayment", rp, 0.0),
                    property_id=r.get("propertyId"),
                )
                for rp, r in self._records(d, "loans", p)
            ),
            accounts=tuple(
                AccountRecord(
                    id=self._text(r, "id", rp),
                    name=self._text(r, "name", rp, ""),
                    type=self._text(r, "type", rp, "TRANSACTIONAL"),
                    balance=self._number(r, "balance", rp),
                )
                for rp, r in self._records(d, "accounts", p)
            ),
            investments=tuple(
                InvestmentRecord(
                    id=self._text(r, "id", rp),
                    ticker=self._text(r, "ticker", rp, ""),
                    type=self._text(r, "type", rp, "SHARE"),
                    value=self._number(r, "value", rp),
                    cost_base=self._number(r, "costBase", rp, 0.0),
                )
                for rp, r in self._records(d, "investments", p)
            ),
            income=tuple(
                IncomeRecord(
                    id=self._text(r, "id", rp),
                    name=self._text(r, "name", rp, ""),
                    type=self._text(r, "type", rp, "OTHER"),
                    monthly_amount=self._number(r, "monthlyAmount", rp),
                    is_taxable=self._flag(r, "isTaxable", rp, True),
                )
                for rp, r in self._records(d, "income", p)
            ),
            expenses=tuple(
                ExpenseRecord(
                    id=self._text(r, "id", rp),
                    name=self._text(r, "name", rp, ""),
                    category=self._text(r, "category", rp, "OTHER"),
                    monthly_amount=self._number(r, "monthlyAmount", rp),
                    is_essential=self._flag(r, "isEssential", rp, False),
                )
                for rp, r in self._records(d, "expenses", p)
            ),
        )

    def _strategy(self, d: Any) -> StrategyData | None:
        if d is None:
            return None
        if not isinstance(d, Mapping):
            self.problems.append({"field": "strategyData", "value": d, "reason": "must be an object"})
            return None
        return StrategyData(
            recommendations=self._items(d, "recommendations", "strategyData"),
            conflicts=self._items(d, "conflicts", "strategyData"),
            sbs_scores=self._items(d, "sbsScores", "strategyData"),
        )

    def _linkage(self, d: Any) -> LinkageHealth | None:
        if d is None:
            return None
        if not isinstance(d, Mapping):
            self.problems.append({"field": "linkageHealth", "value": d, "reason": "must be an object"})
            return None
        return LinkageHealth(
            orphans=self._items(d, "orphans", "linkageHealth"),
            missing_links=self._items(d, "missingLinks", "linkageHealth"),
            consistency_score=self._number(d, "consistencyScore", "linkageHealth"),
        )

    def _goals(self, d: Any) -> UserGoals | None:
        if d is None:
            return None
        if not isinstance(d, Mapping):
            self.problems.append({"field": "userGoals", "value": d, "reason": "must be an object"})
            return None
        return UserGoals(
            retirement_target=self._number(d, "retirementTarget", "userGoals"),
            savings_goal=self._number(d, "savingsGoal", "userGoals"),
            risk_tolerance=self._text(d, "riskTolerance", "userGoals", "MODERATE"),
            investment_style=self._text(d, "investmentStyle", "userGoals", "BALANCED"),
        )
