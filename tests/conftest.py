"""Shared payload builders for the financial health engine tests."""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any

import pytest

from finhealth.features.definitions import EngineConfig
from finhealth.inputs import FinancialHealthInput

NOW = datetime(2026, 3, 31, 9, 30)


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def _full_payload() -> dict[str, Any]:
    """A fully populated household: two properties, two loans, all context."""
    return {
        "userId": "user-1",
        "portfolioSnapshot": {
            "netWorth": 683_000,
            "totalAssets": 1_335_000,
            "totalLiabilities": 652_000,
            "properties": [
                {"id": "p1", "name": "Home", "type": "HOME", "currentValue": 800_000,
                 "purchasePrice": 600_000, "debt": 400_000},
                {"id": "p2", "name": "Unit", "type": "INVESTMENT", "currentValue": 400_000,
                 "purchasePrice": 350_000, "debt": 250_000, "monthlyIncome": 1_600,
                 "monthlyExpenses": 300},
            ],
            "loans": [
                {"id": "l1", "name": "Home loan", "type": "HOME", "principal": 400_000,
                 "interestRate": 6.1, "monthlyRepayment": 2_600, "propertyId": "p1"},
                {"id": "l2", "name": "Unit loan", "type": "INVESTMENT", "principal": 250_000,
                 "interestRate": 6.4, "isInterestOnly": True, "isFixedRate": True,
                 "monthlyRepayment": 1_300, "propertyId": "p2"},
            ],
            "accounts": [
                {"id": "a1", "name": "Offset", "type": "OFFSET", "balance": 30_000},
                {"id": "a2", "name": "Savings", "type": "SAVINGS", "balance": 20_000},
                {"id": "a3", "name": "Visa", "type": "CREDIT_CARD", "balance": -2_000},
            ],
            "investments": [
                {"id": "i1", "ticker": "VAS", "type": "ETF", "value": 60_000, "costBase": 50_000},
                {"id": "i2", "ticker": "CBA", "type": "SHARE", "value": 20_000, "costBase": 15_000},
                {"id": "i3", "ticker": "BTC", "type": "CRYPTO", "value": 5_000, "costBase": 6_000},
            ],
            "income": [
                {"id": "in1", "name": "Salary", "type": "SALARY", "monthlyAmount": 12_000},
                {"id": "in2", "name": "Rent", "type": "RENTAL", "monthlyAmount": 1_600,
                 "isTaxable": True},
            ],
            "expenses": [
                {"id": "e1", "name": "Repayments", "category": "HOUSING", "monthlyAmount": 3_900,
                 "isEssential": True},
                {"id": "e2", "name": "Groceries", "category": "FOOD", "monthlyAmount": 1_200,
                 "isEssential": True},
                {"id": "e3", "name": "Dining", "category": "LIFESTYLE", "monthlyAmount": 800},
                {"id": "e4", "name": "Utilities", "category": "UTILITIES", "monthlyAmount": 400,
                 "isEssential": True},
            ],
        },
        "insights": [
            {"id": "ins1", "severity": "high", "category": "CASHFLOW", "title": "Dining spend up"},
            {"id": "ins2", "severity": "low", "category": "INVESTMENTS", "title": "Dividend paid"},
        ],
        "strategyData": {
            "recommendations": [
                {"id": "rec-debt-1", "category": "DEBT", "title": "Refinance home loan"},
            ],
            "conflicts": [],
            "sbsScores": [72.5],
        },
        "linkageHealth": {"orphans": [], "missingLinks": [], "consistencyScore": 95},
        "userGoals": {
            "retirementTarget": 2_000_000,
            "savingsGoal": 1_000,
            "riskTolerance": "MODERATE",
            "investmentStyle": "BALANCED",
        },
    }


def _snapshot_payload(
    *,
    income: float | list[float] = 0.0,
    expenses: float | list[float] = 0.0,
    essential: bool = False,
    cash: float = 0.0,
    properties: list[dict[str, Any]] | None = None,
    loans: list[dict[str, Any]] | None = None,
    accounts: list[dict[str, Any]] | None = None,
    investments: list[dict[str, Any]] | None = None,
    net_worth: float | None = None,
    user_id: str = "user-2",
) -> dict[str, Any]:
    """Snapshot-only payload built from a few headline figures."""
    incomes = income if isinstance(income, list) else ([income] if income else [])
    costs = expenses if isinstance(expenses, list) else ([expenses] if expenses else [])
    properties = properties or []
    loans = loans or []
    investments = investments or []
    if accounts is None:
        accounts = [{"id": "cash", "name": "Savings", "type": "SAVINGS", "balance": cash}] if cash else []

    total_assets = (
        sum(p["currentValue"] for p in properties)
        + sum(max(0, a["balance"]) for a in accounts)
        + sum(i["value"] for i in investments)
    )
    total_liabilities = sum(l["principal"] for l in loans)
    return {
        "userId": user_id,
        "portfolioSnapshot": {
            "netWorth": total_assets - total_liabilities if net_worth is None else net_worth,
            "totalAssets": total_assets,
            "totalLiabilities": total_liabilities,
            "properties": properties,
            "loans": loans,
            "accounts": accounts,
            "investments": investments,
            "income": [
                {"id": f"in{i}", "name": "Income", "type": "SALARY", "monthlyAmount": amt}
                for i, amt in enumerate(incomes)
            ],
            "expenses": [
                {"id": f"ex{i}", "name": "Expense", "category": "LIVING", "monthlyAmount": amt,
                 "isEssential": essential}
                for i, amt in enumerate(costs)
            ],
        },
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture(scope="session")
def engine_config() -> EngineConfig:
    return EngineConfig.load()


@pytest.fixture
def full_payload() -> dict[str, Any]:
    return _full_payload()


@pytest.fixture
def full_input() -> FinancialHealthInput:
    return FinancialHealthInput.from_dict(_full_payload())


@pytest.fixture
def make_payload():
    """Factory: ``make_payload(income=8000, expenses=6000, cash=48000, ...)``."""
    return _snapshot_payload


@pytest.fixture
def make_input():
    """Factory returning a parsed ``FinancialHealthInput``."""
    def build(**kwargs: Any) -> FinancialHealthInput:
        return FinancialHealthInput.from_dict(_snapshot_payload(**kwargs))
    return build


@pytest.fixture
def without_sections():
    """Factory: full payload with the named optional sections removed."""
    def build(*sections: str) -> dict[str, Any]:
        payload = copy.deepcopy(_full_payload())
        for name in sections:
            payload.pop(name, None)
        return payload
    return build
