"""Layer 1 -- metric aggregation.

Turns a ``PortfolioSnapshot`` into ~30 benchmarked ``BaseMetric`` values
across seven groups:

- ``liquidity``   -- emergency buffer, savings rate, liquid net worth, short-term debt
- ``cashflow``    -- surplus, income volatility, fixed-cost ratio, discretionary share
- ``debt``        -- LVR, DTI, repayment load, variable-rate and interest-only exposure
- ``investments`` -- diversification, concentration, performance, cost, risk-adjusted return
- ``property``    -- equity, rental yield, LVR stability, vacancy, property concentration
- ``risk``        -- buffering, insurance, volatile-asset exposure, emergency runway
- ``forecast``    -- retirement runway, withdrawal coverage, 5/10/20-year net worth

Which metrics exist, their benchmarks and base confidences come from the
engine config; this module only owns the *formulas*, registered per
``(group, key)`` in ``CALCULATORS``.

Every ratio with a potentially-zero denominator resolves to a fixed
fallback (e.g. no expenses -> 12 months of emergency buffer), so no
metric value is ever NaN or infinite.

Top-level entry point:
    ``aggregate_metrics(data, config=None)``
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Iterator, Mapping

import numpy as np

from finhealth.constants import METRIC_GROUPS, RiskBand
from finhealth.features.definitions import EngineConfig, MetricDefinition
from finhealth.features.normalization import normalize_score, score_to_risk_band

if TYPE_CHECKING:
    from finhealth.inputs import FinancialHealthInput, UserGoals

logger = logging.getLogger(__name__)

# Loan types secured against a property
_SECURED_LOAN_TYPES = frozenset({"HOME", "INVESTMENT"})


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


def camel_case(key: str) -> str:
    """``net_worth_5_year`` -> ``netWorth5Year``."""
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


@dataclass(frozen=True)
class BaseMetric:
    """A single measured indicator with its benchmark and derived band."""
    value: float
    benchmark: float
    score: float
    risk_band: RiskBand
    confidence: float
    higher_is_better: bool = True

    @classmethod
    def build(
        cls,
        value: float,
        benchmark: float,
        higher_is_better: bool,
        confidence: float,
    ) -> BaseMetric:
        score = normalize_score(value, benchmark, higher_is_better)
        return cls(
            value=value,
            benchmark=benchmark,
            score=score,
            risk_band=score_to_risk_band(score),
            confidence=confidence,
            higher_is_better=higher_is_better,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "benchmark": self.benchmark,
            "score": self.score,
            "riskBand": self.risk_band.value,
            "confidence": self.confidence,
            "higherIsBetter": self.higher_is_better,
        }


@dataclass(frozen=True)
class MetricGroup:
    """Read-only mapping of metric key -> ``BaseMetric`` for one group."""
    name: str
    metrics: Mapping[str, BaseMetric]

    def __post_init__(self) -> None:
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))

    def __getitem__(self, key: str) -> BaseMetric:
        return self.metrics[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.metrics)

    def __len__(self) -> int:
        return len(self.metrics)

    def items(self):
        return self.metrics.items()

    def to_dict(self) -> dict[str, Any]:
        return {camel_case(k): m.to_dict() for k, m in self.metrics.items()}


@dataclass(frozen=True)
class AggregatedMetrics:
    """The seven metric groups produced by Layer 1."""
    liquidity: MetricGroup
    cashflow: MetricGroup
    debt: MetricGroup
    investments: MetricGroup
    property: MetricGroup
    risk: MetricGroup
    forecast: MetricGroup

    def group(self, name: str) -> MetricGroup:
        if name not in METRIC_GROUPS:
            raise KeyError(name)
        return getattr(self, name)

    def metric(self, group: str, key: str) -> BaseMetric:
        return self.group(group)[key]

    def iter_metrics(self) -> Iterator[tuple[str, str, BaseMetric]]:
        for name in METRIC_GROUPS:
            for key, metric in self.group(name).items():
                yield name, key, metric

    def min_confidence(self) -> float:
        return min(m.confidence for _, _, m in self.iter_metrics())

    def to_dict(self) -> dict[str, Any]:
        return {name: self.group(name).to_dict() for name in METRIC_GROUPS}


# ---------------------------------------------------------------------------
# Portfolio figures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PortfolioFigures:
    """Monthly and balance-sheet totals every calculator draws on."""
    monthly_income: float
    monthly_expenses: float
    essential_expenses: float
    income_source_count: int
    liquid_assets: float
    credit_card_debt: float
    total_debt: float
    secured_debt: float
    variable_rate_debt: float
    interest_only_debt: float
    monthly_repayments: float
    property_value: float
    property_count: int
    investment_property_value: float
    annual_rental_income: float
    investment_value: float
    investment_cost_base: float
    investment_holdings: int
    investment_type_values: Mapping[str, float]
    volatile_investment_value: float
    net_worth: float
    total_assets: float
    property_lvrs: tuple[tuple[str, float], ...] = ()
    assumptions: Mapping[str, Any] = field(default_factory=dict)

    @property
    def annual_income(self) -> float:
        return self.monthly_income * 12

    @property
    def annual_expenses(self) -> float:
        return self.monthly_expenses * 12

    @property
    def monthly_surplus(self) -> float:
        return self.monthly_income - self.monthly_expenses

    @property
    def buffer_months(self) -> float:
        if self.monthly_expenses > 0:
            return self.liquid_assets / self.monthly_expenses
        return float(self.assumptions.get("emergency_buffer_months_when_no_expenses", 12))

    @property
    def lvr(self) -> float:
        if self.property_value > 0:
            return self.secured_debt * 100.0 / self.property_value
        return 0.0

    def projected_net_worth(self, years: int) -> float:
        growth = float(self.assumptions.get("annual_growth_rate", 0.05))
        annual_savings = max(0.0, self.monthly_surplus * 12)
        return float(self.net_worth * np.power(1.0 + growth, years) + annual_savings * years)

    def impact_basis(self, name: str | None) -> float:
        """Dollar amount an improvement action's impact is scaled by."""
        bases = {
            "monthly_expenses": self.monthly_expenses,
            "annual_expenses": self.annual_expenses,
            "annual_income": self.annual_income,
            "net_worth": max(0.0, self.net_worth),
            "property_value": self.property_value,
            "investment_property_value": self.investment_property_value,
            "investment_value": self.investment_value,
            "dollars": 1.0,
        }
        return bases.get(name or "", 0.0)

    @classmethod
    def from_input(cls, data: FinancialHealthInput, assumptions: Mapping[str, Any]) -> PortfolioFigures:
        snap = data.portfolio_snapshot
        liquid_types = set(assumptions.get("liquid_investment_types", ("SHARE", "ETF")))
        volatile_types = set(assumptions.get("volatile_investment_types", ("CRYPTO",)))

        cash = sum(max(0.0, a.balance) for a in snap.accounts if a.type != "CREDIT_CARD")
        credit_card_debt = sum(abs(min(0.0, a.balance)) for a in snap.accounts if a.type == "CREDIT_CARD")
        loan_debt = sum(l.principal for l in snap.loans)

        type_values: dict[str, float] = {}
        for inv in snap.investments:
            type_values[inv.type] = type_values.get(inv.type, 0.0) + inv.value

        secured = [l for l in snap.loans if l.type in _SECURED_LOAN_TYPES or l.property_id]
        investment_props = [p for p in snap.properties if p.type == "INVESTMENT"]

        property_lvrs = []
        for p in snap.properties:
            debt = p.debt
            if debt <= 0:
                debt = sum(l.principal for l in snap.loans if l.property_id == p.id)
            lvr = debt * 100.0 / p.current_value if p.current_value > 0 else 0.0
            property_lvrs.append((p.id, lvr))

        return cls(
            monthly_income=sum(i.monthly_amount for i in snap.income),
            monthly_expenses=sum(e.monthly_amount for e in snap.expenses),
            essential_expenses=sum(e.monthly_amount for e in snap.expenses if e.is_essential),
            income_source_count=len(snap.income),
            liquid_assets=cash + sum(i.value for i in snap.investments if i.type in liquid_types),
            credit_card_debt=credit_card_debt,
            total_debt=loan_debt + credit_card_debt,
            secured_debt=sum(l.principal for l in secured),
            variable_rate_debt=sum(l.principal for l in snap.loans if not l.is_fixed_rate),
            interest_only_debt=sum(l.principal for l in snap.loans if l.is_interest_only),
            monthly_repayments=sum(l.monthly_repayment for l in snap.loans),
            property_value=sum(p.current_value for p in snap.properties),
            property_count=len(snap.properties),
            investment_property_value=sum(p.current_value for p in investment_props),
            annual_rental_income=sum(p.monthly_income * 12 for p in investment_props),
            investment_value=sum(i.value for i in snap.investments),
            investment_cost_base=sum(i.cost_base for i in snap.investments),
            investment_holdings=len(snap.investments),
            investment_type_values=MappingProxyType(type_values),
            volatile_investment_value=sum(i.value for i in snap.investments if i.type in volatile_types),
            net_worth=snap.net_worth,
            total_assets=snap.total_assets,
            property_lvrs=tuple(property_lvrs),
            assumptions=MappingProxyType(dict(assumptions)),
        )


# ---------------------------------------------------------------------------
# Calculators
# ---------------------------------------------------------------------------

Calculator = Callable[[PortfolioFigures], float]

CALCULATORS: dict[tuple[str, str], Calculator] = {}


def calculator(group: str, key: str) -> Callable[[Calculator], Calculator]:
    """Register the formula for metric ``group.key``."""
    def register(fn: Calculator) -> Calculator:
        CALCULATORS[(group, key)] = fn
        return fn
    return register


def _ratio(numerator: float, denominator: float, fallback: float = 0.0, scale: float = 100.0) -> float:
    if denominator > 0:
        return numerator * scale / denominator
    return fallback


# -- liquidity --------------------------------------------------------------

@calculator("liquidity", "emergency_buffer")
def _emergency_buffer(f: PortfolioFigures) -> float:
    return f.buffer_months


@calculator("liquidity", "savings_rate")
def _savings_rate(f: PortfolioFigures) -> float:
    return _ratio(f.monthly_surplus, f.monthly_income)


@calculator("liquidity", "liquid_net_worth_ratio")
def _liquid_net_worth_ratio(f: PortfolioFigures) -> float:
    return _ratio(f.liquid_assets, f.net_worth)


@calculator("liquidity", "short_term_debt_ratio")
def _short_term_debt_ratio(f: PortfolioFigures) -> float:
    return _ratio(f.credit_card_debt, f.annual_income, scale=1.0)


# -- cashflow ---------------------------------------------------------------

@calculator("cashflow", "surplus")
def _surplus(f: PortfolioFigures) -> float:
    return f.monthly_surplus


@calculator("cashflow", "volatility")
def _volatility(f: PortfolioFigures) -> float:
    # More independent income sources -> steadier cashflow
    step = float(f.assumptions.get("income_source_volatility_step", 20))
    return max(0.0, 100.0 - f.income_source_count * step)


@calculator("cashflow", "fixed_cost_ratio")
def _fixed_cost_ratio(f: PortfolioFigures) -> float:
    return _ratio(f.essential_expenses, f.monthly_income, fallback=100.0)


@calculator("cashflow", "discretionary_sensitivity")
def _discretionary_sensitivity(f: PortfolioFigures) -> float:
    return _ratio(f.monthly_expenses - f.essential_expenses, f.monthly_expenses)


# -- debt -------------------------------------------------------------------

@calculator("debt", "lvr")
def _lvr(f: PortfolioFigures) -> float:
    return f.lvr


@calculator("debt", "dti")
def _dti(f: PortfolioFigures) -> float:
    return _ratio(f.total_debt, f.annual_income, scale=1.0)


@calculator("debt", "repayment_load")
def _repayment_load(f: PortfolioFigures) -> float:
    return _ratio(f.monthly_repayments, f.monthly_income)


@calculator("debt", "interest_risk_exposure")
def _interest_risk_exposure(f: PortfolioFigures) -> float:
    return _ratio(f.variable_rate_debt, f.total_debt)


@calculator("debt", "interest_only_risk")
def _interest_only_risk(f: PortfolioFigures) -> float:
    return _ratio(f.interest_only_debt, f.total_debt)


# -- investments ------------------------------------------------------------

@calculator("investments", "diversification_index")
def _diversification_index(f: PortfolioFigures) -> float:
    return min(100.0, f.investment_holdings * 10.0 + len(f.investment_type_values) * 20.0)


@calculator("investments", "asset_class_concentration")
def _asset_class_concentration(f: PortfolioFigures) -> float:
    largest = max(f.investment_type_values.values(), default=0.0)
    return _ratio(largest, f.investment_value)


@calculator("investments", "performance_vs_benchmark")
def _performance_vs_benchmark(f: PortfolioFigures) -> float:
    return _ratio(f.investment_value - f.investment_cost_base, f.investment_cost_base)


@calculator("investments", "cost_efficiency")
def _cost_efficiency(f: PortfolioFigures) -> float:
    # No fee data source; assumed
    return float(f.assumptions.get("cost_efficiency_score", 80))


@calculator("investments", "risk_adjusted_return")
def _risk_adjusted_return(f: PortfolioFigures) -> float:
    factor = float(f.assumptions.get("risk_adjusted_return_factor", 0.7))
    return max(0.0, _performance_vs_benchmark(f) * factor)


# -- property ---------------------------------------------------------------

@calculator("property", "valuation_health")
def _valuation_health(f: PortfolioFigures) -> float:
    return _ratio(f.property_value - f.secured_debt, f.property_value, fallback=100.0)


@calculator("property", "rental_yield_performance")
def _rental_yield(f: PortfolioFigures) -> float:
    return _ratio(f.annual_rental_income, f.investment_property_value)


@calculator("property", "lvr_stability")
def _lvr_stability(f: PortfolioFigures) -> float:
    return max(0.0, 100.0 - f.lvr)


@calculator("property", "vacancy_risk_analysis")
def _vacancy_risk(f: PortfolioFigures) -> float:
    if f.property_count == 0:
        return 0.0
    return max(10.0, 50.0 - f.property_count * 10.0)


@calculator("property", "property_concentration")
def _property_concentration(f: PortfolioFigures) -> float:
    return _ratio(f.property_value, f.total_assets)


# -- risk -------------------------------------------------------------------

@calculator("risk", "buffering")
def _buffering(f: PortfolioFigures) -> float:
    target = float(f.assumptions.get("buffer_target_months", 3))
    return min(100.0, _ratio(f.buffer_months, target))


@calculator("risk", "insurance_gaps")
def _insurance_gaps(f: PortfolioFigures) -> float:
    # No insurance data source; assumed moderate cover
    return float(f.assumptions.get("insurance_coverage_score", 70))


@calculator("risk", "volatility_exposure")
def _volatility_exposure(f: PortfolioFigures) -> float:
    return _ratio(f.volatile_investment_value, f.investment_value)


@calculator("risk", "emergency_runway")
def _emergency_runway(f: PortfolioFigures) -> float:
    return f.buffer_months


# -- forecast ---------------------------------------------------------------

@calculator("forecast", "retirement_runway")
def _retirement_runway(f: PortfolioFigures) -> float:
    fallback = float(f.assumptions.get("retirement_runway_years_when_no_expenses", 25))
    return _ratio(f.projected_net_worth(20), f.annual_expenses, fallback=fallback, scale=1.0)


@calculator("forecast", "sustainable_withdrawal_rate")
def _withdrawal_coverage(f: PortfolioFigures) -> float:
    rate = float(f.assumptions.get("safe_withdrawal_rate", 0.04))
    fallback = float(f.assumptions.get("withdrawal_coverage_when_no_expenses", 100))
    return _ratio(f.net_worth * rate, f.annual_expenses, fallback=fallback)


@calculator("forecast", "net_worth_5_year")
def _net_worth_5(f: PortfolioFigures) -> float:
    return f.projected_net_worth(5)


@calculator("forecast", "net_worth_10_year")
def _net_worth_10(f: PortfolioFigures) -> float:
    return f.projected_net_worth(10)


@calculator("forecast", "net_worth_20_year")
def _net_worth_20(f: PortfolioFigures) -> float:
    return f.projected_net_worth(20)


# ---------------------------------------------------------------------------
# Benchmarks
# ---------------------------------------------------------------------------


def resolve_benchmark(
    definition: MetricDefinition,
    figures: PortfolioFigures,
    goals: UserGoals | None = None,
) -> float:
    """Benchmark for *definition*, adjusted for the user's goals.

    ``goal_override`` names a ``UserGoals`` field that replaces the
    benchmark when positive; ``benchmark_by_risk_tolerance`` picks a
    benchmark by stated tolerance; ``benchmark_basis: net_worth`` makes
    the configured benchmark a multiple of current net worth.
    """
    benchmark = definition.benchmark
    if definition.benchmark_basis == "net_worth":
        benchmark = figures.net_worth * benchmark

    if goals is None:
        return benchmark

    if definition.benchmark_by_risk_tolerance:
        benchmark = definition.benchmark_by_risk_tolerance.get(goals.risk_tolerance, benchmark)
    if definition.goal_override:
        goal = getattr(goals, definition.goal_override, None)
        if goal is not None and goal > 0:
            benchmark = float(goal)
    return benchmark


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _finite(value: float) -> float:
    value = float(value)
    return value if math.isfinite(value) else 0.0


class MetricAggregator:
    """Layer 1: snapshot -> ``AggregatedMetrics``.

    Parameters
    ----------
    config:
        Engine tables; defaults to the packaged ``health_engine.yml``.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config if config is not None else EngineConfig.load()

    def figures(self, data: FinancialHealthInput) -> PortfolioFigures:
        return PortfolioFigures.from_input(data, self.config.assumptions)

    def aggregate(self, data: FinancialHealthInput) -> AggregatedMetrics:
        figures = self.figures(data)
        groups: dict[str, MetricGroup] = {}

        for category in self.config.categories:
            metrics: dict[str, BaseMetric] = {}
            for definition in category.metrics:
                value = _finite(CALCULATORS[(category.group, definition.key)](figures))
                benchmark = _finite(resolve_benchmark(definition, figures, data.user_goals))
                metric = BaseMetric.build(
                    value, benchmark, definition.higher_is_better, definition.confidence,
                )
                metrics[definition.key] = metric
                logger.debug(
                    "%s.%s = %.4g (benchmark %.4g) -> score %.1f %s",
                    category.group, definition.key, value, benchmark,
                    metric.score, metric.risk_band.value,
                )
            groups[category.group] = MetricGroup(category.group, metrics)

        result = AggregatedMetrics(**groups)
        logger.info(
            "Aggregated %d metrics for user %s",
            sum(len(g) for g in groups.values()), data.user_id,
        )
        return result


def aggregate_metrics(
    data: FinancialHealthInput,
    config: EngineConfig | None = None,
) -> AggregatedMetrics:
    """Convenience wrapper around ``MetricAggregator(config).aggregate``."""
    return MetricAggregator(config).aggregate(data)
