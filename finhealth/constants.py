"""Global constants and enumerations for the financial health engine."""

from enum import Enum

# ---------------------------------------------------------------------------
# Numerical safety
# ---------------------------------------------------------------------------
EPSILON: float = 1e-9

# ---------------------------------------------------------------------------
# Score range
# ---------------------------------------------------------------------------
SCORE_MIN: float = 0.0
SCORE_MAX: float = 100.0


class RiskBand(str, Enum):
    """Discretisation of a 0-100 score."""
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    MODERATE = "MODERATE"
    CONCERNING = "CONCERNING"
    CRITICAL = "CRITICAL"


# Lower bound (inclusive) of each band, best first.
RISK_BAND_CUT_POINTS: tuple[tuple[float, RiskBand], ...] = (
    (80.0, RiskBand.EXCELLENT),
    (60.0, RiskBand.GOOD),
    (40.0, RiskBand.MODERATE),
    (20.0, RiskBand.CONCERNING),
)


class RiskSeverity(str, Enum):
    """Severity of a risk signal."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


SEVERITY_ORDER: dict[RiskSeverity, int] = {
    RiskSeverity.CRITICAL: 0,
    RiskSeverity.HIGH: 1,
    RiskSeverity.MEDIUM: 2,
    RiskSeverity.LOW: 3,
}

SEVERITY_TIER: dict[RiskSeverity, int] = {
    RiskSeverity.CRITICAL: 5,
    RiskSeverity.HIGH: 4,
    RiskSeverity.MEDIUM: 3,
    RiskSeverity.LOW: 2,
}


class HealthCategoryName(str, Enum):
    """The seven weighted groupings composing the final score."""
    LIQUIDITY = "LIQUIDITY"
    CASHFLOW = "CASHFLOW"
    DEBT = "DEBT"
    INVESTMENTS = "INVESTMENTS"
    PROPERTY = "PROPERTY"
    RISK_EXPOSURE = "RISK_EXPOSURE"
    LONG_TERM_OUTLOOK = "LONG_TERM_OUTLOOK"


# Fixed order used for tie-breaking and report layout.
CATEGORY_ORDER: tuple[HealthCategoryName, ...] = tuple(HealthCategoryName)

# Metric groups of AggregatedMetrics, in category order.
METRIC_GROUPS: tuple[str, ...] = (
    "liquidity",
    "cashflow",
    "debt",
    "investments",
    "property",
    "risk",
    "forecast",
)


class RiskSignalCategory(str, Enum):
    """Category of a rule-triggered risk signal."""
    SPENDING = "SPENDING"
    BORROWING = "BORROWING"
    LIQUIDITY = "LIQUIDITY"
    CONCENTRATION = "CONCENTRATION"
    MARKET = "MARKET"
    LONGEVITY = "LONGEVITY"


class ImprovementDifficulty(str, Enum):
    EASY = "EASY"
    MODERATE = "MODERATE"
    HARD = "HARD"


class TrendDirection(str, Enum):
    IMPROVING = "IMPROVING"
    STABLE = "STABLE"
    DECLINING = "DECLINING"


class SignalTrend(str, Enum):
    IMPROVING = "IMPROVING"
    STABLE = "STABLE"
    WORSENING = "WORSENING"


class InsightSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class InputSourceType(str, Enum):
    """Kinds of input recorded in the evidence pack."""
    SNAPSHOT = "SNAPSHOT"
    INSIGHT = "INSIGHT"
    STRATEGY = "STRATEGY"
    LINKAGE = "LINKAGE"
    USER_GOAL = "USER_GOAL"


class RiskTolerance(str, Enum):
    CONSERVATIVE = "CONSERVATIVE"
    MODERATE = "MODERATE"
    AGGRESSIVE = "AGGRESSIVE"


class InvestmentStyle(str, Enum):
    PASSIVE = "PASSIVE"
    BALANCED = "BALANCED"
    ACTIVE = "ACTIVE"


# Name of the YAML file holding the engine tables.
ENGINE_CONFIG_NAME: str = "health_engine"
