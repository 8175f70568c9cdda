"""Financial health engine -- household portfolio scoring.

Reduces a user's financial position into a single 0-100 health score,
rule-triggered risk signals and ranked improvement actions, with an
explicit confidence and evidence contract.
"""

from finhealth.models.financial_health import (
    FinancialHealthReport,
    generate_health_report,
    quick_health_check,
)
from finhealth.inputs import FinancialHealthInput
from finhealth.quality.input_validation import PreconditionViolation

__version__ = "0.1.0"

__all__ = [
    "FinancialHealthInput",
    "FinancialHealthReport",
    "PreconditionViolation",
    "generate_health_report",
    "quick_health_check",
]
