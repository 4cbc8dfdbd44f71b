"""Payroll services."""

from hr_payroll.services.payroll_processor import (
    CurrencyBreakdown,
    DuplicatePayslipError,
    PayrollProcessor,
    PayrollSummary,
    PeriodExistsError,
    PeriodNotFoundError,
    ProcessingResult,
)
from hr_payroll.services.state_machine import (
    InvalidStateError,
    PayrollPeriodStateMachine,
    PeriodStatus,
)

__all__ = [
    "PayrollPeriodStateMachine",
    "PeriodStatus",
    "InvalidStateError",
    "PayrollProcessor",
    "ProcessingResult",
    "PayrollSummary",
    "CurrencyBreakdown",
    "DuplicatePayslipError",
    "PeriodExistsError",
    "PeriodNotFoundError",
]
