"""Type definitions for the payroll calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

ZERO = Decimal("0")


class CalcMethod(str, Enum):
    """How an allowance or deduction amount is resolved."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"


@dataclass(frozen=True)
class TaxBracket:
    """Monthly income tax bracket in the tax reference currency.

    The whole gross amount is taxed at ``rate`` and ``deduction`` is
    subtracted afterwards; brackets are not accumulated.
    """

    min_amount: Decimal
    max_amount: Decimal | None  # None = no upper limit
    rate: Decimal  # As decimal, e.g., 0.25 for 25%
    deduction: Decimal = ZERO

    def contains(self, amount: Decimal) -> bool:
        return amount >= self.min_amount and (
            self.max_amount is None or amount <= self.max_amount
        )


MONTHLY_TAX_BRACKETS: tuple[TaxBracket, ...] = (
    TaxBracket(Decimal("0"), Decimal("100.00"), Decimal("0.00"), Decimal("0")),
    TaxBracket(Decimal("100.01"), Decimal("300.00"), Decimal("0.20"), Decimal("20.00")),
    TaxBracket(Decimal("300.01"), Decimal("1000.00"), Decimal("0.25"), Decimal("35.00")),
    TaxBracket(Decimal("1000.01"), Decimal("2000.00"), Decimal("0.30"), Decimal("85.00")),
    TaxBracket(Decimal("2000.01"), Decimal("3000.00"), Decimal("0.35"), Decimal("185.00")),
    TaxBracket(Decimal("3000.01"), None, Decimal("0.40"), Decimal("335.00")),
)

LEVY_RATE = Decimal("0.03")
SOCIAL_CONTRIBUTION_RATE = Decimal("0.03")

SUPPORTED_WORK_WEEKS = (5, 6, 7)


@dataclass(frozen=True)
class CompanyPolicy:
    """Per-company statutory switches and work week, read once per run."""

    enable_income_tax: bool = True
    enable_levy: bool = True
    enable_social_contribution: bool = True
    work_week_days: int = 5

    def __post_init__(self) -> None:
        if self.work_week_days not in SUPPORTED_WORK_WEEKS:
            raise ValueError(
                f"work_week_days must be one of {SUPPORTED_WORK_WEEKS}, "
                f"got {self.work_week_days}"
            )


@dataclass(frozen=True)
class StatutoryDeductions:
    """Statutory deductions in the employee's pay currency."""

    income_tax: Decimal = ZERO
    levy: Decimal = ZERO
    social_contribution: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.income_tax + self.levy + self.social_contribution


@dataclass
class EmployeeCalculationContext:
    """Context for calculating a single employee's payslip."""

    employee_id: UUID
    company_id: UUID
    payroll_period_id: UUID
    pay_currency: str
    base_currency: str
    basic_salary: Decimal
    period_start: date
    period_end: date
    policy: CompanyPolicy = field(default_factory=CompanyPolicy)


@dataclass
class CalculationResult:
    """Every figure stored on a payslip, before persistence."""

    employee_id: UUID
    pay_currency: str
    exchange_rate: Decimal

    basic_salary: Decimal
    allowances: Decimal
    overtime: Decimal
    bonus: Decimal
    total_earnings: Decimal

    statutory: StatutoryDeductions
    other_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    total_earnings_base: Decimal
    total_deductions_base: Decimal
    net_pay_base: Decimal

    working_days: int
    days_worked: int

    @property
    def days_absent(self) -> int:
        return self.working_days - self.days_worked
