"""Payroll calculation engine - per-employee payslip figures."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.calculators.currency import CurrencyConverter
from hr_payroll.calculators.line_builder import LineItemBuilder
from hr_payroll.calculators.tax_calculator import TaxCalculator
from hr_payroll.calculators.types import (
    ZERO,
    CalcMethod,
    CalculationResult,
    EmployeeCalculationContext,
)
from hr_payroll.calculators.working_days import count_working_days
from hr_payroll.models import Allowance, Currency, Deduction

logger = logging.getLogger(__name__)


class CalculationError(Exception):
    """Raised when computed payslip figures break an invariant."""

    def __init__(self, employee_id: UUID, errors: list[str]):
        self.employee_id = employee_id
        self.errors = errors
        super().__init__(f"Invalid payslip for employee {employee_id}: {'; '.join(errors)}")


@dataclass(frozen=True)
class PayComponent:
    """A recurring allowance or deduction as the engine sees it."""

    name: str
    currency: str
    calc_method: CalcMethod
    amount: Decimal
    percentage: Decimal | None


class PayrollEngine:
    """Computes one employee's payslip figures.

    Calculation pipeline (stable order per employee):
    1) Resolve the pay -> base exchange rate
    2) Sum recurring allowances in the pay currency
    3) Total earnings (overtime and bonus are placeholders)
    4) Statutory deductions on total earnings, per company policy
    5) Other (non-statutory) recurring deductions
    6) Totals, net pay and base-currency mirrors
    7) Working days for the period

    Percentage allowances apply to basic salary; percentage deductions
    apply to total earnings. Fixed components are converted from their
    own currency into the pay currency.
    """

    def __init__(
        self,
        session: AsyncSession,
        converter: CurrencyConverter,
        tax_calculator: TaxCalculator,
    ):
        self.session = session
        self.converter = converter
        self.tax_calculator = tax_calculator

    async def calculate(self, ctx: EmployeeCalculationContext) -> CalculationResult:
        """Calculate payslip figures for one employee.

        Raises:
            RateUnavailableError: If any conversion has no rate
            CalculationError: If the figures fail invariant validation
        """
        exchange_rate = LineItemBuilder.round_rate(
            await self.converter.rate(ctx.pay_currency, ctx.base_currency)
        )

        basic_salary = LineItemBuilder.round_to_cents(ctx.basic_salary)
        allowances = await self._sum_allowances(ctx, basic_salary)
        overtime = self._overtime(ctx)
        bonus = self._bonus(ctx)
        total_earnings = LineItemBuilder.calculate_total_earnings(
            basic_salary, allowances, overtime, bonus
        )

        statutory = await self.tax_calculator.statutory_deductions(
            total_earnings, ctx.pay_currency, ctx.policy
        )
        other_deductions = await self._sum_other_deductions(ctx, total_earnings)
        total_deductions = LineItemBuilder.calculate_total_deductions(statutory, other_deductions)
        net_pay = total_earnings - total_deductions

        working_days = count_working_days(
            ctx.period_start, ctx.period_end, ctx.policy.work_week_days
        )

        result = CalculationResult(
            employee_id=ctx.employee_id,
            pay_currency=ctx.pay_currency,
            exchange_rate=exchange_rate,
            basic_salary=basic_salary,
            allowances=allowances,
            overtime=overtime,
            bonus=bonus,
            total_earnings=total_earnings,
            statutory=statutory,
            other_deductions=other_deductions,
            total_deductions=total_deductions,
            net_pay=net_pay,
            total_earnings_base=LineItemBuilder.to_base(total_earnings, exchange_rate),
            total_deductions_base=LineItemBuilder.to_base(total_deductions, exchange_rate),
            net_pay_base=LineItemBuilder.to_base(net_pay, exchange_rate),
            working_days=working_days,
            days_worked=self._days_worked(ctx, working_days),
        )

        errors = LineItemBuilder.validate_totals(result)
        if errors:
            raise CalculationError(ctx.employee_id, errors)

        logger.debug(
            "Employee %s: earnings=%s deductions=%s net=%s %s",
            ctx.employee_id,
            total_earnings,
            total_deductions,
            net_pay,
            ctx.pay_currency,
        )
        return result

    async def _sum_allowances(
        self,
        ctx: EmployeeCalculationContext,
        basic_salary: Decimal,
    ) -> Decimal:
        total = ZERO
        for component in await self._load_components(Allowance, ctx):
            total += await self._resolve(component, ctx.pay_currency, basic_salary)
        return total

    async def _sum_other_deductions(
        self,
        ctx: EmployeeCalculationContext,
        total_earnings: Decimal,
    ) -> Decimal:
        total = ZERO
        for component in await self._load_components(Deduction, ctx):
            total += await self._resolve(component, ctx.pay_currency, total_earnings)
        return total

    async def _resolve(
        self,
        component: PayComponent,
        pay_currency: str,
        base: Decimal,
    ) -> Decimal:
        amount = LineItemBuilder.resolve_component_amount(
            component.calc_method, component.amount, component.percentage, base
        )
        if component.calc_method is CalcMethod.PERCENTAGE:
            return amount
        return LineItemBuilder.round_to_cents(
            await self.converter.convert(amount, component.currency, pay_currency)
        )

    async def _load_components(
        self,
        model: type[Allowance] | type[Deduction],
        ctx: EmployeeCalculationContext,
    ) -> list[PayComponent]:
        """Load recurring, active components effective during the period."""
        stmt = (
            select(model, Currency.code)
            .join(Currency, model.currency_id == Currency.currency_id)
            .where(
                model.employee_id == ctx.employee_id,
                model.is_recurring.is_(True),
                model.is_active.is_(True),
                or_(model.start_date.is_(None), model.start_date <= ctx.period_end),
                or_(model.end_date.is_(None), model.end_date >= ctx.period_start),
            )
        )
        if model is Deduction:
            stmt = stmt.where(Deduction.is_statutory.is_(False))

        result = await self.session.execute(stmt)
        return [
            PayComponent(
                name=row.name,
                currency=code,
                calc_method=CalcMethod(row.calc_method),
                amount=row.amount,
                percentage=row.percentage,
            )
            for row, code in result.all()
        ]

    def _overtime(self, ctx: EmployeeCalculationContext) -> Decimal:
        # No timesheet source; overtime is always zero.
        return ZERO

    def _bonus(self, ctx: EmployeeCalculationContext) -> Decimal:
        return ZERO

    def _days_worked(self, ctx: EmployeeCalculationContext, working_days: int) -> int:
        # Full attendance until attendance records exist.
        return working_days
