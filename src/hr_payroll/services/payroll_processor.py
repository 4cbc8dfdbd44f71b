"""Payroll processor - period lifecycle and batch payslip generation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hr_payroll.calculators.currency import (
    CompanyNotFoundError,
    CurrencyConverter,
    RateUnavailableError,
)
from hr_payroll.calculators.engine import CalculationError, PayrollEngine
from hr_payroll.calculators.line_builder import LineItemBuilder
from hr_payroll.calculators.tax_calculator import TaxCalculator
from hr_payroll.calculators.types import (
    ZERO,
    CalculationResult,
    CompanyPolicy,
    EmployeeCalculationContext,
)
from hr_payroll.calculators.working_days import month_bounds
from hr_payroll.database import PersistenceError, persistence_errors
from hr_payroll.models import Company, Currency, Employee, PayrollPeriod, Payslip
from hr_payroll.services.state_machine import (
    InvalidStateError,
    PayrollPeriodStateMachine,
    PeriodStatus,
)

logger = logging.getLogger(__name__)


class PeriodNotFoundError(Exception):
    """Raised when a payroll period does not exist (or belongs to another company)."""

    def __init__(self, payroll_period_id: UUID):
        self.payroll_period_id = payroll_period_id
        super().__init__(f"Payroll period {payroll_period_id} not found")


class PeriodExistsError(Exception):
    """Raised when a company already has a period for the month."""

    def __init__(self, company_id: UUID, year: int, month: int):
        self.company_id = company_id
        self.year = year
        self.month = month
        super().__init__(f"Company {company_id} already has a payroll period for {year}-{month:02d}")


class DuplicatePayslipError(Exception):
    """Raised when a payslip already exists for (employee, period)."""

    def __init__(self, employee_id: UUID, payroll_period_id: UUID):
        self.employee_id = employee_id
        self.payroll_period_id = payroll_period_id
        super().__init__(
            f"Payslip already exists for employee {employee_id} in period {payroll_period_id}"
        )


@dataclass
class ProcessingResult:
    """Outcome of one batch run over a period."""

    payroll_period_id: UUID
    status: str
    succeeded: list[UUID] = field(default_factory=list)
    skipped: list[tuple[UUID, str]] = field(default_factory=list)
    failed: list[tuple[UUID, str]] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return len(self.failed) > 0


@dataclass
class CurrencyBreakdown:
    """Per pay-currency totals, in that currency."""

    employee_count: int = 0
    total_earnings: Decimal = ZERO
    total_net_pay: Decimal = ZERO


@dataclass
class PayrollSummary:
    """Period totals in the company's base currency."""

    payroll_period_id: UUID
    status: str
    base_currency: str
    employee_count: int = 0
    total_earnings: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_net_pay: Decimal = ZERO
    total_income_tax: Decimal = ZERO
    total_social_contribution: Decimal = ZERO
    currency_breakdown: dict[str, CurrencyBreakdown] = field(default_factory=dict)


@dataclass(frozen=True)
class _EmployeeSnapshot:
    employee_id: UUID
    currency_id: UUID
    pay_currency: str
    basic_salary: Decimal


@dataclass(frozen=True)
class _RunPlan:
    """Everything the batch loop needs, captured before any per-employee rollback."""

    payroll_period_id: UUID
    company_id: UUID
    period_start: date
    period_end: date
    base_currency: str
    policy: CompanyPolicy
    employees: list[_EmployeeSnapshot]


class PayrollProcessor:
    """Service for running payroll periods.

    Operations:
    - create_period: Open a draft period for a calendar month
    - process: draft → processing → processed, one payslip per eligible employee
    - resume: Finish a period left in processing by an interrupted run
    - approve: processed → approved
    - summary: Base-currency totals and per-currency breakdown

    Every operation commits its own work. Status changes are conditional
    UPDATEs on the expected current status, so two callers racing on the
    same period cannot both win.
    """

    def __init__(
        self,
        session: AsyncSession,
        converter: CurrencyConverter,
        tax_calculator: TaxCalculator | None = None,
        engine: PayrollEngine | None = None,
        reference_currency: str = "USD",
    ):
        self.session = session
        self.converter = converter
        self.tax_calculator = tax_calculator or TaxCalculator(converter, reference_currency)
        self.engine = engine or PayrollEngine(session, converter, self.tax_calculator)

    async def get_period(
        self,
        payroll_period_id: UUID,
        company_id: UUID | None = None,
    ) -> PayrollPeriod | None:
        """Load a period, optionally scoped to a company."""
        stmt = select(PayrollPeriod).where(PayrollPeriod.payroll_period_id == payroll_period_id)
        if company_id is not None:
            stmt = stmt.where(PayrollPeriod.company_id == company_id)
        with persistence_errors("load period"):
            result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_period(
        self,
        company_id: UUID,
        year: int,
        month: int,
        description: str | None = None,
    ) -> PayrollPeriod:
        """Open a draft period spanning the calendar month.

        Raises:
            PeriodExistsError: If the company already has this month
            CompanyNotFoundError: If the company does not exist
            ValueError: If month is out of range
        """
        start_date, end_date = month_bounds(year, month)

        with persistence_errors("create period"):
            company = await self.session.get(Company, company_id)
            existing = await self.session.execute(
                select(PayrollPeriod.payroll_period_id).where(
                    PayrollPeriod.company_id == company_id,
                    PayrollPeriod.year == year,
                    PayrollPeriod.month == month,
                )
            )
        if company is None:
            raise CompanyNotFoundError(company_id)
        if existing.scalar_one_or_none() is not None:
            raise PeriodExistsError(company_id, year, month)

        period = PayrollPeriod(
            company_id=company_id,
            year=year,
            month=month,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.DRAFT.value,
            description=description or f"Payroll for {start_date:%B %Y}",
        )
        self.session.add(period)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise PeriodExistsError(company_id, year, month) from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("create period", exc) from exc
        await self.session.refresh(period)

        logger.info(
            "Created payroll period %s for company %s (%d-%02d)",
            period.payroll_period_id,
            company_id,
            year,
            month,
        )
        return period

    async def process(
        self,
        payroll_period_id: UUID,
        company_id: UUID | None = None,
    ) -> ProcessingResult:
        """Generate payslips for every eligible employee of a draft period.

        Per-employee failures are recorded in the result and do not stop the
        batch; the period still ends in processed.

        Raises:
            PeriodNotFoundError: If the period does not exist
            InvalidStateError: If the period is not in draft
            PersistenceError: If a period-level write fails
        """
        await self._require_period(payroll_period_id, company_id)

        await self._transition(payroll_period_id, PeriodStatus.DRAFT, PeriodStatus.PROCESSING)
        await self._commit("mark period processing")
        logger.info("Processing payroll period %s", payroll_period_id)

        return await self._run(payroll_period_id)

    async def resume(
        self,
        payroll_period_id: UUID,
        company_id: UUID | None = None,
    ) -> ProcessingResult:
        """Re-run the employee loop for a period stuck in processing.

        Employees that already have a payslip are skipped.

        Raises:
            PeriodNotFoundError: If the period does not exist
            InvalidStateError: If the period is not in processing
        """
        period = await self._require_period(payroll_period_id, company_id)
        if not PayrollPeriodStateMachine.can_resume(period.status):
            raise InvalidStateError(
                period.status,
                PeriodStatus.PROCESSED,
                "only a period left in processing can be resumed",
            )

        logger.info("Resuming payroll period %s", payroll_period_id)
        return await self._run(payroll_period_id)

    async def approve(
        self,
        payroll_period_id: UUID,
        approver_id: UUID,
        company_id: UUID | None = None,
    ) -> PayrollPeriod:
        """Approve a processed period and freeze its payslips.

        Raises:
            PeriodNotFoundError: If the period does not exist
            InvalidStateError: If the period is not processed
        """
        period = await self._require_period(payroll_period_id, company_id)
        errors = PayrollPeriodStateMachine.validate_period_for_transition(
            period, PeriodStatus.APPROVED
        )
        if errors:
            raise InvalidStateError(period.status, PeriodStatus.APPROVED, "; ".join(errors))

        approved_at = datetime.now(timezone.utc)
        await self._transition(
            payroll_period_id,
            PeriodStatus.PROCESSED,
            PeriodStatus.APPROVED,
            approved_at=approved_at,
            approved_by=approver_id,
        )
        with persistence_errors("approve payslips"):
            await self.session.execute(
                update(Payslip)
                .where(
                    Payslip.payroll_period_id == payroll_period_id,
                    Payslip.status == "generated",
                )
                .values(status="approved")
            )
        await self._commit("approve period")
        await self.session.refresh(period)

        logger.info("Payroll period %s approved by %s", payroll_period_id, approver_id)
        return period

    async def summary(
        self,
        payroll_period_id: UUID,
        company_id: UUID | None = None,
    ) -> PayrollSummary:
        """Aggregate a period's payslips.

        Base-currency totals come from the stored *_base columns; income tax
        and social contribution are mirrored line by line at each payslip's
        frozen exchange rate.
        """
        period = await self._require_period(payroll_period_id, company_id)
        base_code = await self._base_currency_code(period.company_id)

        with persistence_errors("summarise period"):
            result = await self.session.execute(
                select(Payslip, Currency.code)
                .join(Currency, Payslip.currency_id == Currency.currency_id)
                .where(Payslip.payroll_period_id == payroll_period_id)
            )

        summary = PayrollSummary(
            payroll_period_id=payroll_period_id,
            status=period.status,
            base_currency=base_code,
        )
        for payslip, code in result.all():
            summary.employee_count += 1
            summary.total_earnings += payslip.total_earnings_base
            summary.total_deductions += payslip.total_deductions_base
            summary.total_net_pay += payslip.net_pay_base
            summary.total_income_tax += LineItemBuilder.to_base(
                payslip.income_tax, payslip.exchange_rate
            )
            summary.total_social_contribution += LineItemBuilder.to_base(
                payslip.social_contribution, payslip.exchange_rate
            )

            breakdown = summary.currency_breakdown.setdefault(code, CurrencyBreakdown())
            breakdown.employee_count += 1
            breakdown.total_earnings += payslip.total_earnings
            breakdown.total_net_pay += payslip.net_pay

        return summary

    async def list_payslips(
        self,
        payroll_period_id: UUID,
        company_id: UUID | None = None,
    ) -> list[Payslip]:
        """Payslips of a period ordered by employee number."""
        await self._require_period(payroll_period_id, company_id)
        with persistence_errors("list payslips"):
            result = await self.session.execute(
                select(Payslip)
                .join(Employee, Payslip.employee_id == Employee.employee_id)
                .where(Payslip.payroll_period_id == payroll_period_id)
                .order_by(Employee.employee_number)
            )
        return list(result.scalars().all())

    async def _run(self, payroll_period_id: UUID) -> ProcessingResult:
        plan = await self._plan(payroll_period_id)
        result = ProcessingResult(
            payroll_period_id=payroll_period_id,
            status=PeriodStatus.PROCESSING.value,
        )

        for employee in plan.employees:
            try:
                await self._process_employee(plan, employee)
            except DuplicatePayslipError as exc:
                logger.warning("Skipping employee %s: %s", employee.employee_id, exc)
                result.skipped.append((employee.employee_id, str(exc)))
            except (
                RateUnavailableError,
                CalculationError,
                PersistenceError,
                SQLAlchemyError,
                ValueError,
            ) as exc:
                await self.session.rollback()
                logger.error(
                    "Failed to process employee %s in period %s: %s",
                    employee.employee_id,
                    payroll_period_id,
                    exc,
                )
                result.failed.append((employee.employee_id, str(exc)))
            else:
                result.succeeded.append(employee.employee_id)

        await self._transition(
            payroll_period_id,
            PeriodStatus.PROCESSING,
            PeriodStatus.PROCESSED,
            processed_at=datetime.now(timezone.utc),
        )
        await self._commit("mark period processed")
        result.status = PeriodStatus.PROCESSED.value

        logger.info(
            "Payroll period %s processed: %d succeeded, %d skipped, %d failed",
            payroll_period_id,
            len(result.succeeded),
            len(result.skipped),
            len(result.failed),
        )
        return result

    async def _plan(self, payroll_period_id: UUID) -> _RunPlan:
        period = await self._require_period(payroll_period_id)
        with persistence_errors("load company policy"):
            company = await self.session.get(
                Company,
                period.company_id,
                options=[selectinload(Company.settings), selectinload(Company.base_currency)],
                populate_existing=True,
            )
        if company is None:
            raise CompanyNotFoundError(period.company_id)

        with persistence_errors("load employees"):
            rows = await self.session.execute(
                select(Employee, Currency.code)
                .join(Currency, Employee.currency_id == Currency.currency_id)
                .where(
                    Employee.company_id == company.company_id,
                    Employee.is_active.is_(True),
                    Employee.employment_status == "active",
                )
                .order_by(Employee.employee_number)
            )
        employees = [
            _EmployeeSnapshot(
                employee_id=employee.employee_id,
                currency_id=employee.currency_id,
                pay_currency=code,
                basic_salary=employee.basic_salary,
            )
            for employee, code in rows.all()
        ]

        return _RunPlan(
            payroll_period_id=period.payroll_period_id,
            company_id=company.company_id,
            period_start=period.start_date,
            period_end=period.end_date,
            base_currency=company.base_currency.code,
            policy=self._policy(company),
            employees=employees,
        )

    @staticmethod
    def _policy(company: Company) -> CompanyPolicy:
        settings = company.settings
        if settings is None:
            return CompanyPolicy(work_week_days=company.work_week_days or 5)
        return CompanyPolicy(
            enable_income_tax=settings.enable_income_tax,
            enable_levy=settings.enable_levy,
            enable_social_contribution=settings.enable_social_contribution,
            work_week_days=company.work_week_days or 5,
        )

    async def _process_employee(self, plan: _RunPlan, employee: _EmployeeSnapshot) -> None:
        if await self._payslip_exists(employee.employee_id, plan.payroll_period_id):
            raise DuplicatePayslipError(employee.employee_id, plan.payroll_period_id)

        ctx = EmployeeCalculationContext(
            employee_id=employee.employee_id,
            company_id=plan.company_id,
            payroll_period_id=plan.payroll_period_id,
            pay_currency=employee.pay_currency,
            base_currency=plan.base_currency,
            basic_salary=employee.basic_salary,
            period_start=plan.period_start,
            period_end=plan.period_end,
            policy=plan.policy,
        )
        calc = await self.engine.calculate(ctx)

        self.session.add(self._build_payslip(plan, employee, calc))
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            if await self._payslip_exists(employee.employee_id, plan.payroll_period_id):
                raise DuplicatePayslipError(employee.employee_id, plan.payroll_period_id) from exc
            raise PersistenceError("insert payslip", exc) from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("insert payslip", exc) from exc

    @staticmethod
    def _build_payslip(
        plan: _RunPlan,
        employee: _EmployeeSnapshot,
        calc: CalculationResult,
    ) -> Payslip:
        return Payslip(
            company_id=plan.company_id,
            employee_id=employee.employee_id,
            payroll_period_id=plan.payroll_period_id,
            currency_id=employee.currency_id,
            exchange_rate=calc.exchange_rate,
            basic_salary=calc.basic_salary,
            allowances=calc.allowances,
            overtime=calc.overtime,
            bonus=calc.bonus,
            total_earnings=calc.total_earnings,
            income_tax=calc.statutory.income_tax,
            levy=calc.statutory.levy,
            social_contribution=calc.statutory.social_contribution,
            other_deductions=calc.other_deductions,
            total_deductions=calc.total_deductions,
            net_pay=calc.net_pay,
            total_earnings_base=calc.total_earnings_base,
            total_deductions_base=calc.total_deductions_base,
            net_pay_base=calc.net_pay_base,
            working_days=calc.working_days,
            days_worked=calc.days_worked,
            days_absent=calc.days_absent,
            status="generated",
        )

    async def _payslip_exists(self, employee_id: UUID, payroll_period_id: UUID) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(Payslip)
            .where(
                Payslip.employee_id == employee_id,
                Payslip.payroll_period_id == payroll_period_id,
            )
        )
        return result.scalar_one() > 0

    async def _require_period(
        self,
        payroll_period_id: UUID,
        company_id: UUID | None = None,
    ) -> PayrollPeriod:
        period = await self.get_period(payroll_period_id, company_id)
        if period is None:
            raise PeriodNotFoundError(payroll_period_id)
        return period

    async def _base_currency_code(self, company_id: UUID) -> str:
        with persistence_errors("load base currency"):
            result = await self.session.execute(
                select(Currency.code)
                .join(Company, Company.base_currency_id == Currency.currency_id)
                .where(Company.company_id == company_id)
            )
        code = result.scalar_one_or_none()
        if code is None:
            raise CompanyNotFoundError(company_id)
        return code

    async def _transition(
        self,
        payroll_period_id: UUID,
        from_status: PeriodStatus,
        to_status: PeriodStatus,
        **values: object,
    ) -> None:
        """Compare-and-set the period status."""
        PayrollPeriodStateMachine.validate_transition(from_status, to_status)

        with persistence_errors(f"transition {from_status.value} -> {to_status.value}"):
            result = await self.session.execute(
                update(PayrollPeriod)
                .where(
                    PayrollPeriod.payroll_period_id == payroll_period_id,
                    PayrollPeriod.status == from_status.value,
                )
                .values(status=to_status.value, **values)
            )

        if result.rowcount == 0:
            with persistence_errors("load period status"):
                current = await self.session.execute(
                    select(PayrollPeriod.status).where(
                        PayrollPeriod.payroll_period_id == payroll_period_id
                    )
                )
            raise InvalidStateError(
                current.scalar_one_or_none() or "missing",
                to_status,
                f"period must be '{from_status.value}'",
            )

    async def _commit(self, operation: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(operation, exc) from exc
