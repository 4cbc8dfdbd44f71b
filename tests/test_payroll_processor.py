"""Tests for PayrollProcessor period lifecycle and batch runs."""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from hr_payroll.calculators.currency import CompanyNotFoundError, CurrencyConverter
from hr_payroll.database import PersistenceError
from hr_payroll.models import CompanySettings, PayrollPeriod, Payslip
from hr_payroll.services.payroll_processor import (
    PayrollProcessor,
    PeriodExistsError,
    PeriodNotFoundError,
    ProcessingResult,
)
from hr_payroll.services.state_machine import InvalidStateError


@pytest.fixture
def processor(session, converter) -> PayrollProcessor:
    return PayrollProcessor(session, converter, reference_currency="USD")


@pytest.fixture
async def staff(make_employee):
    """One ZAR and one USD employee, plus two who are not eligible."""
    zar = await make_employee("E001", "ZAR", "10000.00")
    usd = await make_employee("E002", "USD", "2500.00")
    await make_employee("E003", "USD", "4000.00", employment_status="suspended")
    await make_employee("E004", "USD", "4000.00", is_active=False)
    return {"ZAR": zar, "USD": usd}


async def _payslips(session, period_id) -> dict:
    result = await session.execute(
        select(Payslip).where(Payslip.payroll_period_id == period_id)
    )
    return {p.employee_id: p for p in result.scalars().all()}


async def _status(session, period_id) -> str:
    result = await session.execute(
        select(PayrollPeriod.status).where(PayrollPeriod.payroll_period_id == period_id)
    )
    return result.scalar_one()


def _lose_connection_after(session, monkeypatch, calls: int) -> None:
    """Let the first ``calls`` statements through, then fail every one after."""
    execute = session.execute
    seen = 0

    async def flaky_execute(*args, **kwargs):
        nonlocal seen
        seen += 1
        if seen > calls:
            raise OperationalError("SELECT", {}, Exception("connection lost"))
        return await execute(*args, **kwargs)

    monkeypatch.setattr(session, "execute", flaky_execute)


class TestCreatePeriod:
    async def test_creates_draft_for_calendar_month(self, processor, company):
        period = await processor.create_period(company.company_id, 2024, 2)

        assert period.status == "draft"
        assert period.start_date == date(2024, 2, 1)
        assert period.end_date == date(2024, 2, 29)
        assert period.description == "Payroll for February 2024"

    async def test_duplicate_month_rejected(self, processor, company):
        await processor.create_period(company.company_id, 2024, 3)

        with pytest.raises(PeriodExistsError) as exc_info:
            await processor.create_period(company.company_id, 2024, 3, "again")

        assert exc_info.value.month == 3

    async def test_invalid_month_rejected(self, processor, company):
        with pytest.raises(ValueError):
            await processor.create_period(company.company_id, 2024, 13)

    async def test_unknown_company_rejected(self, processor, currencies):
        with pytest.raises(CompanyNotFoundError):
            await processor.create_period(uuid4(), 2024, 1)


class TestProcess:
    """End-to-end processing of January 2024."""

    async def test_generates_one_payslip_per_eligible_employee(
        self, session, processor, staff, draft_period
    ):
        result = await processor.process(draft_period.payroll_period_id)

        assert result.status == "processed"
        assert sorted(result.succeeded) == sorted(e.employee_id for e in staff.values())
        assert result.skipped == []
        assert result.failed == []

        period = await processor.get_period(draft_period.payroll_period_id)
        assert period.status == "processed"
        assert period.processed_at is not None

        payslips = await _payslips(session, draft_period.payroll_period_id)
        assert len(payslips) == 2

    async def test_zar_employee_payslip(self, session, processor, staff, draft_period):
        await processor.process(draft_period.payroll_period_id)

        payslip = (await _payslips(session, draft_period.payroll_period_id))[
            staff["ZAR"].employee_id
        ]
        assert payslip.exchange_rate == Decimal("0.055")
        assert payslip.total_earnings == Decimal("10000.00")
        assert payslip.income_tax == Decimal("1865.50")
        assert payslip.levy == Decimal("55.97")
        assert payslip.social_contribution == Decimal("300.00")
        assert payslip.total_deductions == Decimal("2221.47")
        assert payslip.net_pay == Decimal("7778.53")
        assert payslip.total_earnings_base == Decimal("550.00")
        assert payslip.net_pay_base == Decimal("427.82")
        assert payslip.working_days == 23
        assert payslip.days_absent == 0
        assert payslip.status == "generated"

    async def test_usd_employee_payslip(self, session, processor, staff, draft_period):
        await processor.process(draft_period.payroll_period_id)

        payslip = (await _payslips(session, draft_period.payroll_period_id))[
            staff["USD"].employee_id
        ]
        assert payslip.exchange_rate == Decimal("1")
        assert payslip.income_tax == Decimal("690.00")
        assert payslip.levy == Decimal("20.70")
        assert payslip.social_contribution == Decimal("75.00")
        assert payslip.net_pay == Decimal("1714.30")
        assert payslip.net_pay_base == Decimal("1714.30")

    async def test_second_process_is_rejected_without_duplicates(
        self, session, processor, staff, draft_period
    ):
        await processor.process(draft_period.payroll_period_id)

        with pytest.raises(InvalidStateError) as exc_info:
            await processor.process(draft_period.payroll_period_id)

        assert exc_info.value.from_status == "processed"
        assert len(await _payslips(session, draft_period.payroll_period_id)) == 2

    async def test_unknown_period(self, processor):
        with pytest.raises(PeriodNotFoundError):
            await processor.process(uuid4())

    async def test_other_company_cannot_process(self, processor, draft_period):
        with pytest.raises(PeriodNotFoundError):
            await processor.process(draft_period.payroll_period_id, company_id=uuid4())

    async def test_rate_failure_is_isolated(
        self, session, processor, staff, make_employee, draft_period
    ):
        euro = await make_employee("E005", "EUR", "3000.00")
        # Ids are captured up front: the failed employee rolls the session back
        euro_id = euro.employee_id
        period_id = draft_period.payroll_period_id

        result = await processor.process(period_id)

        assert result.status == "processed"
        assert len(result.succeeded) == 2
        assert [employee_id for employee_id, _ in result.failed] == [euro_id]
        assert "EUR->USD" in result.failed[0][1]
        assert result.has_failures

        payslips = await _payslips(session, period_id)
        assert euro_id not in payslips
        assert len(payslips) == 2

    async def test_unusable_quote_is_isolated(
        self, session, processor, staff, rate_provider, draft_period
    ):
        rate_provider.quotes["ZAR"]["USD"] = Decimal("NaN")
        zar_id = staff["ZAR"].employee_id
        usd_id = staff["USD"].employee_id
        period_id = draft_period.payroll_period_id

        result = await processor.process(period_id)

        assert result.status == "processed"
        assert result.succeeded == [usd_id]
        assert [employee_id for employee_id, _ in result.failed] == [zar_id]
        assert await _status(session, period_id) == "processed"

    async def test_concurrent_runs_write_each_payslip_once(
        self, session, session_factory, rate_provider, staff, draft_period
    ):
        period_id = draft_period.payroll_period_id

        async def run() -> ProcessingResult:
            async with session_factory() as run_session:
                converter = CurrencyConverter(
                    run_session, rate_provider, session_factory=session_factory
                )
                try:
                    return await PayrollProcessor(run_session, converter).process(period_id)
                finally:
                    await converter.drain()

        outcomes = await asyncio.gather(run(), run(), return_exceptions=True)

        results = [o for o in outcomes if isinstance(o, ProcessingResult)]
        errors = [o for o in outcomes if isinstance(o, BaseException)]
        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidStateError)
        assert results[0].status == "processed"
        assert len(results[0].succeeded) == 2

        assert len(await _payslips(session, period_id)) == 2
        assert await _status(session, period_id) == "processed"

    async def test_company_settings_disable_deductions(
        self, session, processor, staff, company, draft_period
    ):
        session.add(
            CompanySettings(
                company_id=company.company_id,
                enable_income_tax=False,
                enable_levy=False,
                enable_social_contribution=True,
            )
        )
        company.work_week_days = 6
        await session.commit()

        await processor.process(draft_period.payroll_period_id)

        payslip = (await _payslips(session, draft_period.payroll_period_id))[
            staff["USD"].employee_id
        ]
        assert payslip.income_tax == Decimal("0")
        assert payslip.levy == Decimal("0")
        assert payslip.social_contribution == Decimal("75.00")
        assert payslip.working_days == 27

    async def test_empty_company_still_completes(self, processor, company, draft_period):
        result = await processor.process(draft_period.payroll_period_id)

        assert result.status == "processed"
        assert result.succeeded == []


class TestResume:
    """Recovery of a period left in processing."""

    async def _stick_in_processing(self, session, period_id):
        await session.execute(
            update(PayrollPeriod)
            .where(PayrollPeriod.payroll_period_id == period_id)
            .values(status="processing")
        )
        await session.commit()

    async def test_resume_skips_existing_payslips(
        self, session, processor, staff, company, draft_period
    ):
        await self._stick_in_processing(session, draft_period.payroll_period_id)
        zar = staff["ZAR"]
        session.add(
            Payslip(
                company_id=company.company_id,
                employee_id=zar.employee_id,
                payroll_period_id=draft_period.payroll_period_id,
                currency_id=zar.currency_id,
                exchange_rate=Decimal("0.055"),
                basic_salary=Decimal("10000.00"),
                allowances=Decimal("0"),
                overtime=Decimal("0"),
                bonus=Decimal("0"),
                total_earnings=Decimal("10000.00"),
                income_tax=Decimal("1865.50"),
                levy=Decimal("55.97"),
                social_contribution=Decimal("300.00"),
                other_deductions=Decimal("0"),
                total_deductions=Decimal("2221.47"),
                net_pay=Decimal("7778.53"),
                total_earnings_base=Decimal("550.00"),
                total_deductions_base=Decimal("122.18"),
                net_pay_base=Decimal("427.82"),
                working_days=23,
                days_worked=23,
                days_absent=0,
            )
        )
        await session.commit()

        result = await processor.resume(draft_period.payroll_period_id)

        assert result.status == "processed"
        assert result.succeeded == [staff["USD"].employee_id]
        assert [employee_id for employee_id, _ in result.skipped] == [zar.employee_id]
        assert len(await _payslips(session, draft_period.payroll_period_id)) == 2

    async def test_resume_requires_processing(self, processor, draft_period):
        with pytest.raises(InvalidStateError) as exc_info:
            await processor.resume(draft_period.payroll_period_id)

        assert exc_info.value.from_status == "draft"

    async def test_processed_period_cannot_resume(self, processor, staff, draft_period):
        await processor.process(draft_period.payroll_period_id)

        with pytest.raises(InvalidStateError):
            await processor.resume(draft_period.payroll_period_id)


class TestApprove:
    async def test_approve_processed_period(self, session, processor, staff, draft_period):
        approver = uuid4()
        await processor.process(draft_period.payroll_period_id)

        period = await processor.approve(draft_period.payroll_period_id, approver)

        assert period.status == "approved"
        assert period.approved_by == approver
        assert period.approved_at is not None

        payslips = await _payslips(session, draft_period.payroll_period_id)
        assert {p.status for p in payslips.values()} == {"approved"}

    async def test_draft_cannot_be_approved(self, processor, draft_period):
        with pytest.raises(InvalidStateError) as exc_info:
            await processor.approve(draft_period.payroll_period_id, uuid4())

        assert exc_info.value.from_status == "draft"
        assert exc_info.value.to_status == "approved"

    async def test_approval_is_not_repeatable(self, processor, staff, draft_period):
        await processor.process(draft_period.payroll_period_id)
        await processor.approve(draft_period.payroll_period_id, uuid4())

        with pytest.raises(InvalidStateError):
            await processor.approve(draft_period.payroll_period_id, uuid4())

    async def test_approved_period_cannot_be_reprocessed(self, processor, staff, draft_period):
        await processor.process(draft_period.payroll_period_id)
        await processor.approve(draft_period.payroll_period_id, uuid4())

        with pytest.raises(InvalidStateError):
            await processor.process(draft_period.payroll_period_id)


class TestSummary:
    async def test_base_totals_and_breakdown(self, processor, staff, draft_period):
        await processor.process(draft_period.payroll_period_id)

        summary = await processor.summary(draft_period.payroll_period_id)

        assert summary.base_currency == "USD"
        assert summary.status == "processed"
        assert summary.employee_count == 2
        assert summary.total_earnings == Decimal("3050.00")
        assert summary.total_deductions == Decimal("907.88")
        assert summary.total_net_pay == Decimal("2142.12")
        # 1,865.50 ZAR at 0.055 = 102.60 USD, plus 690.00 USD
        assert summary.total_income_tax == Decimal("792.60")
        # 300.00 ZAR at 0.055 = 16.50 USD, plus 75.00 USD
        assert summary.total_social_contribution == Decimal("91.50")

        zar = summary.currency_breakdown["ZAR"]
        assert zar.employee_count == 1
        assert zar.total_earnings == Decimal("10000.00")
        assert zar.total_net_pay == Decimal("7778.53")

        usd = summary.currency_breakdown["USD"]
        assert usd.employee_count == 1
        assert usd.total_net_pay == Decimal("1714.30")

    async def test_summary_of_unprocessed_period_is_empty(self, processor, company, draft_period):
        summary = await processor.summary(draft_period.payroll_period_id)

        assert summary.employee_count == 0
        assert summary.total_net_pay == Decimal("0")
        assert summary.currency_breakdown == {}

    async def test_list_payslips_ordered_by_employee_number(
        self, processor, staff, draft_period
    ):
        await processor.process(draft_period.payroll_period_id)

        payslips = await processor.list_payslips(draft_period.payroll_period_id)

        assert [p.employee_id for p in payslips] == [
            staff["ZAR"].employee_id,
            staff["USD"].employee_id,
        ]


class TestEligibility:
    async def test_only_active_employees_are_eligible(self, make_employee):
        active = await make_employee("E010", "USD", "1000.00")
        suspended = await make_employee("E011", "USD", "1000.00", employment_status="suspended")
        inactive = await make_employee("E012", "USD", "1000.00", is_active=False)

        assert active.is_payroll_eligible
        assert not suspended.is_payroll_eligible
        assert not inactive.is_payroll_eligible


class TestStorageFailures:
    """Failed reads in period-level operations surface as PersistenceError."""

    async def test_period_lookup(self, session, processor, draft_period, monkeypatch):
        period_id = draft_period.payroll_period_id
        _lose_connection_after(session, monkeypatch, 0)

        with pytest.raises(PersistenceError) as exc_info:
            await processor.get_period(period_id)

        assert exc_info.value.operation == "load period"
        assert isinstance(exc_info.value.cause, OperationalError)

    async def test_employee_load_aborts_run(self, session, processor, staff, draft_period, monkeypatch):
        period_id = draft_period.payroll_period_id
        # period lookup, draft -> processing, period lookup again
        _lose_connection_after(session, monkeypatch, 3)

        with pytest.raises(PersistenceError) as exc_info:
            await processor.process(period_id)

        assert exc_info.value.operation == "load employees"

    async def test_summary_query(self, session, processor, draft_period, monkeypatch):
        period_id = draft_period.payroll_period_id
        # period lookup, base currency
        _lose_connection_after(session, monkeypatch, 2)

        with pytest.raises(PersistenceError) as exc_info:
            await processor.summary(period_id)

        assert exc_info.value.operation == "summarise period"

    async def test_payslip_listing(self, session, processor, draft_period, monkeypatch):
        period_id = draft_period.payroll_period_id
        _lose_connection_after(session, monkeypatch, 1)

        with pytest.raises(PersistenceError) as exc_info:
            await processor.list_payslips(period_id)

        assert exc_info.value.operation == "list payslips"
