"""Pytest fixtures for payroll engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from hr_payroll.calculators.currency import CurrencyConverter
from hr_payroll.calculators.rate_provider import RateProviderError
from hr_payroll.database import make_session_factory
from hr_payroll.models import (
    Allowance,
    Base,
    Company,
    CompanySettings,
    Currency,
    Deduction,
    Employee,
    PayrollPeriod,
)


class FakeRateProvider:
    """In-memory rate provider that records every lookup."""

    provider_name = "fake"

    def __init__(self, quotes: dict[str, dict[str, Decimal]] | None = None):
        self.quotes = quotes or {}
        self.calls: list[str] = []
        self.fail = False

    async def latest(self, base_currency: str) -> dict[str, Decimal]:
        self.calls.append(base_currency)
        if self.fail:
            raise RateProviderError(base_currency, "provider down")
        if base_currency not in self.quotes:
            raise RateProviderError(base_currency, "unsupported base currency")
        return dict(self.quotes[base_currency])


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so background writers get their own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def rate_provider() -> FakeRateProvider:
    return FakeRateProvider(
        {
            "ZAR": {"USD": Decimal("0.055"), "EUR": Decimal("0.05"), "ZAR": Decimal("1")},
            "USD": {"ZAR": Decimal("18.2"), "EUR": Decimal("0.92"), "USD": Decimal("1")},
        }
    )


@pytest.fixture
async def converter(session, rate_provider, session_factory):
    converter = CurrencyConverter(session, rate_provider, session_factory=session_factory)
    yield converter
    await converter.drain()


@pytest.fixture
async def currencies(session) -> dict[str, Currency]:
    """USD (system base), ZAR and EUR."""
    rows = {
        "USD": Currency(code="USD", name="US Dollar", symbol="$", is_base_currency=True),
        "ZAR": Currency(code="ZAR", name="South African Rand", symbol="R"),
        "EUR": Currency(code="EUR", name="Euro", symbol="€"),
    }
    session.add_all(rows.values())
    await session.commit()
    return rows


@pytest.fixture
async def company(session, currencies) -> Company:
    """Company reporting in USD with a Monday-Friday week and no settings row."""
    company = Company(
        name="Acme Holdings",
        code="ACME",
        base_currency_id=currencies["USD"].currency_id,
        work_week_days=5,
    )
    session.add(company)
    await session.commit()
    return company


@pytest.fixture
def make_employee(session, company, currencies):
    """Factory for employees of the test company."""

    async def _make(
        number: str,
        currency: str,
        salary: str,
        **kwargs,
    ) -> Employee:
        employee = Employee(
            company_id=company.company_id,
            employee_number=number,
            first_name=kwargs.pop("first_name", "Test"),
            last_name=kwargs.pop("last_name", number),
            currency_id=currencies[currency].currency_id,
            basic_salary=Decimal(salary),
            hire_date=date(2020, 1, 1),
            **kwargs,
        )
        session.add(employee)
        await session.commit()
        return employee

    return _make


@pytest.fixture
def make_allowance(session, company, currencies):
    async def _make(employee: Employee, currency: str, **kwargs) -> Allowance:
        allowance = Allowance(
            company_id=company.company_id,
            employee_id=employee.employee_id,
            name=kwargs.pop("name", "Housing"),
            currency_id=currencies[currency].currency_id,
            **kwargs,
        )
        session.add(allowance)
        await session.commit()
        return allowance

    return _make


@pytest.fixture
def make_deduction(session, company, currencies):
    async def _make(employee: Employee, currency: str, **kwargs) -> Deduction:
        deduction = Deduction(
            company_id=company.company_id,
            employee_id=employee.employee_id,
            name=kwargs.pop("name", "Medical aid"),
            currency_id=currencies[currency].currency_id,
            **kwargs,
        )
        session.add(deduction)
        await session.commit()
        return deduction

    return _make


@pytest.fixture
async def company_settings(session, company) -> CompanySettings:
    settings = CompanySettings(company_id=company.company_id)
    session.add(settings)
    await session.commit()
    return settings


@pytest.fixture
async def draft_period(session, company) -> PayrollPeriod:
    """January 2024: 31 days, 23 weekdays."""
    period = PayrollPeriod(
        company_id=company.company_id,
        year=2024,
        month=1,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        status="draft",
    )
    session.add(period)
    await session.commit()
    return period
