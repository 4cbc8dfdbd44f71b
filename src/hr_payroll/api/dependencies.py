"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hr_payroll.calculators.currency import CurrencyConverter
from hr_payroll.calculators.rate_provider import HttpRateProvider, RateProvider
from hr_payroll.calculators.tax_calculator import TaxCalculator
from hr_payroll.config import get_settings
from hr_payroll.database import init_db
from hr_payroll.services.payroll_processor import PayrollProcessor


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work outside the request session."""
    _, factory = init_db()
    return factory


async def get_db_session(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


@lru_cache(maxsize=1)
def get_rate_provider() -> HttpRateProvider:
    """Process-wide rate provider configured from settings."""
    settings = get_settings()
    return HttpRateProvider(
        base_url=settings.rate_api_url,
        api_key=settings.rate_api_key,
        timeout=settings.rate_api_timeout,
    )


async def get_company_id(
    x_company_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract company ID from header."""
    if not x_company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Company-ID header is required",
        )
    try:
        return UUID(x_company_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Company-ID format",
        )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
Provider = Annotated[RateProvider, Depends(get_rate_provider)]
CompanyId = Annotated[UUID, Depends(get_company_id)]


async def get_converter(
    db: DbSession,
    factory: SessionFactory,
    provider: Provider,
) -> AsyncGenerator[CurrencyConverter, None]:
    """Currency converter bound to the request session.

    Background rate-cache writes are awaited before the request closes.
    """
    converter = CurrencyConverter.from_settings(
        db,
        get_settings(),
        session_factory=factory,
        provider=provider,
    )
    try:
        yield converter
    finally:
        await converter.drain()


Converter = Annotated[CurrencyConverter, Depends(get_converter)]


def get_tax_calculator(converter: Converter) -> TaxCalculator:
    return TaxCalculator(converter, get_settings().tax_reference_currency)


def get_processor(
    db: DbSession,
    converter: Converter,
    tax_calculator: Annotated[TaxCalculator, Depends(get_tax_calculator)],
) -> PayrollProcessor:
    return PayrollProcessor(db, converter, tax_calculator=tax_calculator)


Taxes = Annotated[TaxCalculator, Depends(get_tax_calculator)]
Processor = Annotated[PayrollProcessor, Depends(get_processor)]
