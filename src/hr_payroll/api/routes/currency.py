"""Currency and tax API endpoints."""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Query

from hr_payroll.api.dependencies import CompanyId, Converter, DbSession, Taxes
from hr_payroll.api.schemas import (
    ConversionResponse,
    ErrorResponse,
    IncomeTaxResponse,
    RateResponse,
    RefreshResponse,
)

router = APIRouter(tags=["currencies"])

CurrencyCode = Annotated[str, Query(min_length=3, max_length=3)]


@router.get(
    "/currencies/rate",
    response_model=RateResponse,
    responses={503: {"model": ErrorResponse}},
)
async def get_rate(
    converter: Converter,
    from_currency: Annotated[str, Query(alias="from", min_length=3, max_length=3)],
    to_currency: Annotated[str, Query(alias="to", min_length=3, max_length=3)],
) -> RateResponse:
    """Current exchange rate between two currencies."""
    rate = await converter.rate(from_currency, to_currency)
    return RateResponse(
        from_currency=from_currency.upper(),
        to_currency=to_currency.upper(),
        rate=rate,
    )


@router.get(
    "/currencies/convert",
    response_model=ConversionResponse,
    responses={503: {"model": ErrorResponse}},
)
async def convert_amount(
    converter: Converter,
    amount: Decimal,
    from_currency: Annotated[str, Query(alias="from", min_length=3, max_length=3)],
    to_currency: Annotated[str, Query(alias="to", min_length=3, max_length=3)],
) -> ConversionResponse:
    """Convert an amount at the current rate."""
    converted, rate = await converter.convert_with_rate(amount, from_currency, to_currency)
    return ConversionResponse(
        amount=amount,
        from_currency=from_currency.upper(),
        to_currency=to_currency.upper(),
        rate=rate,
        converted_amount=converted,
    )


@router.post(
    "/currencies/refresh",
    response_model=RefreshResponse,
    responses={404: {"model": ErrorResponse}},
)
async def refresh_rates(
    db: DbSession,
    converter: Converter,
    company_id: CompanyId,
) -> RefreshResponse:
    """Fetch fresh rates for every active currency into the company base."""
    rates = await converter.refresh_all(company_id)
    await db.commit()
    return RefreshResponse(rates=rates)


@router.get(
    "/tax/income",
    response_model=IncomeTaxResponse,
    tags=["tax"],
    responses={503: {"model": ErrorResponse}},
)
async def quote_income_tax(
    taxes: Taxes,
    gross: Decimal,
    currency: CurrencyCode,
) -> IncomeTaxResponse:
    """Statutory deductions on a monthly gross with every deduction enabled."""
    income_tax = await taxes.monthly_income_tax(gross, currency)
    return IncomeTaxResponse(
        gross=gross,
        currency=currency.upper(),
        income_tax=income_tax,
        levy=taxes.levy(income_tax),
        social_contribution=taxes.social_contribution(gross, currency),
    )
