"""Statutory deduction calculation against a fixed monthly bracket schedule."""

from __future__ import annotations

import logging
from decimal import Decimal

from hr_payroll.calculators.currency import CurrencyConverter
from hr_payroll.calculators.line_builder import LineItemBuilder
from hr_payroll.calculators.types import (
    LEVY_RATE,
    MONTHLY_TAX_BRACKETS,
    SOCIAL_CONTRIBUTION_RATE,
    ZERO,
    CompanyPolicy,
    StatutoryDeductions,
    TaxBracket,
)

logger = logging.getLogger(__name__)


class TaxCalculator:
    """Calculates income tax, levy and social contribution.

    Income tax brackets are expressed in the tax reference currency, so
    gross pay is converted there, taxed, and the tax converted back into
    the pay currency. The social contribution is a flat share of gross in
    the pay currency and is not converted.

    Apart from rate lookups through the converter, nothing here touches
    persistent state.
    """

    def __init__(
        self,
        converter: CurrencyConverter,
        reference_currency: str = "USD",
        brackets: tuple[TaxBracket, ...] = MONTHLY_TAX_BRACKETS,
    ):
        self.converter = converter
        self.reference_currency = reference_currency.upper()
        self.brackets = brackets

    def find_bracket(self, amount: Decimal) -> TaxBracket:
        """Find the single bracket covering a reference-currency amount."""
        for bracket in self.brackets:
            if bracket.contains(amount):
                return bracket
        raise ValueError(f"No tax bracket covers {amount} {self.reference_currency}")

    def tax_for_reference_amount(self, gross: Decimal) -> Decimal:
        """Income tax on a monthly gross already in the reference currency.

        The whole amount is taxed at the bracket rate and the bracket
        deduction subtracted; the result never goes below zero.
        """
        gross = LineItemBuilder.round_to_cents(gross)
        if gross <= 0:
            return ZERO
        bracket = self.find_bracket(gross)
        tax = gross * bracket.rate - bracket.deduction
        return LineItemBuilder.round_to_cents(max(tax, ZERO))

    async def monthly_income_tax(self, gross: Decimal, currency: str) -> Decimal:
        """Income tax on a monthly gross, in the gross's own currency.

        Raises:
            RateUnavailableError: If conversion to or from the reference
                currency has no rate
        """
        if gross <= 0:
            return ZERO

        currency = currency.upper()
        reference_gross = await self.converter.convert(gross, currency, self.reference_currency)
        reference_tax = self.tax_for_reference_amount(reference_gross)
        if reference_tax == 0:
            return ZERO

        tax = await self.converter.convert(reference_tax, self.reference_currency, currency)
        logger.debug(
            "Income tax on %s %s: %s %s (%s %s)",
            gross,
            currency,
            tax,
            currency,
            reference_tax,
            self.reference_currency,
        )
        return LineItemBuilder.round_to_cents(tax)

    @staticmethod
    def levy(income_tax: Decimal) -> Decimal:
        """Levy charged on top of income tax."""
        return LineItemBuilder.round_to_cents(income_tax * LEVY_RATE)

    @staticmethod
    def social_contribution(gross: Decimal, currency: str | None = None) -> Decimal:
        """Social security contribution on gross pay.

        Computed directly in the pay currency; ``currency`` is accepted for
        call-site symmetry with monthly_income_tax and is not used.
        """
        return LineItemBuilder.round_to_cents(gross * SOCIAL_CONTRIBUTION_RATE)

    @staticmethod
    def pension_contribution(gross: Decimal, pension_rate: Decimal) -> Decimal:
        """Pension contribution as a percentage of gross (7.5 for 7.5%)."""
        if pension_rate <= 0:
            return ZERO
        return LineItemBuilder.round_to_cents(gross * pension_rate / 100)

    async def statutory_deductions(
        self,
        gross: Decimal,
        currency: str,
        policy: CompanyPolicy,
    ) -> StatutoryDeductions:
        """All statutory deductions on gross, honouring the company switches.

        The levy is charged on the income tax actually withheld, so it is
        zero when income tax is disabled.
        """
        income_tax = ZERO
        if policy.enable_income_tax:
            income_tax = await self.monthly_income_tax(gross, currency)

        levy = self.levy(income_tax) if policy.enable_levy else ZERO

        social = ZERO
        if policy.enable_social_contribution:
            social = self.social_contribution(gross, currency)

        return StatutoryDeductions(
            income_tax=income_tax,
            levy=levy,
            social_contribution=social,
        )
