"""Payslip line arithmetic: rounding, component resolution, totals."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from hr_payroll.calculators.types import ZERO, CalcMethod, CalculationResult, StatutoryDeductions


class LineItemBuilder:
    """Builds payslip figures with consistent rounding.

    Rounding:
    - Money to 2 decimals at the point each figure is produced
    - Exchange rates to 8 decimals
    - Totals are sums of already-rounded parts, so the payslip
      invariants hold exactly
    """

    OUTPUT_PRECISION = Decimal("0.01")
    RATE_PRECISION = Decimal("0.00000001")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(LineItemBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def round_rate(rate: Decimal) -> Decimal:
        """Round an exchange rate to storage precision."""
        return rate.quantize(LineItemBuilder.RATE_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def resolve_component_amount(
        calc_method: str,
        amount: Decimal | None,
        percentage: Decimal | None,
        base: Decimal,
    ) -> Decimal:
        """Resolve a fixed or percentage allowance/deduction to an amount.

        Fixed components return their amount as-is (still in the
        component's own currency). Percentage components apply
        ``percentage`` (e.g. 7.5 for 7.5%) to ``base``, which is already in
        the employee's pay currency.
        """
        method = CalcMethod(calc_method)
        if method is CalcMethod.FIXED:
            return amount if amount is not None else ZERO

        if percentage is None:
            return ZERO
        return LineItemBuilder.round_to_cents(base * percentage / 100)

    @staticmethod
    def calculate_total_earnings(
        basic_salary: Decimal,
        allowances: Decimal,
        overtime: Decimal,
        bonus: Decimal,
    ) -> Decimal:
        """TOTAL_EARNINGS = basic + allowances + overtime + bonus."""
        return basic_salary + allowances + overtime + bonus

    @staticmethod
    def calculate_total_deductions(
        statutory: StatutoryDeductions,
        other_deductions: Decimal,
    ) -> Decimal:
        """TOTAL_DEDUCTIONS = income tax + levy + social contribution + other."""
        return statutory.total + other_deductions

    @staticmethod
    def to_base(amount: Decimal, exchange_rate: Decimal) -> Decimal:
        """Mirror a pay-currency amount into the base currency."""
        return LineItemBuilder.round_to_cents(amount * exchange_rate)

    @staticmethod
    def validate_totals(result: CalculationResult) -> list[str]:
        """Check the payslip invariants.

        Returns list of error messages (empty if all valid).
        """
        errors: list[str] = []

        expected_earnings = LineItemBuilder.calculate_total_earnings(
            result.basic_salary, result.allowances, result.overtime, result.bonus
        )
        if result.total_earnings != expected_earnings:
            errors.append(
                f"total_earnings {result.total_earnings} != components {expected_earnings}"
            )

        expected_deductions = LineItemBuilder.calculate_total_deductions(
            result.statutory, result.other_deductions
        )
        if result.total_deductions != expected_deductions:
            errors.append(
                f"total_deductions {result.total_deductions} != components {expected_deductions}"
            )

        if result.net_pay != result.total_earnings - result.total_deductions:
            errors.append(
                f"net_pay {result.net_pay} != earnings - deductions "
                f"{result.total_earnings - result.total_deductions}"
            )

        for name, amount, mirrored in (
            ("total_earnings", result.total_earnings, result.total_earnings_base),
            ("total_deductions", result.total_deductions, result.total_deductions_base),
            ("net_pay", result.net_pay, result.net_pay_base),
        ):
            if mirrored != LineItemBuilder.to_base(amount, result.exchange_rate):
                errors.append(f"{name}_base {mirrored} does not mirror {amount}")

        if result.days_worked > result.working_days:
            errors.append(
                f"days_worked {result.days_worked} exceeds working_days {result.working_days}"
            )

        return errors
