"""Payroll calculation engine."""

from hr_payroll.calculators.currency import CurrencyConverter, RateUnavailableError
from hr_payroll.calculators.engine import CalculationError, PayrollEngine
from hr_payroll.calculators.line_builder import LineItemBuilder
from hr_payroll.calculators.rate_provider import HttpRateProvider, RateProvider
from hr_payroll.calculators.tax_calculator import TaxCalculator
from hr_payroll.calculators.types import CalculationResult, CompanyPolicy

__all__ = [
    "CurrencyConverter",
    "RateUnavailableError",
    "PayrollEngine",
    "CalculationError",
    "CalculationResult",
    "CompanyPolicy",
    "LineItemBuilder",
    "HttpRateProvider",
    "RateProvider",
    "TaxCalculator",
]
