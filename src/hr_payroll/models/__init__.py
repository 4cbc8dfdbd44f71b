"""ORM models for the payroll engine."""

from hr_payroll.models.base import Base, TimestampMixin
from hr_payroll.models.company import Company, CompanySettings
from hr_payroll.models.currency import Currency, ExchangeRate
from hr_payroll.models.employee import Allowance, Deduction, Employee
from hr_payroll.models.payroll import PayrollPeriod, Payslip

__all__ = [
    "Base",
    "TimestampMixin",
    "Company",
    "CompanySettings",
    "Currency",
    "ExchangeRate",
    "Allowance",
    "Deduction",
    "Employee",
    "PayrollPeriod",
    "Payslip",
]
