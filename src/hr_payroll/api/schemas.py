"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Payroll period schemas
# ============================================================================


class PeriodCreate(BaseModel):
    """Schema for opening a payroll period."""

    year: int = Field(ge=1900, le=9999)
    month: int = Field(ge=1, le=12)
    description: str | None = None


class PeriodResponse(BaseModel):
    """Schema for payroll period response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_period_id: UUID
    company_id: UUID
    year: int
    month: int
    start_date: date
    end_date: date
    status: str
    description: str | None = None
    processed_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    created_at: datetime
    updated_at: datetime


class ApprovalRequest(BaseModel):
    """Schema for approving a processed period."""

    approver_id: UUID


class EmployeeOutcome(BaseModel):
    """An employee skipped or failed during a run."""

    employee_id: UUID
    reason: str


class ProcessingResponse(BaseModel):
    """Schema for the outcome of a processing run."""

    payroll_period_id: UUID
    status: str
    succeeded: list[UUID]
    skipped: list[EmployeeOutcome]
    failed: list[EmployeeOutcome]


class CurrencyBreakdownResponse(BaseModel):
    """Per pay-currency totals."""

    model_config = ConfigDict(from_attributes=True)

    employee_count: int
    total_earnings: Decimal
    total_net_pay: Decimal


class SummaryResponse(BaseModel):
    """Schema for period totals in the base currency."""

    model_config = ConfigDict(from_attributes=True)

    payroll_period_id: UUID
    status: str
    base_currency: str
    employee_count: int
    total_earnings: Decimal
    total_deductions: Decimal
    total_net_pay: Decimal
    total_income_tax: Decimal
    total_social_contribution: Decimal
    currency_breakdown: dict[str, CurrencyBreakdownResponse]


class PayslipResponse(BaseModel):
    """Schema for payslip response."""

    model_config = ConfigDict(from_attributes=True)

    payslip_id: UUID
    employee_id: UUID
    payroll_period_id: UUID
    currency_id: UUID
    exchange_rate: Decimal

    basic_salary: Decimal
    allowances: Decimal
    overtime: Decimal
    bonus: Decimal
    total_earnings: Decimal

    income_tax: Decimal
    levy: Decimal
    social_contribution: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    total_earnings_base: Decimal
    total_deductions_base: Decimal
    net_pay_base: Decimal

    working_days: int
    days_worked: int
    days_absent: int
    status: str


# ============================================================================
# Currency and tax schemas
# ============================================================================


class RateResponse(BaseModel):
    """Schema for an exchange rate lookup."""

    from_currency: str
    to_currency: str
    rate: Decimal


class ConversionResponse(BaseModel):
    """Schema for an amount conversion."""

    amount: Decimal
    from_currency: str
    to_currency: str
    rate: Decimal
    converted_amount: Decimal


class RefreshResponse(BaseModel):
    """Schema for a rate refresh; rates are into the company base currency."""

    rates: dict[str, Decimal]


class IncomeTaxResponse(BaseModel):
    """Schema for a statutory deduction quote on a monthly gross."""

    gross: Decimal
    currency: str
    income_tax: Decimal
    levy: Decimal
    social_contribution: Decimal


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
