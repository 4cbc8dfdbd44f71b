"""Payroll period and payslip models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_payroll.models.base import Base, Money, Rate, TimestampMixin
from hr_payroll.models.currency import Currency

if TYPE_CHECKING:
    from hr_payroll.models.company import Company
    from hr_payroll.models.employee import Employee


class PayrollPeriod(Base, TimestampMixin):
    """One calendar month of payroll for one company."""

    __tablename__ = "payroll_period"

    payroll_period_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    company_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    description: Mapped[str | None] = mapped_column(String, nullable=True)

    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approved_by: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("company_id", "year", "month", name="payroll_period_company_month_unique"),
        CheckConstraint("month BETWEEN 1 AND 12", name="payroll_period_month_check"),
        CheckConstraint(
            "status IN ('draft', 'processing', 'processed', 'approved', 'paid')",
            name="payroll_period_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="payroll_period_dates_check"),
    )

    # Relationships
    company: Mapped[Company] = relationship()
    payslips: Mapped[list[Payslip]] = relationship(back_populates="payroll_period")


class Payslip(Base, TimestampMixin):
    """Computed pay for one employee in one payroll period.

    Line items are in the employee's pay currency; the *_base columns mirror
    the totals in the company's base currency at the frozen exchange_rate.
    Immutable after insert except for the payment fields.
    """

    __tablename__ = "payslip"

    payslip_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    company_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    payroll_period_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("payroll_period.payroll_period_id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Currency
    currency_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("currency.currency_id", ondelete="RESTRICT"),
        nullable=False,
    )
    exchange_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False)

    # Earnings
    basic_salary: Mapped[Decimal] = mapped_column(Money, nullable=False)
    allowances: Mapped[Decimal] = mapped_column(Money, nullable=False)
    overtime: Mapped[Decimal] = mapped_column(Money, nullable=False)
    bonus: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_earnings: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # Deductions
    income_tax: Mapped[Decimal] = mapped_column(Money, nullable=False)
    levy: Mapped[Decimal] = mapped_column(Money, nullable=False)
    social_contribution: Mapped[Decimal] = mapped_column(Money, nullable=False)
    other_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False)

    net_pay: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # Base currency mirrors
    total_earnings_base: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_deductions_base: Mapped[Decimal] = mapped_column(Money, nullable=False)
    net_pay_base: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # Attendance
    working_days: Mapped[int] = mapped_column(Integer, nullable=False)
    days_worked: Mapped[int] = mapped_column(Integer, nullable=False)
    days_absent: Mapped[int] = mapped_column(Integer, nullable=False)

    # Payment
    status: Mapped[str] = mapped_column(String, nullable=False, default="generated")
    payment_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "payroll_period_id", name="payslip_employee_period_unique"),
        CheckConstraint("exchange_rate > 0", name="payslip_exchange_rate_check"),
        CheckConstraint(
            "status IN ('generated', 'approved', 'paid')",
            name="payslip_status_check",
        ),
    )

    # Relationships
    employee: Mapped[Employee] = relationship()
    payroll_period: Mapped[PayrollPeriod] = relationship(back_populates="payslips")
    currency: Mapped[Currency] = relationship()
