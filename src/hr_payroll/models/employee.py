"""Employee and recurring pay component models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_payroll.models.base import Base, Money, TimestampMixin
from hr_payroll.models.currency import Currency

if TYPE_CHECKING:
    from hr_payroll.models.company import Company


class Employee(Base, TimestampMixin):
    """Employee record with pay currency and monthly basic salary."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    company_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_number: Mapped[str] = mapped_column(String, nullable=False)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    currency_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("currency.currency_id", ondelete="RESTRICT"),
        nullable=False,
    )
    basic_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    employment_status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    hire_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "employee_number", name="employee_company_number_unique"),
        CheckConstraint("basic_salary >= 0", name="employee_basic_salary_check"),
        CheckConstraint(
            "employment_status IN ('active', 'suspended', 'terminated')",
            name="employee_status_check",
        ),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="employees")
    currency: Mapped[Currency] = relationship()
    allowances: Mapped[list[Allowance]] = relationship(back_populates="employee")
    deductions: Mapped[list[Deduction]] = relationship(back_populates="employee")

    @property
    def is_payroll_eligible(self) -> bool:
        """Whether the employee takes part in a payroll run."""
        return self.is_active and self.employment_status == "active"


class PayComponentMixin:
    """Columns shared by recurring allowances and deductions.

    calc_method decides which value applies:
    - fixed: ``amount`` in the component's own currency
    - percentage: ``percentage`` of a base figure resolved at run time
    """

    company_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    currency_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("currency.currency_id", ondelete="RESTRICT"),
        nullable=False,
    )
    calc_method: Mapped[str] = mapped_column(String, nullable=False, default="fixed")
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class Allowance(PayComponentMixin, Base, TimestampMixin):
    """Recurring allowance added to earnings.

    is_taxable is recorded for payslip reporting only. Income tax is charged
    on total earnings, so a non-taxable allowance still raises the taxed gross.
    """

    __tablename__ = "allowance"

    allowance_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "calc_method IN ('fixed', 'percentage')",
            name="allowance_calc_method_check",
        ),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="allowances")
    currency: Mapped[Currency] = relationship()


class Deduction(PayComponentMixin, Base, TimestampMixin):
    """Recurring employee-specific deduction."""

    __tablename__ = "deduction"

    deduction_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    is_statutory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(
            "calc_method IN ('fixed', 'percentage')",
            name="deduction_calc_method_check",
        ),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="deductions")
    currency: Mapped[Currency] = relationship()
