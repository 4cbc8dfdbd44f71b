"""Company (tenant) and company policy models."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_payroll.models.base import Base, TimestampMixin
from hr_payroll.models.currency import Currency

if TYPE_CHECKING:
    from hr_payroll.models.employee import Employee


class Company(Base, TimestampMixin):
    """Tenant company; every payroll record is scoped by company_id."""

    __tablename__ = "company"

    company_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    code: Mapped[str] = mapped_column(String(10), nullable=False, unique=True)
    base_currency_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("currency.currency_id", ondelete="RESTRICT"),
        nullable=False,
    )
    work_week_days: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("work_week_days IN (5, 6, 7)", name="company_work_week_check"),
    )

    # Relationships
    base_currency: Mapped[Currency] = relationship()
    settings: Mapped[CompanySettings | None] = relationship(back_populates="company")
    employees: Mapped[list[Employee]] = relationship(back_populates="company")


class CompanySettings(Base, TimestampMixin):
    """Statutory deduction switches for a company."""

    __tablename__ = "company_settings"

    company_settings_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    company_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    enable_income_tax: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    enable_levy: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    enable_social_contribution: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="settings")
