"""Currency and exchange rate models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_payroll.models.base import Base, Rate, TimestampMixin


class Currency(Base, TimestampMixin):
    """ISO currency known to the system.

    Rows are never updated once a payslip references them.
    """

    __tablename__ = "currency"

    currency_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    code: Mapped[str] = mapped_column(String(3), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    symbol: Mapped[str | None] = mapped_column(String(5), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_base_currency: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("length(code) = 3", name="currency_code_length_check"),
    )


class ExchangeRate(Base, TimestampMixin):
    """Append-only exchange rate log; the newest fresh row is the current rate."""

    __tablename__ = "exchange_rate"

    exchange_rate_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    from_currency_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("currency.currency_id", ondelete="RESTRICT"),
        nullable=False,
    )
    to_currency_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("currency.currency_id", ondelete="RESTRICT"),
        nullable=False,
    )
    rate: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    effective_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False, default="api")

    __table_args__ = (
        CheckConstraint("rate > 0", name="exchange_rate_positive_check"),
        CheckConstraint("source IN ('api', 'manual')", name="exchange_rate_source_check"),
        Index(
            "exchange_rate_pair_effective_idx",
            "from_currency_id",
            "to_currency_id",
            "effective_at",
        ),
    )

    # Relationships
    from_currency: Mapped[Currency] = relationship(foreign_keys=[from_currency_id])
    to_currency: Mapped[Currency] = relationship(foreign_keys=[to_currency_id])
