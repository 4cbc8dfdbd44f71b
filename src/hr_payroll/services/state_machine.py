"""Payroll period state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hr_payroll.models import PayrollPeriod


class PeriodStatus(str, Enum):
    """Payroll period status values."""

    DRAFT = "draft"
    PROCESSING = "processing"
    PROCESSED = "processed"
    APPROVED = "approved"
    PAID = "paid"


class InvalidStateError(Exception):
    """Raised when a period is not in the status an operation requires."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = str(getattr(from_status, "value", from_status))
        self.to_status = str(getattr(to_status, "value", to_status))
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PayrollPeriodStateMachine:
    """State machine for payroll period status transitions.

    Allowed transitions (forward only):
    - draft → processing
    - processing → processed
    - processed → approved
    - approved → paid
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodStatus.DRAFT: [PeriodStatus.PROCESSING],
        PeriodStatus.PROCESSING: [PeriodStatus.PROCESSED],
        PeriodStatus.PROCESSED: [PeriodStatus.APPROVED],
        PeriodStatus.APPROVED: [PeriodStatus.PAID],
        PeriodStatus.PAID: [],  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidStateError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateError(from_status, to_status)

    @classmethod
    def can_resume(cls, status: str) -> bool:
        """A run interrupted mid-batch leaves its period in processing."""
        return status == PeriodStatus.PROCESSING

    @classmethod
    def validate_period_for_transition(
        cls, period: PayrollPeriod, to_status: str
    ) -> list[str]:
        """Validate a period for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_status = period.status

        if not cls.can_transition(from_status, to_status):
            errors.append(f"Cannot transition from '{from_status}' to '{to_status}'")
            return errors

        if to_status == PeriodStatus.APPROVED and period.processed_at is None:
            errors.append("Period has no processing timestamp")

        return errors
