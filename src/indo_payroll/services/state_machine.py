"""Payroll period state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from indo_payroll.calculators.types import PayrollPeriod


class PeriodStatus(str, Enum):
    """Payroll period status values."""

    DRAFT = "draft"
    CALCULATING = "calculating"
    FINALIZED = "finalized"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class AlreadyFinalizedError(InvalidTransitionError):
    """Raised when a finalized period is finalized or recalculated again."""

    def __init__(self, period_id: str, to_status: str = PeriodStatus.FINALIZED.value):
        self.period_id = period_id
        super().__init__(
            PeriodStatus.FINALIZED.value,
            to_status,
            reason=f"period {period_id} is already finalized",
        )


class FinalizationBlockedError(Exception):
    """Raised when a period is not ready to be finalized."""

    def __init__(self, period_id: str, errors: list[str]):
        self.period_id = period_id
        self.errors = errors
        super().__init__(f"Cannot finalize period {period_id}: {'; '.join(errors)}")


class PayrollPeriodStateMachine:
    """State machine for payroll period status transitions.

    Allowed transitions:
    - draft → calculating (recalculation started)
    - calculating → draft (recalculation finished, with line items)
    - draft → finalized

    Finalized is terminal.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodStatus.DRAFT: [PeriodStatus.CALCULATING, PeriodStatus.FINALIZED],
        PeriodStatus.CALCULATING: [PeriodStatus.DRAFT],
        PeriodStatus.FINALIZED: [],  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status, [])

    @classmethod
    def can_calculate(cls, status: str) -> bool:
        return status == PeriodStatus.DRAFT

    @classmethod
    def validate_period_for_finalize(cls, period: PayrollPeriod) -> list[str]:
        """Validate a period for finalization, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []

        if period.status != PeriodStatus.DRAFT:
            errors.append(f"Cannot finalize a period in status '{period.status}'")
            return errors

        if period.calculated_at is None:
            errors.append("Period has not been calculated")
        elif not period.line_items:
            errors.append("Period has no line items")

        if period.outstanding_error_count:
            errors.append(
                f"{period.outstanding_error_count} employee(s) have calculation errors"
            )

        return errors
