"""Tests for payroll period state machine."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from indo_payroll.calculators.types import LineItemError, PayrollPeriod
from indo_payroll.services.state_machine import (
    AlreadyFinalizedError,
    InvalidTransitionError,
    PayrollPeriodStateMachine,
    PeriodStatus,
)


class TestPayrollPeriodStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # draft → calculating
        assert PayrollPeriodStateMachine.can_transition("draft", "calculating") is True

        # calculating → draft
        assert PayrollPeriodStateMachine.can_transition("calculating", "draft") is True

        # draft → finalized
        assert PayrollPeriodStateMachine.can_transition("draft", "finalized") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't finalize mid-calculation
        assert PayrollPeriodStateMachine.can_transition("calculating", "finalized") is False

        # Finalized is terminal
        assert PayrollPeriodStateMachine.can_transition("finalized", "draft") is False
        assert PayrollPeriodStateMachine.can_transition("finalized", "calculating") is False
        assert PayrollPeriodStateMachine.can_transition("finalized", "finalized") is False

        # Unknown statuses
        assert PayrollPeriodStateMachine.can_transition("approved", "finalized") is False

    def test_validate_transition_raises(self):
        """Test that validate_transition raises for invalid transitions."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollPeriodStateMachine.validate_transition("finalized", "draft")

        assert exc_info.value.from_status == "finalized"
        assert exc_info.value.to_status == "draft"

    def test_already_finalized_is_invalid_transition(self):
        error = AlreadyFinalizedError("period-1")

        assert isinstance(error, InvalidTransitionError)
        assert error.from_status == "finalized"
        assert error.to_status == "finalized"
        assert "period-1" in str(error)

    def test_can_calculate(self):
        """Test calculation allowed statuses."""
        assert PayrollPeriodStateMachine.can_calculate("draft") is True
        assert PayrollPeriodStateMachine.can_calculate("calculating") is False
        assert PayrollPeriodStateMachine.can_calculate("finalized") is False

    def test_is_terminal(self):
        assert PayrollPeriodStateMachine.is_terminal("finalized") is True
        assert PayrollPeriodStateMachine.is_terminal("draft") is False

    def test_get_next_statuses(self):
        """Test getting allowed next statuses."""
        assert set(PayrollPeriodStateMachine.get_next_statuses("draft")) == {
            "calculating",
            "finalized",
        }
        assert PayrollPeriodStateMachine.get_next_statuses(PeriodStatus.CALCULATING) == ["draft"]
        assert PayrollPeriodStateMachine.get_next_statuses("finalized") == []


class TestFinalizeValidation:
    """Test finalization readiness checks."""

    def _period(self, **kwargs) -> PayrollPeriod:
        return PayrollPeriod(period_id="period-1", year=2024, month=3, **kwargs)

    def test_uncalculated_period_blocked(self):
        errors = PayrollPeriodStateMachine.validate_period_for_finalize(self._period())
        assert errors == ["Period has not been calculated"]

    def test_calculated_without_line_items_blocked(self):
        period = self._period(calculated_at=datetime(2024, 3, 31, tzinfo=timezone.utc))

        errors = PayrollPeriodStateMachine.validate_period_for_finalize(period)
        assert errors == ["Period has no line items"]

    def test_outstanding_errors_blocked(self, payroll_engine, make_input):
        period = self._period()
        result = payroll_engine.calculate_period(period, [make_input("EMP001")])
        period.line_items = {li.employee_id: li for li in result.line_items}
        period.calculated_at = datetime(2024, 3, 31, tzinfo=timezone.utc)
        period.errors = {
            "EMP002": LineItemError(employee_id="EMP002", code="invalid_component", message="x")
        }

        errors = PayrollPeriodStateMachine.validate_period_for_finalize(period)
        assert errors == ["1 employee(s) have calculation errors"]

    def test_ready_period_passes(self, payroll_engine, make_input):
        period = self._period()
        result = payroll_engine.calculate_period(period, [make_input("EMP001")])
        period.line_items = {li.employee_id: li for li in result.line_items}
        period.calculated_at = datetime(2024, 3, 31, tzinfo=timezone.utc)

        assert period.line_items["EMP001"].net_pay == Decimal("9750000")
        assert PayrollPeriodStateMachine.validate_period_for_finalize(period) == []

    def test_wrong_status_blocked(self):
        period = self._period(status="calculating")

        errors = PayrollPeriodStateMachine.validate_period_for_finalize(period)
        assert errors == ["Cannot finalize a period in status 'calculating'"]
