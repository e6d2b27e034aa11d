"""Tests for payroll period lifecycle service."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from indo_payroll.calculators.tax_tables import ConfigurationError
from indo_payroll.services.period_service import (
    DuplicatePeriodError,
    PayrollPeriodService,
    PeriodNotFoundError,
)
from indo_payroll.services.state_machine import (
    AlreadyFinalizedError,
    FinalizationBlockedError,
    InvalidTransitionError,
)


def _ticking_clock(start: datetime = datetime(2024, 4, 1, tzinfo=timezone.utc)):
    ticks = iter(range(10_000))
    return lambda: start + timedelta(seconds=next(ticks))


@pytest.fixture
def service(payroll_engine) -> PayrollPeriodService:
    return PayrollPeriodService(payroll_engine, clock=_ticking_clock())


@pytest.fixture
def calculated_period(service, make_input):
    period = service.create_period(2024, 3)
    service.calculate_period(period.period_id, [make_input("EMP001"), make_input("EMP002")])
    return period


class TestCreatePeriod:
    """Test opening periods."""

    def test_create_draft(self, service):
        period = service.create_period(2024, 3, organization_id="org-1")

        assert period.status == "draft"
        assert period.organization_id == "org-1"
        assert period.line_items == {}
        assert service.get_period(period.period_id) is period

    def test_duplicate_month_rejected(self, service):
        first = service.create_period(2024, 3)

        with pytest.raises(DuplicatePeriodError) as exc_info:
            service.create_period(2024, 3)

        assert exc_info.value.existing_period_id == first.period_id

    def test_same_month_other_organization_allowed(self, service):
        service.create_period(2024, 3, organization_id="org-1")
        period = service.create_period(2024, 3, organization_id="org-2")

        assert period.organization_id == "org-2"

    def test_invalid_month(self, service):
        with pytest.raises(ValueError):
            service.create_period(2024, 13)

    def test_other_organization_cannot_see_period(self, service):
        period = service.create_period(2024, 3, organization_id="org-1")

        with pytest.raises(PeriodNotFoundError):
            service.get_period(period.period_id, organization_id="org-2")

    def test_unknown_period(self, service):
        with pytest.raises(PeriodNotFoundError):
            service.get_period("missing")


class TestCalculatePeriod:
    """Test calculation runs."""

    def test_calculation_stores_line_items(self, service, make_input):
        period = service.create_period(2024, 3)

        result = service.calculate_period(
            period.period_id, [make_input("EMP001"), make_input("EMP002", basic="-1")]
        )

        assert period.status == "draft"
        assert list(period.line_items) == ["EMP001"]
        assert list(period.errors) == ["EMP002"]
        assert period.tax_table_version == "2024.1"
        assert period.calculation_count == 1
        assert period.calculated_at is not None
        assert result.error_count == 1

    def test_recalculation_replaces_results(self, service, make_input):
        period = service.create_period(2024, 3)
        service.calculate_period(period.period_id, [make_input("EMP001", basic="-1")])

        service.calculate_period(period.period_id, [make_input("EMP001")])

        assert period.errors == {}
        assert period.line_items["EMP001"].net_pay == Decimal("9750000")
        assert period.calculation_count == 2

    def test_missing_tax_table_leaves_period_unchanged(self, service, make_input):
        period = service.create_period(2023, 12)

        with pytest.raises(ConfigurationError):
            service.calculate_period(period.period_id, [make_input()])

        assert period.status == "draft"
        assert period.line_items == {}
        assert period.calculation_count == 0
        assert period.calculated_at is None
        actions = [e.action for e in service.audit_trail(period.period_id)]
        assert actions[-1] == "calculation_failed"

    def test_finalized_period_cannot_be_recalculated(self, service, calculated_period, make_input):
        service.finalize_period(calculated_period.period_id)

        with pytest.raises(AlreadyFinalizedError) as exc_info:
            service.calculate_period(calculated_period.period_id, [make_input()])

        assert exc_info.value.to_status == "calculating"
        assert calculated_period.calculation_count == 1

    def test_calculation_in_progress_blocks_other_operations(self, service, make_input, monkeypatch):
        period = service.create_period(2024, 3)
        started = threading.Event()
        release = threading.Event()
        original = service.engine.calculate_period

        def slow_calculate(p, inputs):
            started.set()
            release.wait(timeout=5)
            return original(p, inputs)

        monkeypatch.setattr(service.engine, "calculate_period", slow_calculate)

        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(service.calculate_period, period.period_id, [make_input()])
            assert started.wait(timeout=5)

            assert period.status == "calculating"
            with pytest.raises(InvalidTransitionError):
                service.calculate_period(period.period_id, [make_input()])
            with pytest.raises(InvalidTransitionError):
                service.finalize_period(period.period_id)

            release.set()
            future.result(timeout=5)

        assert period.status == "draft"
        assert period.calculation_count == 1


class TestFinalizePeriod:
    """Test finalization."""

    def test_finalize(self, service, calculated_period):
        period = service.finalize_period(calculated_period.period_id)

        assert period.status == "finalized"
        assert period.finalized_at is not None

    def test_finalize_twice(self, service, calculated_period):
        service.finalize_period(calculated_period.period_id)
        line_items = dict(calculated_period.line_items)
        finalized_at = calculated_period.finalized_at

        with pytest.raises(AlreadyFinalizedError):
            service.finalize_period(calculated_period.period_id)

        assert calculated_period.status == "finalized"
        assert calculated_period.line_items == line_items
        assert calculated_period.finalized_at == finalized_at

    def test_finalize_uncalculated_blocked(self, service):
        period = service.create_period(2024, 3)

        with pytest.raises(FinalizationBlockedError) as exc_info:
            service.finalize_period(period.period_id)

        assert exc_info.value.errors == ["Period has not been calculated"]
        assert period.status == "draft"

    def test_finalize_with_errors_blocked(self, service, make_input):
        period = service.create_period(2024, 3)
        service.calculate_period(
            period.period_id, [make_input("EMP001"), make_input("EMP002", ptkp_status="X/9")]
        )

        with pytest.raises(FinalizationBlockedError):
            service.finalize_period(period.period_id)

    def test_concurrent_finalize_exactly_one_wins(self, service, calculated_period):
        barrier = threading.Barrier(8)

        def attempt():
            barrier.wait()
            try:
                service.finalize_period(calculated_period.period_id)
                return "ok"
            except AlreadyFinalizedError:
                return "already"

        with ThreadPoolExecutor(max_workers=8) as executor:
            outcomes = list(executor.map(lambda _: attempt(), range(8)))

        assert outcomes.count("ok") == 1
        assert outcomes.count("already") == 7
        finalize_changes = [
            e
            for e in service.audit_trail(calculated_period.period_id)
            if e.action == "status_change:draft:finalized"
        ]
        assert len(finalize_changes) == 1


class TestSupersedeAndDelete:
    """Test supersede and delete."""

    def test_supersede_finalized(self, service, calculated_period):
        service.finalize_period(calculated_period.period_id)

        replacement = service.supersede_period(calculated_period.period_id)

        assert replacement.status == "draft"
        assert (replacement.year, replacement.month) == (2024, 3)
        assert calculated_period.superseded_by == replacement.period_id
        assert calculated_period.status == "finalized"

    def test_supersede_twice_rejected(self, service, calculated_period):
        service.finalize_period(calculated_period.period_id)
        service.supersede_period(calculated_period.period_id)

        with pytest.raises(InvalidTransitionError):
            service.supersede_period(calculated_period.period_id)

    def test_supersede_draft_rejected(self, service, calculated_period):
        with pytest.raises(InvalidTransitionError):
            service.supersede_period(calculated_period.period_id)

    def test_delete_draft(self, service):
        period = service.create_period(2024, 3)

        service.delete_period(period.period_id)

        with pytest.raises(PeriodNotFoundError):
            service.get_period(period.period_id)
        # The month is free again
        assert service.create_period(2024, 3).status == "draft"

    def test_delete_finalized_rejected(self, service, calculated_period):
        service.finalize_period(calculated_period.period_id)

        with pytest.raises(InvalidTransitionError):
            service.delete_period(calculated_period.period_id)


class TestQueries:
    """Test listing, validation, stats and audit."""

    def test_list_newest_first(self, service):
        service.create_period(2024, 1)
        service.create_period(2024, 3)
        service.create_period(2023, 12)

        periods = service.list_periods()

        assert [(p.year, p.month) for p in periods] == [(2024, 3), (2024, 1), (2023, 12)]
        assert [p.month for p in service.list_periods(year=2024)] == [3, 1]

    def test_list_by_status(self, service, calculated_period):
        service.create_period(2024, 4)
        service.finalize_period(calculated_period.period_id)

        finalized = service.list_periods(status="finalized")
        assert [p.period_id for p in finalized] == [calculated_period.period_id]

    def test_totals(self, service, calculated_period):
        totals = service.get_totals(calculated_period.period_id)

        assert totals.employee_count == 2
        assert totals.total_net == Decimal("19500000")

    def test_validate_period(self, service, make_input):
        period = service.create_period(2024, 3)
        assert [i.type for i in service.validate_period(period.period_id).issues] == [
            "not_calculated"
        ]

        service.calculate_period(
            period.period_id, [make_input("EMP001"), make_input("EMP002", basic="-1")]
        )
        validation = service.validate_period(
            period.period_id, expected_employee_ids=["EMP001", "EMP002", "EMP003"]
        )

        assert not validation.is_valid
        by_type = {i.type: i for i in validation.issues}
        assert by_type["calculation_errors"].employee_ids == ("EMP002",)
        assert by_type["missing_employees"].employee_ids == ("EMP002", "EMP003")

    def test_validate_zero_net_pay(self, service, make_input):
        period = service.create_period(2024, 3)
        service.calculate_period(period.period_id, [make_input("EMP001", basic="0")])

        validation = service.validate_period(period.period_id)

        assert [i.type for i in validation.issues] == ["invalid_salaries"]

    def test_stats(self, service, calculated_period):
        service.finalize_period(calculated_period.period_id)
        service.supersede_period(calculated_period.period_id)
        service.create_period(2024, 4)

        stats = service.get_stats(year=2024)

        assert stats.total == 3
        assert stats.superseded == 1
        assert stats.draft == 2
        assert stats.finalized == 0
        assert stats.yearly_net_total == Decimal("0")

    def test_yearly_net_total(self, service, calculated_period):
        service.finalize_period(calculated_period.period_id)

        stats = service.get_stats(year=2024)

        assert stats.finalized == 1
        assert stats.yearly_net_total == Decimal("19500000")

    def test_audit_trail(self, service, calculated_period):
        service.finalize_period(calculated_period.period_id)

        actions = [e.action for e in service.audit_trail(calculated_period.period_id)]

        assert actions == [
            "created",
            "status_change:draft:calculating",
            "status_change:calculating:draft",
            "calculated",
            "status_change:draft:finalized",
        ]
