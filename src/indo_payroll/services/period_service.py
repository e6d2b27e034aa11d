"""Payroll period service - lifecycle of monthly payroll periods."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Sequence
from uuid import uuid4

from indo_payroll.calculators.engine import PayrollEngine, PeriodCalculationResult
from indo_payroll.calculators.line_builder import LineItemBuilder
from indo_payroll.calculators.types import (
    ZERO,
    EmployeePayrollInput,
    PayrollLineItem,
    PayrollPeriod,
    PeriodTotals,
)
from indo_payroll.services.state_machine import (
    AlreadyFinalizedError,
    FinalizationBlockedError,
    InvalidTransitionError,
    PayrollPeriodStateMachine,
    PeriodStatus,
)

logger = logging.getLogger(__name__)


class PeriodNotFoundError(Exception):
    """Raised when a payroll period does not exist in the caller's scope."""

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"Payroll period {period_id} not found")


class DuplicatePeriodError(Exception):
    """Raised when a live period already exists for the month."""

    def __init__(self, organization_id: str, year: int, month: int, existing_period_id: str):
        self.organization_id = organization_id
        self.year = year
        self.month = month
        self.existing_period_id = existing_period_id
        super().__init__(
            f"Payroll period {year}-{month:02d} already exists for organization "
            f"{organization_id} ({existing_period_id})"
        )


@dataclass(frozen=True)
class AuditEntry:
    """A recorded action against a payroll period."""

    period_id: str
    action: str
    occurred_at: datetime
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationIssue:
    type: str
    message: str
    employee_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class PeriodValidation:
    """Pre-finalize check of a period."""

    period_id: str
    issues: tuple[ValidationIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.issues


@dataclass(frozen=True)
class PeriodStats:
    """Period counts, plus net pay of finalized periods for a year."""

    total: int = 0
    draft: int = 0
    calculated: int = 0
    finalized: int = 0
    superseded: int = 0
    year: int | None = None
    yearly_net_total: Decimal = ZERO


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PayrollPeriodService:
    """Service for managing payroll period lifecycle.

    Operations:
    - create_period: Open a draft period for a month
    - calculate_period: Run the engine and store line items / errors
    - finalize_period: Freeze a fully calculated, error-free period
    - supersede_period: Replace a finalized period with a new draft
    - delete_period: Remove a draft period

    Periods are held in memory. The registry lock guards the period maps;
    each period has its own lock for status transitions. Calculation runs
    outside both locks while the period is marked ``calculating``.
    """

    def __init__(
        self,
        engine: PayrollEngine,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.engine = engine
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._periods: dict[str, PayrollPeriod] = {}
        self._period_locks: dict[str, threading.Lock] = {}
        self._audit: dict[str, list[AuditEntry]] = {}

    # =========================================================================
    # Queries
    # =========================================================================

    def get_period(self, period_id: str, organization_id: str | None = None) -> PayrollPeriod:
        """Get a period, optionally checking it belongs to the organization.

        Raises:
            PeriodNotFoundError: If missing or owned by another organization
        """
        with self._registry_lock:
            period = self._periods.get(period_id)
        if period is None or (
            organization_id is not None and period.organization_id != organization_id
        ):
            raise PeriodNotFoundError(period_id)
        return period

    def list_periods(
        self,
        organization_id: str | None = None,
        status: str | None = None,
        year: int | None = None,
    ) -> list[PayrollPeriod]:
        """List periods, newest month first."""
        with self._registry_lock:
            periods = list(self._periods.values())

        if organization_id is not None:
            periods = [p for p in periods if p.organization_id == organization_id]
        if status is not None:
            periods = [p for p in periods if p.status == status]
        if year is not None:
            periods = [p for p in periods if p.year == year]

        return sorted(
            periods,
            key=lambda p: (p.year, p.month, p.created_at or datetime.min.replace(tzinfo=timezone.utc)),
            reverse=True,
        )

    def get_line_items(
        self, period_id: str, organization_id: str | None = None
    ) -> list[PayrollLineItem]:
        period = self.get_period(period_id, organization_id)
        return [period.line_items[k] for k in sorted(period.line_items)]

    def get_totals(self, period_id: str, organization_id: str | None = None) -> PeriodTotals:
        return LineItemBuilder.calculate_totals(self.get_line_items(period_id, organization_id))

    def audit_trail(self, period_id: str, organization_id: str | None = None) -> list[AuditEntry]:
        self.get_period(period_id, organization_id)
        with self._registry_lock:
            return list(self._audit.get(period_id, []))

    def get_stats(self, year: int | None = None, organization_id: str | None = None) -> PeriodStats:
        """Count periods by status and total finalized net pay for ``year``."""
        periods = self.list_periods(organization_id=organization_id)
        live = [p for p in periods if not p.is_superseded]

        yearly_net = ZERO
        if year is not None:
            for period in live:
                if period.year == year and period.status == PeriodStatus.FINALIZED:
                    yearly_net += sum((li.net_pay for li in period.line_items.values()), ZERO)

        return PeriodStats(
            total=len(periods),
            draft=sum(1 for p in live if p.status == PeriodStatus.DRAFT),
            calculated=sum(
                1 for p in live if p.status == PeriodStatus.DRAFT and p.calculated_at is not None
            ),
            finalized=sum(1 for p in live if p.status == PeriodStatus.FINALIZED),
            superseded=len(periods) - len(live),
            year=year,
            yearly_net_total=yearly_net,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_period(self, year: int, month: int, organization_id: str = "default") -> PayrollPeriod:
        """Open a draft period.

        Raises:
            DuplicatePeriodError: If a non-superseded period exists for the month
            ValueError: If the month is out of range
        """
        with self._registry_lock:
            return self._create_locked(year, month, organization_id)

    def _create_locked(
        self, year: int, month: int, organization_id: str, replacing: str | None = None
    ) -> PayrollPeriod:
        for existing in self._periods.values():
            if (
                existing.period_id != replacing
                and existing.organization_id == organization_id
                and existing.year == year
                and existing.month == month
                and not existing.is_superseded
            ):
                raise DuplicatePeriodError(organization_id, year, month, existing.period_id)

        period = PayrollPeriod(
            period_id=str(uuid4()),
            year=year,
            month=month,
            organization_id=organization_id,
            status=PeriodStatus.DRAFT.value,
            created_at=self._clock(),
        )
        self._periods[period.period_id] = period
        self._period_locks[period.period_id] = threading.Lock()
        self._audit[period.period_id] = []
        self._record(period.period_id, "created", {"year": year, "month": month})

        logger.info("Created payroll period %s for %d-%02d", period.period_id, year, month)
        return period

    def calculate_period(
        self,
        period_id: str,
        inputs: Sequence[EmployeePayrollInput],
        organization_id: str | None = None,
    ) -> PeriodCalculationResult:
        """Recalculate a draft period, replacing its line items and errors.

        Raises:
            AlreadyFinalizedError: If the period is finalized
            InvalidTransitionError: If a calculation is already in progress
            ConfigurationError: If no tax table covers the period; the
                period is left unchanged
        """
        period = self.get_period(period_id, organization_id)
        lock = self._lock_for(period_id)

        with lock:
            if period.status == PeriodStatus.FINALIZED:
                raise AlreadyFinalizedError(period_id, PeriodStatus.CALCULATING.value)
            PayrollPeriodStateMachine.validate_transition(period.status, PeriodStatus.CALCULATING)
            self._transition(period, PeriodStatus.CALCULATING)

        try:
            result = self.engine.calculate_period(period, inputs)
        except Exception as e:
            with lock:
                self._transition(period, PeriodStatus.DRAFT)
                self._record(period_id, "calculation_failed", {"error": str(e)})
            raise

        with lock:
            period.line_items = {li.employee_id: li for li in result.line_items}
            period.errors = {err.employee_id: err for err in result.errors}
            period.tax_table_version = result.tax_table_version
            period.calculation_count += 1
            period.calculated_at = self._clock()
            self._transition(period, PeriodStatus.DRAFT)
            self._record(
                period_id,
                "calculated",
                {
                    "tax_table_version": result.tax_table_version,
                    "line_items": len(period.line_items),
                    "errors": result.error_count,
                    "skipped": list(result.skipped_employee_ids),
                },
            )

        return result

    def finalize_period(self, period_id: str, organization_id: str | None = None) -> PayrollPeriod:
        """Finalize a calculated period with no outstanding errors.

        Raises:
            AlreadyFinalizedError: If the period is already finalized
            InvalidTransitionError: If a calculation is in progress
            FinalizationBlockedError: If not calculated or errors remain
        """
        period = self.get_period(period_id, organization_id)

        with self._lock_for(period_id):
            if period.status == PeriodStatus.FINALIZED:
                raise AlreadyFinalizedError(period_id)
            PayrollPeriodStateMachine.validate_transition(period.status, PeriodStatus.FINALIZED)

            errors = PayrollPeriodStateMachine.validate_period_for_finalize(period)
            if errors:
                raise FinalizationBlockedError(period_id, errors)

            period.finalized_at = self._clock()
            self._transition(period, PeriodStatus.FINALIZED)

        return period

    def validate_period(
        self,
        period_id: str,
        expected_employee_ids: Iterable[str] | None = None,
        organization_id: str | None = None,
    ) -> PeriodValidation:
        """Report issues that would block or should be reviewed before finalize."""
        period = self.get_period(period_id, organization_id)
        issues: list[ValidationIssue] = []

        if period.calculated_at is None:
            issues.append(ValidationIssue("not_calculated", "Period has not been calculated"))

        if period.errors:
            issues.append(
                ValidationIssue(
                    "calculation_errors",
                    f"{len(period.errors)} employee(s) have calculation errors",
                    tuple(sorted(period.errors)),
                )
            )

        if expected_employee_ids is not None:
            missing = sorted(set(expected_employee_ids) - set(period.line_items))
            if missing:
                issues.append(
                    ValidationIssue(
                        "missing_employees",
                        f"{len(missing)} active employee(s) not processed",
                        tuple(missing),
                    )
                )

        non_positive = sorted(
            employee_id for employee_id, li in period.line_items.items() if li.net_pay <= 0
        )
        if non_positive:
            issues.append(
                ValidationIssue(
                    "invalid_salaries",
                    f"{len(non_positive)} employee(s) have zero or negative net pay",
                    tuple(non_positive),
                )
            )

        return PeriodValidation(period_id=period_id, issues=tuple(issues))

    def supersede_period(self, period_id: str, organization_id: str | None = None) -> PayrollPeriod:
        """Open a replacement draft for a finalized period.

        Raises:
            InvalidTransitionError: If the period is not finalized or is
                already superseded
        """
        period = self.get_period(period_id, organization_id)

        with self._lock_for(period_id):
            if period.status != PeriodStatus.FINALIZED:
                raise InvalidTransitionError(
                    period.status, "superseded", "only finalized periods can be superseded"
                )
            if period.is_superseded:
                raise InvalidTransitionError(
                    period.status, "superseded", f"already superseded by {period.superseded_by}"
                )

            with self._registry_lock:
                replacement = self._create_locked(
                    period.year, period.month, period.organization_id, replacing=period_id
                )
                period.superseded_by = replacement.period_id
                self._record(period_id, "superseded", {"superseded_by": replacement.period_id})

        logger.info("Period %s superseded by %s", period_id, replacement.period_id)
        return replacement

    def delete_period(self, period_id: str, organization_id: str | None = None) -> None:
        """Delete a draft period.

        Raises:
            InvalidTransitionError: If the period is not a draft
        """
        period = self.get_period(period_id, organization_id)

        with self._lock_for(period_id):
            if period.status != PeriodStatus.DRAFT:
                raise InvalidTransitionError(
                    period.status, "deleted", "only draft periods can be deleted"
                )
            with self._registry_lock:
                del self._periods[period_id]
                del self._period_locks[period_id]
                self._audit.pop(period_id, None)

        logger.info("Deleted payroll period %s", period_id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _lock_for(self, period_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._period_locks.get(period_id)
        if lock is None:
            raise PeriodNotFoundError(period_id)
        return lock

    def _transition(self, period: PayrollPeriod, to_status: str) -> None:
        """Apply a validated transition. Caller holds the period lock."""
        old_status = period.status
        PayrollPeriodStateMachine.validate_transition(old_status, to_status)
        period.status = PeriodStatus(to_status).value
        self._record(period.period_id, f"status_change:{old_status}:{period.status}")
        logger.info(
            "Period %s transitioned %s -> %s", period.period_id, old_status, period.status
        )

    def _record(self, period_id: str, action: str, details: dict[str, Any] | None = None) -> None:
        entry = AuditEntry(
            period_id=period_id,
            action=action,
            occurred_at=self._clock(),
            details=details,
        )
        self._audit.setdefault(period_id, []).append(entry)
