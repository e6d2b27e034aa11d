"""Service layer for payroll period lifecycle and tax table storage."""

from indo_payroll.services.period_service import (
    DuplicatePeriodError,
    PayrollPeriodService,
    PeriodNotFoundError,
)
from indo_payroll.services.state_machine import (
    AlreadyFinalizedError,
    FinalizationBlockedError,
    InvalidTransitionError,
    PayrollPeriodStateMachine,
    PeriodStatus,
)
from indo_payroll.services.tax_table_repository import TaxTableRepository

__all__ = [
    "PayrollPeriodService",
    "PayrollPeriodStateMachine",
    "PeriodStatus",
    "TaxTableRepository",
    "AlreadyFinalizedError",
    "DuplicatePeriodError",
    "FinalizationBlockedError",
    "InvalidTransitionError",
    "PeriodNotFoundError",
]
