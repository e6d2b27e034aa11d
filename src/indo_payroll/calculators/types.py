"""Type definitions for calculation pipeline."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

ZERO = Decimal("0")


class PtkpStatus(str, Enum):
    """PTKP (non-taxable income) categories: marital status / dependents."""

    TK_0 = "TK/0"
    TK_1 = "TK/1"
    TK_2 = "TK/2"
    TK_3 = "TK/3"
    K_0 = "K/0"
    K_1 = "K/1"
    K_2 = "K/2"
    K_3 = "K/3"


class ComponentType(str, Enum):
    """Salary component types."""

    BASIC_SALARY = "basic_salary"
    FIXED_ALLOWANCE = "fixed_allowance"
    DEDUCTION = "deduction"


class EmploymentStatus(str, Enum):
    PERMANENT = "permanent"
    CONTRACT = "contract"


class EmployeeStatus(str, Enum):
    ACTIVE = "active"
    RESIGNED = "resigned"
    TERMINATED = "terminated"


class BpjsGroup(str, Enum):
    """BPJS program families."""

    HEALTH = "health"
    MANPOWER = "manpower"


class PayrollCalculationError(Exception):
    """Base class for errors that isolate a single employee in a run."""

    code = "calculation_error"


@dataclass(frozen=True)
class BpjsEnrollment:
    """BPJS enrollment flags for an employee."""

    health: bool = False
    manpower: bool = False

    def is_enrolled(self, group: str) -> bool:
        if group == BpjsGroup.HEALTH:
            return self.health
        if group == BpjsGroup.MANPOWER:
            return self.manpower
        return False


@dataclass(frozen=True)
class Employee:
    """Employee master data as consumed by the engine."""

    employee_id: str
    full_name: str
    nik: str
    ptkp_status: str
    bpjs: BpjsEnrollment = field(default_factory=BpjsEnrollment)
    npwp: str | None = None
    employment_status: str = EmploymentStatus.PERMANENT.value
    employee_status: str = EmployeeStatus.ACTIVE.value

    @property
    def is_active(self) -> bool:
        return self.employee_status == EmployeeStatus.ACTIVE


@dataclass(frozen=True)
class SalaryComponent:
    """A recurring salary component owned by one employee.

    The effect on pay is determined by ``component_type``; ``amount`` is
    always non-negative.
    """

    component_id: str
    employee_id: str
    name: str
    component_type: str
    amount: Any  # validated and coerced to Decimal by the aggregator
    is_active: bool = True
    effective_start: date | None = None
    effective_end: date | None = None

    def is_active_on(self, as_of_date: date) -> bool:
        """Check whether the component applies on a given date."""
        if not self.is_active:
            return False
        if self.effective_start is not None and self.effective_start > as_of_date:
            return False
        if self.effective_end is not None and self.effective_end < as_of_date:
            return False
        return True


@dataclass(frozen=True)
class VariableInputs:
    """Period-specific pay inputs for one employee."""

    bonus: Any = ZERO
    overtime_pay: Any = ZERO
    other_allowances: Any = ZERO
    other_deductions: Any = ZERO

    def to_canonical_dict(self) -> dict[str, str]:
        return {
            "bonus": str(self.bonus),
            "overtime_pay": str(self.overtime_pay),
            "other_allowances": str(self.other_allowances),
            "other_deductions": str(self.other_deductions),
        }


@dataclass(frozen=True)
class EmployeePayrollInput:
    """Everything the engine needs to calculate one employee for a period."""

    employee: Employee
    components: tuple[SalaryComponent, ...] = ()
    variable_inputs: VariableInputs = field(default_factory=VariableInputs)

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for fingerprinting (deterministic ordering)."""
        employee = self.employee
        return {
            "employee": {
                "employee_id": employee.employee_id,
                "nik": employee.nik,
                "npwp": employee.npwp,
                "ptkp_status": employee.ptkp_status,
                "bpjs_health": employee.bpjs.health,
                "bpjs_manpower": employee.bpjs.manpower,
                "employee_status": employee.employee_status,
            },
            "components": sorted(
                (
                    {
                        "component_id": c.component_id,
                        "component_type": c.component_type,
                        "amount": str(c.amount),
                        "is_active": c.is_active,
                        "effective_start": str(c.effective_start) if c.effective_start else None,
                        "effective_end": str(c.effective_end) if c.effective_end else None,
                    }
                    for c in self.components
                ),
                key=lambda c: c["component_id"],
            ),
            "variable_inputs": self.variable_inputs.to_canonical_dict(),
        }


@dataclass(frozen=True)
class GrossPayBreakdown:
    """Aggregated pay components for one employee and period."""

    basic: Decimal
    allowances: Decimal
    deductions: Decimal
    variable: Decimal
    gross_total: Decimal


@dataclass(frozen=True)
class ProgramContribution:
    """Contribution to a single BPJS program (e.g. JHT)."""

    code: str
    group: str
    base: Decimal
    employee: Decimal
    employer: Decimal
    tax_deductible: bool = False
    taxable_benefit: bool = False


@dataclass(frozen=True)
class BpjsContribution:
    """Employee / employer BPJS split for Health and Manpower."""

    health_employee: Decimal
    health_employer: Decimal
    manpower_employee: Decimal
    manpower_employer: Decimal
    programs: tuple[ProgramContribution, ...] = ()

    @property
    def total_employee(self) -> Decimal:
        return self.health_employee + self.manpower_employee

    @property
    def total_employer(self) -> Decimal:
        return self.health_employer + self.manpower_employer

    @property
    def tax_deductible_employee(self) -> Decimal:
        """Employee contributions that reduce PPh 21 taxable income."""
        return sum((p.employee for p in self.programs if p.tax_deductible), ZERO)

    @property
    def taxable_employer_benefit(self) -> Decimal:
        """Employer premiums that count as taxable income for PPh 21."""
        return sum((p.employer for p in self.programs if p.taxable_benefit), ZERO)


@dataclass(frozen=True)
class WithholdingResult:
    """PPh 21 computation trace for one month."""

    gross_income: Decimal
    occupational_cost: Decimal
    bpjs_deduction: Decimal
    net_monthly_income: Decimal
    annualized_net_income: Decimal
    ptkp_allowance: Decimal
    annual_taxable_income: Decimal
    annual_tax: Decimal
    monthly_withholding: Decimal
    taxable_benefit: Decimal = ZERO


@dataclass(frozen=True)
class PayrollLineItem:
    """Calculated pay for one employee in one period."""

    period_id: str
    employee_id: str
    tax_table_version: str
    calculation_id: str

    basic_salary: Decimal
    fixed_allowances: Decimal
    variable_pay: Decimal
    gross_pay: Decimal

    bpjs_health_employee: Decimal
    bpjs_health_employer: Decimal
    bpjs_manpower_employee: Decimal
    bpjs_manpower_employer: Decimal
    bpjs_employee_total: Decimal
    bpjs_employer_total: Decimal

    occupational_cost: Decimal
    ptkp_allowance: Decimal
    taxable_income: Decimal  # annual, after PTKP and rounding
    pph21_annual: Decimal
    pph21_withheld: Decimal  # monthly

    net_pay: Decimal
    other_deductions: Decimal
    take_home_pay: Decimal

    def to_canonical_dict(self) -> dict[str, str]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "period_id": self.period_id,
            "employee_id": self.employee_id,
            "tax_table_version": self.tax_table_version,
            "calculation_id": self.calculation_id,
            "basic_salary": str(self.basic_salary),
            "fixed_allowances": str(self.fixed_allowances),
            "variable_pay": str(self.variable_pay),
            "gross_pay": str(self.gross_pay),
            "bpjs_health_employee": str(self.bpjs_health_employee),
            "bpjs_health_employer": str(self.bpjs_health_employer),
            "bpjs_manpower_employee": str(self.bpjs_manpower_employee),
            "bpjs_manpower_employer": str(self.bpjs_manpower_employer),
            "bpjs_employee_total": str(self.bpjs_employee_total),
            "bpjs_employer_total": str(self.bpjs_employer_total),
            "occupational_cost": str(self.occupational_cost),
            "ptkp_allowance": str(self.ptkp_allowance),
            "taxable_income": str(self.taxable_income),
            "pph21_annual": str(self.pph21_annual),
            "pph21_withheld": str(self.pph21_withheld),
            "net_pay": str(self.net_pay),
            "other_deductions": str(self.other_deductions),
            "take_home_pay": str(self.take_home_pay),
        }


@dataclass(frozen=True)
class PeriodTotals:
    """Aggregate amounts across a period's line items."""

    employee_count: int = 0
    total_gross: Decimal = ZERO
    total_pph21: Decimal = ZERO
    total_bpjs_employee: Decimal = ZERO
    total_bpjs_employer: Decimal = ZERO
    total_net: Decimal = ZERO
    total_take_home: Decimal = ZERO


@dataclass(frozen=True)
class LineItemError:
    """A per-employee calculation failure recorded against a period."""

    employee_id: str
    code: str
    message: str


@dataclass
class PayrollPeriod:
    """A monthly payroll period and its calculated results."""

    period_id: str
    year: int
    month: int
    organization_id: str = "default"
    status: str = "draft"
    line_items: dict[str, PayrollLineItem] = field(default_factory=dict)
    errors: dict[str, LineItemError] = field(default_factory=dict)
    tax_table_version: str | None = None
    calculation_count: int = 0
    created_at: datetime | None = None
    calculated_at: datetime | None = None
    finalized_at: datetime | None = None
    superseded_by: str | None = None

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Invalid period month: {self.month}")

    @property
    def as_of_date(self) -> date:
        """Calculation date for the period (last day of the month)."""
        last_day = calendar.monthrange(self.year, self.month)[1]
        return date(self.year, self.month, last_day)

    @property
    def outstanding_error_count(self) -> int:
        return len(self.errors)

    @property
    def is_superseded(self) -> bool:
        return self.superseded_by is not None
