"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from indo_payroll.calculators.types import (
    BpjsEnrollment,
    Employee,
    EmployeePayrollInput,
    PayrollPeriod,
    SalaryComponent,
    VariableInputs,
)
from indo_payroll.validators import format_npwp, validate_nik, validate_npwp


# ============================================================================
# Employee input schemas
# ============================================================================


class SalaryComponentInput(BaseModel):
    """Schema for a salary component supplied with a calculation request.

    Amounts are not range-checked and non-numeric strings pass through, so
    a bad component is reported against its employee by the calculation run
    instead of failing the whole request.
    """

    component_id: str
    name: str
    component_type: str
    amount: Decimal | str
    is_active: bool = True
    effective_start: date | None = None
    effective_end: date | None = None


class EmployeeInput(BaseModel):
    """Schema for one employee's master data and period inputs."""

    employee_id: str
    full_name: str
    nik: str
    npwp: str | None = None
    ptkp_status: str
    employment_status: str = "permanent"
    employee_status: str = "active"
    bpjs_health: bool = False
    bpjs_manpower: bool = False
    components: list[SalaryComponentInput] = []
    bonus: Decimal = Decimal("0")
    overtime_pay: Decimal = Decimal("0")
    other_allowances: Decimal = Decimal("0")
    other_deductions: Decimal = Decimal("0")

    def to_payroll_input(self) -> EmployeePayrollInput:
        return EmployeePayrollInput(
            employee=Employee(
                employee_id=self.employee_id,
                full_name=self.full_name,
                nik=self.nik,
                npwp=format_npwp(self.npwp) if self.npwp else None,
                ptkp_status=self.ptkp_status,
                employment_status=self.employment_status,
                employee_status=self.employee_status,
                bpjs=BpjsEnrollment(health=self.bpjs_health, manpower=self.bpjs_manpower),
            ),
            components=tuple(
                SalaryComponent(employee_id=self.employee_id, **c.model_dump())
                for c in self.components
            ),
            variable_inputs=VariableInputs(
                bonus=self.bonus,
                overtime_pay=self.overtime_pay,
                other_allowances=self.other_allowances,
                other_deductions=self.other_deductions,
            ),
        )


# ============================================================================
# Payroll period schemas
# ============================================================================


class PeriodCreate(BaseModel):
    """Schema for creating a new payroll period."""

    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)


class PeriodResponse(BaseModel):
    """Schema for payroll period response."""

    period_id: str
    organization_id: str
    year: int
    month: int
    status: str
    tax_table_version: str | None = None
    calculation_count: int
    line_item_count: int
    error_count: int
    created_at: datetime | None = None
    calculated_at: datetime | None = None
    finalized_at: datetime | None = None
    superseded_by: str | None = None

    @classmethod
    def from_period(cls, period: PayrollPeriod) -> "PeriodResponse":
        return cls(
            period_id=period.period_id,
            organization_id=period.organization_id,
            year=period.year,
            month=period.month,
            status=period.status,
            tax_table_version=period.tax_table_version,
            calculation_count=period.calculation_count,
            line_item_count=len(period.line_items),
            error_count=period.outstanding_error_count,
            created_at=period.created_at,
            calculated_at=period.calculated_at,
            finalized_at=period.finalized_at,
            superseded_by=period.superseded_by,
        )


class PeriodListResponse(BaseModel):
    """Schema for listing payroll periods."""

    items: list[PeriodResponse]
    total: int


class CalculateRequest(BaseModel):
    """Schema for a period calculation request."""

    employees: list[EmployeeInput]


class LineItemErrorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    code: str
    message: str


class TotalsResponse(BaseModel):
    """Schema for period totals."""

    model_config = ConfigDict(from_attributes=True)

    employee_count: int
    total_gross: Decimal
    total_pph21: Decimal
    total_bpjs_employee: Decimal
    total_bpjs_employer: Decimal
    total_net: Decimal
    total_take_home: Decimal


class CalculationResponse(BaseModel):
    """Schema for a period calculation run report."""

    period: PeriodResponse
    tax_table_version: str
    line_item_count: int
    error_count: int
    errors: list[LineItemErrorResponse]
    skipped_employee_ids: list[str]
    totals: TotalsResponse


class LineItemResponse(BaseModel):
    """Schema for payroll line item response."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    calculation_id: str
    tax_table_version: str
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
    taxable_income: Decimal
    pph21_annual: Decimal
    pph21_withheld: Decimal
    net_pay: Decimal
    other_deductions: Decimal
    take_home_pay: Decimal


class LineItemListResponse(BaseModel):
    """Schema for listing a period's line items."""

    items: list[LineItemResponse]
    errors: list[LineItemErrorResponse]
    totals: TotalsResponse


class ValidationIssueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    message: str
    employee_ids: list[str]


class ValidationResponse(BaseModel):
    """Schema for pre-finalize validation."""

    period_id: str
    is_valid: bool
    issues: list[ValidationIssueResponse]


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: str
    occurred_at: datetime
    details: dict[str, Any] | None = None


class StatsResponse(BaseModel):
    """Schema for payroll period statistics."""

    model_config = ConfigDict(from_attributes=True)

    total: int
    draft: int
    calculated: int
    finalized: int
    superseded: int
    year: int | None = None
    yearly_net_total: Decimal


# ============================================================================
# Preview schemas
# ============================================================================


class PreviewRequest(BaseModel):
    """Schema for a single-employee preview."""

    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)
    employee: EmployeeInput

    @field_validator("employee")
    @classmethod
    def check_identity(cls, employee: EmployeeInput) -> EmployeeInput:
        errors = validate_nik(employee.nik) + validate_npwp(employee.npwp)
        if errors:
            raise ValueError("; ".join(errors))
        return employee


class PreviewResponse(BaseModel):
    """Schema for preview response."""

    tax_table_version: str
    line_item: LineItemResponse
    explanation: list[str]


# ============================================================================
# Tax table schemas
# ============================================================================


class TaxTableResponse(BaseModel):
    """Schema for a tax table version."""

    version: str
    effective_start: date
    effective_end: date | None = None
    fingerprint: str
    payload: dict[str, Any]


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
