"""Salary component aggregation into gross pay."""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from indo_payroll.calculators.types import (
    ZERO,
    ComponentType,
    Employee,
    GrossPayBreakdown,
    PayrollCalculationError,
    SalaryComponent,
    VariableInputs,
)


class InvalidComponentError(PayrollCalculationError):
    """Raised when a salary component or variable input is malformed."""

    code = "invalid_component"

    def __init__(self, employee_id: str, field_name: str, reason: str):
        self.employee_id = employee_id
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid {field_name} for employee {employee_id}: {reason}")


class SalaryComponentAggregator:
    """Combines recurring components and variable inputs into gross pay.

    gross_total = basic + fixed allowances + variable (bonus, overtime, other
    allowances). Deductions are summed separately; they never reduce gross.
    """

    def aggregate(
        self,
        employee: Employee,
        components: Iterable[SalaryComponent],
        period_date: date,
        variable_inputs: VariableInputs | None = None,
    ) -> GrossPayBreakdown:
        """Aggregate the components active on ``period_date``.

        Raises:
            InvalidComponentError: On negative, non-numeric or foreign components
        """
        variable_inputs = variable_inputs or VariableInputs()
        basic = ZERO
        allowances = ZERO
        deductions = ZERO

        for component in components:
            if component.employee_id != employee.employee_id:
                raise InvalidComponentError(
                    employee.employee_id,
                    f"component '{component.name}'",
                    f"belongs to employee {component.employee_id}",
                )

            if not component.is_active_on(period_date):
                continue

            amount = self._to_amount(
                component.amount, employee.employee_id, f"component '{component.name}'"
            )

            if component.component_type == ComponentType.BASIC_SALARY:
                basic += amount
            elif component.component_type == ComponentType.FIXED_ALLOWANCE:
                allowances += amount
            elif component.component_type == ComponentType.DEDUCTION:
                deductions += amount
            else:
                raise InvalidComponentError(
                    employee.employee_id,
                    f"component '{component.name}'",
                    f"unknown component type '{component.component_type}'",
                )

        bonus = self._to_amount(variable_inputs.bonus, employee.employee_id, "bonus")
        overtime = self._to_amount(
            variable_inputs.overtime_pay, employee.employee_id, "overtime_pay"
        )
        other_allowances = self._to_amount(
            variable_inputs.other_allowances, employee.employee_id, "other_allowances"
        )
        other_deductions = self._to_amount(
            variable_inputs.other_deductions, employee.employee_id, "other_deductions"
        )

        variable = bonus + overtime + other_allowances

        return GrossPayBreakdown(
            basic=basic,
            allowances=allowances,
            deductions=deductions + other_deductions,
            variable=variable,
            gross_total=basic + allowances + variable,
        )

    @staticmethod
    def _to_amount(value: Any, employee_id: str, field_name: str) -> Decimal:
        """Coerce an amount to Decimal, rejecting rather than coercing bad data."""
        if value is None:
            return ZERO
        if isinstance(value, bool):
            raise InvalidComponentError(employee_id, field_name, f"not a number: {value!r}")
        try:
            amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidComponentError(
                employee_id, field_name, f"not a number: {value!r}"
            ) from None
        if not amount.is_finite():
            raise InvalidComponentError(employee_id, field_name, f"not finite: {value!r}")
        if amount < 0:
            raise InvalidComponentError(employee_id, field_name, f"negative amount {amount}")
        return amount
