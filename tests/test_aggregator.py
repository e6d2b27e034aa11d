"""Tests for salary component aggregation."""

from datetime import date
from decimal import Decimal

import pytest

from indo_payroll.calculators.aggregator import InvalidComponentError, SalaryComponentAggregator
from indo_payroll.calculators.types import SalaryComponent, VariableInputs

PERIOD_DATE = date(2024, 3, 31)


def component(name: str, component_type: str, amount, **kwargs) -> SalaryComponent:
    return SalaryComponent(
        component_id=kwargs.pop("component_id", name),
        employee_id=kwargs.pop("employee_id", "EMP001"),
        name=name,
        component_type=component_type,
        amount=amount,
        **kwargs,
    )


class TestAggregation:
    """Test gross pay aggregation."""

    def test_sums_by_component_type(self, make_employee):
        """Basic, allowances and variable pay make up gross; deductions do not."""
        aggregator = SalaryComponentAggregator()

        breakdown = aggregator.aggregate(
            make_employee(),
            [
                component("Gaji Pokok", "basic_salary", Decimal("8000000")),
                component("Tunjangan Makan", "fixed_allowance", Decimal("750000")),
                component("Tunjangan Transport", "fixed_allowance", Decimal("500000")),
                component("Koperasi", "deduction", Decimal("100000")),
            ],
            PERIOD_DATE,
            VariableInputs(
                bonus=Decimal("1000000"),
                overtime_pay=Decimal("250000"),
                other_deductions=Decimal("50000"),
            ),
        )

        assert breakdown.basic == Decimal("8000000")
        assert breakdown.allowances == Decimal("1250000")
        assert breakdown.variable == Decimal("1250000")
        assert breakdown.deductions == Decimal("150000")
        assert breakdown.gross_total == Decimal("10500000")

    def test_inactive_component_excluded(self, make_employee):
        """A component deactivated before the period date is not paid."""
        aggregator = SalaryComponentAggregator()

        breakdown = aggregator.aggregate(
            make_employee(),
            [
                component("Gaji Pokok", "basic_salary", Decimal("8000000")),
                component("Tunjangan Lama", "fixed_allowance", Decimal("400000"), is_active=False),
                component(
                    "Tunjangan Proyek",
                    "fixed_allowance",
                    Decimal("600000"),
                    effective_end=date(2024, 2, 29),
                ),
                component(
                    "Tunjangan Baru",
                    "fixed_allowance",
                    Decimal("300000"),
                    effective_start=date(2024, 4, 1),
                ),
            ],
            PERIOD_DATE,
        )

        assert breakdown.allowances == Decimal("0")
        assert breakdown.gross_total == Decimal("8000000")

    def test_inactive_component_not_validated(self, make_employee):
        """Malformed amounts on inactive components are ignored."""
        breakdown = SalaryComponentAggregator().aggregate(
            make_employee(),
            [
                component("Gaji Pokok", "basic_salary", "5000000"),
                component("Lama", "fixed_allowance", "-1", is_active=False),
            ],
            PERIOD_DATE,
        )

        assert breakdown.gross_total == Decimal("5000000")

    def test_numeric_strings_and_ints_accepted(self, make_employee):
        breakdown = SalaryComponentAggregator().aggregate(
            make_employee(),
            [
                component("Gaji Pokok", "basic_salary", "5000000"),
                component("Tunjangan", "fixed_allowance", 250000),
            ],
            PERIOD_DATE,
        )

        assert breakdown.gross_total == Decimal("5250000")

    def test_no_components_is_zero(self, make_employee):
        breakdown = SalaryComponentAggregator().aggregate(make_employee(), [], PERIOD_DATE)
        assert breakdown.gross_total == Decimal("0")
        assert breakdown.deductions == Decimal("0")


class TestInvalidComponents:
    """Negative or malformed amounts fail instead of being coerced."""

    @pytest.mark.parametrize("amount", [Decimal("-1"), "-500", "abc", "NaN", "Infinity", True, object()])
    def test_bad_component_amount(self, make_employee, amount):
        with pytest.raises(InvalidComponentError) as exc_info:
            SalaryComponentAggregator().aggregate(
                make_employee(),
                [component("Gaji Pokok", "basic_salary", amount)],
                PERIOD_DATE,
            )

        assert exc_info.value.employee_id == "EMP001"
        assert exc_info.value.code == "invalid_component"

    def test_negative_variable_input(self, make_employee):
        with pytest.raises(InvalidComponentError, match="bonus"):
            SalaryComponentAggregator().aggregate(
                make_employee(),
                [],
                PERIOD_DATE,
                VariableInputs(bonus=Decimal("-100")),
            )

    def test_unknown_component_type(self, make_employee):
        with pytest.raises(InvalidComponentError, match="unknown component type"):
            SalaryComponentAggregator().aggregate(
                make_employee(),
                [component("Komisi", "commission", Decimal("100"))],
                PERIOD_DATE,
            )

    def test_component_of_other_employee(self, make_employee):
        with pytest.raises(InvalidComponentError, match="belongs to employee EMP999"):
            SalaryComponentAggregator().aggregate(
                make_employee(),
                [component("Gaji Pokok", "basic_salary", Decimal("1"), employee_id="EMP999")],
                PERIOD_DATE,
            )
