"""BPJS Health / Manpower contribution calculation."""

from __future__ import annotations

from decimal import Decimal

from indo_payroll.calculators.line_builder import LineItemBuilder
from indo_payroll.calculators.tax_tables import BpjsProgramRate, TaxTableVersion
from indo_payroll.calculators.types import (
    ZERO,
    BpjsContribution,
    BpjsEnrollment,
    BpjsGroup,
    ProgramContribution,
)


class BpjsCalculator:
    """Computes employee / employer BPJS contributions.

    For each program configured in the tax table:
    - base = min(gross, program salary cap) when a cap is set
    - employee = base * employee_rate, employer = base * employer_rate
    - zero for programs whose group the employee is not enrolled in

    Rates and caps come only from the supplied tax table.
    """

    def compute_bpjs(
        self,
        gross_base: Decimal,
        enrollment: BpjsEnrollment,
        tax_table: TaxTableVersion,
    ) -> BpjsContribution:
        """Calculate contributions for all programs in the table."""
        programs = tuple(
            self._calculate_program(gross_base, program, enrollment.is_enrolled(program.group))
            for program in tax_table.bpjs_programs
        )

        def total(group: str, side: str) -> Decimal:
            return sum(
                (getattr(p, side) for p in programs if p.group == group),
                ZERO,
            )

        return BpjsContribution(
            health_employee=total(BpjsGroup.HEALTH, "employee"),
            health_employer=total(BpjsGroup.HEALTH, "employer"),
            manpower_employee=total(BpjsGroup.MANPOWER, "employee"),
            manpower_employer=total(BpjsGroup.MANPOWER, "employer"),
            programs=programs,
        )

    @staticmethod
    def contribution_base(gross_base: Decimal, program: BpjsProgramRate) -> Decimal:
        """Salary base for a program, capped when the program has a cap."""
        if gross_base <= 0:
            return ZERO
        if program.salary_cap is None:
            return gross_base
        return min(gross_base, program.salary_cap)

    def _calculate_program(
        self,
        gross_base: Decimal,
        program: BpjsProgramRate,
        enrolled: bool,
    ) -> ProgramContribution:
        if not enrolled:
            return ProgramContribution(
                code=program.code,
                group=program.group,
                base=ZERO,
                employee=ZERO,
                employer=ZERO,
                tax_deductible=program.tax_deductible,
                taxable_benefit=program.taxable_benefit,
            )

        base = self.contribution_base(gross_base, program)
        return ProgramContribution(
            code=program.code,
            group=program.group,
            base=base,
            employee=LineItemBuilder.round_to_rupiah(base * program.employee_rate),
            employer=LineItemBuilder.round_to_rupiah(base * program.employer_rate),
            tax_deductible=program.tax_deductible,
            taxable_benefit=program.taxable_benefit,
        )
