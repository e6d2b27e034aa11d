"""Line item builder with idempotent hashing."""

from __future__ import annotations

import hashlib
import json
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from indo_payroll.calculators.types import (
    ZERO,
    BpjsContribution,
    GrossPayBreakdown,
    PayrollLineItem,
    PeriodTotals,
    WithholdingResult,
)


class LineItemBuilder:
    """Builds payroll line items with deterministic hashing for idempotency.

    Amount conventions (non-negotiable):
    - All stored amounts are non-negative whole rupiah
    - net_pay = gross_pay - bpjs_employee_total - pph21_withheld
    - take_home_pay = net_pay - other_deductions
    - Employer BPJS is a liability and never touches net pay

    Rounding:
    - IDR to whole rupiah (half-up) at every persisted amount
    - Intermediate products (base * rate) keep full Decimal precision
    """

    OUTPUT_PRECISION = Decimal("1")

    @staticmethod
    def round_to_rupiah(amount: Decimal) -> Decimal:
        """Round amount to whole rupiah."""
        return amount.quantize(LineItemBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def compute_line_hash(line: PayrollLineItem) -> str:
        """Compute deterministic hash for a line item.

        The hash is based on the canonical representation of all fields,
        ensuring identical inputs produce identical hashes.
        """
        canonical = line.to_canonical_dict()
        json_str = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    @staticmethod
    def build_line_item(
        period_id: str,
        employee_id: str,
        tax_table_version: str,
        calculation_id: str,
        breakdown: GrossPayBreakdown,
        bpjs: BpjsContribution,
        withholding: WithholdingResult,
    ) -> PayrollLineItem:
        """Assemble a line item from the calculator outputs."""
        r = LineItemBuilder.round_to_rupiah
        gross = r(breakdown.gross_total)
        bpjs_employee = r(bpjs.total_employee)
        pph21 = r(withholding.monthly_withholding)
        net = gross - bpjs_employee - pph21
        other_deductions = r(breakdown.deductions)

        return PayrollLineItem(
            period_id=period_id,
            employee_id=employee_id,
            tax_table_version=tax_table_version,
            calculation_id=calculation_id,
            basic_salary=r(breakdown.basic),
            fixed_allowances=r(breakdown.allowances),
            variable_pay=r(breakdown.variable),
            gross_pay=gross,
            bpjs_health_employee=r(bpjs.health_employee),
            bpjs_health_employer=r(bpjs.health_employer),
            bpjs_manpower_employee=r(bpjs.manpower_employee),
            bpjs_manpower_employer=r(bpjs.manpower_employer),
            bpjs_employee_total=bpjs_employee,
            bpjs_employer_total=r(bpjs.total_employer),
            occupational_cost=r(withholding.occupational_cost),
            ptkp_allowance=r(withholding.ptkp_allowance),
            taxable_income=withholding.annual_taxable_income,
            pph21_annual=r(withholding.annual_tax),
            pph21_withheld=pph21,
            net_pay=net,
            other_deductions=other_deductions,
            take_home_pay=net - other_deductions,
        )

    @staticmethod
    def validate_line_item(line: PayrollLineItem) -> list[str]:
        """Validate amount conventions for a line item.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []

        expected_net = line.gross_pay - line.bpjs_employee_total - line.pph21_withheld
        if line.net_pay != expected_net:
            errors.append(
                f"Net pay {line.net_pay} does not equal gross - BPJS - PPh 21 ({expected_net})"
            )
        if line.take_home_pay != line.net_pay - line.other_deductions:
            errors.append("Take-home pay does not equal net pay - other deductions")

        for name in (
            "gross_pay",
            "bpjs_employee_total",
            "bpjs_employer_total",
            "pph21_withheld",
            "taxable_income",
            "other_deductions",
        ):
            value = getattr(line, name)
            if value < 0:
                errors.append(f"{name} has negative amount {value}, expected non-negative")

        if line.net_pay < 0:
            errors.append(f"Negative net pay: {line.net_pay}")
        elif line.take_home_pay < 0:
            errors.append(
                f"Deductions {line.other_deductions} exceed net pay {line.net_pay}"
            )

        return errors

    @staticmethod
    def calculate_totals(lines: Iterable[PayrollLineItem]) -> PeriodTotals:
        """Sum line items into period totals."""
        count = 0
        gross = pph21 = bpjs_ee = bpjs_er = net = take_home = ZERO
        for line in lines:
            count += 1
            gross += line.gross_pay
            pph21 += line.pph21_withheld
            bpjs_ee += line.bpjs_employee_total
            bpjs_er += line.bpjs_employer_total
            net += line.net_pay
            take_home += line.take_home_pay

        return PeriodTotals(
            employee_count=count,
            total_gross=gross,
            total_pph21=pph21,
            total_bpjs_employee=bpjs_ee,
            total_bpjs_employer=bpjs_er,
            total_net=net,
            total_take_home=take_home,
        )
