"""Payroll calculation engine - main orchestrator."""

from __future__ import annotations

import hashlib
import json
import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Sequence
from uuid import UUID

from indo_payroll.calculators.aggregator import SalaryComponentAggregator
from indo_payroll.calculators.bpjs_calculator import BpjsCalculator
from indo_payroll.calculators.line_builder import LineItemBuilder
from indo_payroll.calculators.pph21_calculator import Pph21Calculator
from indo_payroll.calculators.tax_tables import TaxTableProvider, TaxTableVersion
from indo_payroll.calculators.types import (
    BpjsContribution,
    EmployeePayrollInput,
    GrossPayBreakdown,
    LineItemError,
    PayrollCalculationError,
    PayrollLineItem,
    PayrollPeriod,
    PeriodTotals,
    WithholdingResult,
)
from indo_payroll.config import Settings, get_settings
from indo_payroll.validators import describe_ptkp_status, validate_employee

logger = logging.getLogger(__name__)


class LineItemValidationError(PayrollCalculationError):
    """Raised when an assembled line item breaks amount conventions."""

    code = "invalid_line_item"

    def __init__(self, employee_id: str, errors: list[str]):
        self.employee_id = employee_id
        self.errors = errors
        super().__init__("; ".join(errors))


@dataclass(frozen=True)
class CalculationResult:
    """Result of calculating pay for one employee.

    Exactly one of ``line_item`` / ``error`` is set.
    """

    employee_id: str
    line_item: PayrollLineItem | None = None
    error: LineItemError | None = None
    inputs_fingerprint: str = ""

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class PeriodCalculationResult:
    """Run report for an entire payroll period."""

    period_id: str
    tax_table_version: str
    tax_table_fingerprint: str
    results: dict[str, CalculationResult]  # employee_id -> result
    skipped_employee_ids: list[str] = field(default_factory=list)
    totals: PeriodTotals = field(default_factory=PeriodTotals)

    @property
    def line_items(self) -> list[PayrollLineItem]:
        return [r.line_item for r in self.results.values() if r.line_item is not None]

    @property
    def errors(self) -> list[LineItemError]:
        return [r.error for r in self.results.values() if r.error is not None]

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results.values() if not r.success)


@dataclass(frozen=True)
class EmployeePreview:
    """Full calculation trace for a single employee."""

    breakdown: GrossPayBreakdown
    bpjs: BpjsContribution
    withholding: WithholdingResult
    line_item: PayrollLineItem
    tax_table_version: str
    explanation: list[str]


class PayrollEngine:
    """Main payroll calculation engine.

    Calculation pipeline (stable order per employee):
    1) Validate employee master data (NIK / NPWP)
    2) Aggregate active salary components and variable inputs into gross
    3) Compute BPJS contributions on the (capped) gross base
    4) Compute PPh 21 on gross + taxable employer BPJS, net of occupational
       cost (on gross only) and tax-deductible employee BPJS
    5) Assemble line item and validate net = gross - BPJS - PPh 21

    The tax table is resolved once per run and passed explicitly, so all
    line items of a run share one version. Per-employee failures are
    captured as LineItemErrors and never abort the run.
    """

    def __init__(
        self,
        tax_tables: TaxTableProvider,
        settings: Settings | None = None,
        max_workers: int | None = None,
    ):
        self.tax_tables = tax_tables
        self.settings = settings or get_settings()
        self.max_workers = max_workers or self.settings.calculation_workers
        self.aggregator = SalaryComponentAggregator()
        self.bpjs_calculator = BpjsCalculator()
        self.pph21_calculator = Pph21Calculator()

    def calculate_period(
        self,
        period: PayrollPeriod,
        inputs: Sequence[EmployeePayrollInput],
    ) -> PeriodCalculationResult:
        """Calculate pay for every active employee in ``inputs``.

        Raises:
            ConfigurationError: If no tax table covers the period; no line
                items are produced in that case
        """
        tax_table = self.tax_tables.get_active_tax_table(period.as_of_date)

        counts = Counter(i.employee.employee_id for i in inputs)
        skipped: list[str] = []
        to_calculate: list[EmployeePayrollInput] = []
        results: dict[str, CalculationResult] = {}

        for payroll_input in inputs:
            employee_id = payroll_input.employee.employee_id
            if counts[employee_id] > 1:
                results[employee_id] = CalculationResult(
                    employee_id=employee_id,
                    error=LineItemError(
                        employee_id=employee_id,
                        code="duplicate_employee",
                        message=(
                            f"Employee {employee_id} appears {counts[employee_id]} "
                            "times in the run inputs"
                        ),
                    ),
                )
                continue
            if not payroll_input.employee.is_active:
                skipped.append(employee_id)
                continue
            to_calculate.append(payroll_input)

        def run(payroll_input: EmployeePayrollInput) -> CalculationResult:
            return self.calculate_employee(period, payroll_input, tax_table)

        if self.max_workers > 1 and len(to_calculate) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                calculated = list(executor.map(run, to_calculate))
        else:
            calculated = [run(i) for i in to_calculate]

        for result in calculated:
            results[result.employee_id] = result

        ordered = {employee_id: results[employee_id] for employee_id in sorted(results)}
        report = PeriodCalculationResult(
            period_id=period.period_id,
            tax_table_version=tax_table.version,
            tax_table_fingerprint=tax_table.fingerprint,
            results=ordered,
            skipped_employee_ids=sorted(skipped),
        )
        report.totals = LineItemBuilder.calculate_totals(report.line_items)

        logger.info(
            "Calculated period %s with tax table %s: %d line items, %d errors, %d skipped",
            period.period_id,
            tax_table.version,
            report.totals.employee_count,
            report.error_count,
            len(skipped),
        )
        return report

    def calculate_employee(
        self,
        period: PayrollPeriod,
        payroll_input: EmployeePayrollInput,
        tax_table: TaxTableVersion,
    ) -> CalculationResult:
        """Calculate one employee, capturing any failure as a LineItemError."""
        employee_id = payroll_input.employee.employee_id
        inputs_fingerprint = self._compute_inputs_fingerprint(payroll_input)

        try:
            _, _, _, line_item = self._calculate(
                period.period_id, period.as_of_date, payroll_input, tax_table, inputs_fingerprint
            )
        except PayrollCalculationError as e:
            logger.warning(
                "Calculation failed for employee %s in period %s: %s",
                employee_id,
                period.period_id,
                e,
            )
            return CalculationResult(
                employee_id=employee_id,
                error=LineItemError(employee_id=employee_id, code=e.code, message=str(e)),
                inputs_fingerprint=inputs_fingerprint,
            )
        except Exception as e:
            logger.exception(
                "Unexpected error calculating employee %s in period %s",
                employee_id,
                period.period_id,
            )
            return CalculationResult(
                employee_id=employee_id,
                error=LineItemError(
                    employee_id=employee_id,
                    code="unexpected_error",
                    message=f"Unexpected error: {e}",
                ),
                inputs_fingerprint=inputs_fingerprint,
            )

        return CalculationResult(
            employee_id=employee_id,
            line_item=line_item,
            inputs_fingerprint=inputs_fingerprint,
        )

    def preview_employee(
        self,
        payroll_input: EmployeePayrollInput,
        period_date: date,
        period_id: str = "preview",
    ) -> EmployeePreview:
        """Calculate a single employee without a period, with an explanation.

        Errors propagate to the caller.
        """
        tax_table = self.tax_tables.get_active_tax_table(period_date)
        breakdown, bpjs, withholding, line_item = self._calculate(
            period_id,
            period_date,
            payroll_input,
            tax_table,
            self._compute_inputs_fingerprint(payroll_input),
        )
        return EmployeePreview(
            breakdown=breakdown,
            bpjs=bpjs,
            withholding=withholding,
            line_item=line_item,
            tax_table_version=tax_table.version,
            explanation=self._explain(
                payroll_input.employee.ptkp_status, breakdown, bpjs, withholding, line_item
            ),
        )

    def _calculate(
        self,
        period_id: str,
        period_date: date,
        payroll_input: EmployeePayrollInput,
        tax_table: TaxTableVersion,
        inputs_fingerprint: str,
    ) -> tuple[GrossPayBreakdown, BpjsContribution, WithholdingResult, PayrollLineItem]:
        employee = payroll_input.employee

        # 1) Master data
        validate_employee(employee)

        # 2) Gross
        breakdown = self.aggregator.aggregate(
            employee,
            payroll_input.components,
            period_date,
            payroll_input.variable_inputs,
        )

        # 3) BPJS
        bpjs = self.bpjs_calculator.compute_bpjs(breakdown.gross_total, employee.bpjs, tax_table)

        # 4) PPh 21
        withholding = self.pph21_calculator.compute_withholding(
            breakdown.gross_total,
            bpjs.tax_deductible_employee,
            employee.ptkp_status,
            tax_table,
            taxable_benefit=bpjs.taxable_employer_benefit,
        )

        # 5) Line item
        calculation_id = self._generate_calculation_id(
            period_id,
            employee.employee_id,
            period_date,
            inputs_fingerprint,
            tax_table.fingerprint,
        )
        line_item = LineItemBuilder.build_line_item(
            period_id=period_id,
            employee_id=employee.employee_id,
            tax_table_version=tax_table.version,
            calculation_id=calculation_id,
            breakdown=breakdown,
            bpjs=bpjs,
            withholding=withholding,
        )

        errors = LineItemBuilder.validate_line_item(line_item)
        if errors:
            raise LineItemValidationError(employee.employee_id, errors)

        return breakdown, bpjs, withholding, line_item

    @staticmethod
    def _explain(
        ptkp_status: str,
        breakdown: GrossPayBreakdown,
        bpjs: BpjsContribution,
        withholding: WithholdingResult,
        line_item: PayrollLineItem,
    ) -> list[str]:
        return [
            f"Gross: basic {breakdown.basic} + allowances {breakdown.allowances} "
            f"+ variable {breakdown.variable} = {line_item.gross_pay}",
            f"BPJS employee: health {bpjs.health_employee} + manpower "
            f"{bpjs.manpower_employee} = {line_item.bpjs_employee_total}",
            f"PPh 21: gross {withholding.gross_income} + employer BPJS "
            f"{withholding.taxable_benefit} - occupational cost "
            f"{withholding.occupational_cost} - BPJS {withholding.bpjs_deduction}, x12 "
            f"- PTKP {withholding.ptkp_allowance} ({ptkp_status}, "
            f"{describe_ptkp_status(ptkp_status)}) = PKP {withholding.annual_taxable_income}"
            f" -> {withholding.annual_tax}/year, {line_item.pph21_withheld}/month",
            f"Net: {line_item.gross_pay} - {line_item.bpjs_employee_total} "
            f"- {line_item.pph21_withheld} = {line_item.net_pay}; take-home after "
            f"deductions {line_item.other_deductions} = {line_item.take_home_pay}",
        ]

    def _generate_calculation_id(
        self,
        period_id: str,
        employee_id: str,
        as_of_date: date,
        inputs_fingerprint: str,
        tax_table_fingerprint: str,
    ) -> str:
        """Generate deterministic calculation ID."""
        data = {
            "period_id": period_id,
            "employee_id": employee_id,
            "as_of_date": str(as_of_date),
            "engine_version": self.settings.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
            "tax_table_fingerprint": tax_table_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return str(UUID(bytes=hash_bytes[:16]))

    @staticmethod
    def _compute_inputs_fingerprint(payroll_input: EmployeePayrollInput) -> str:
        """Compute fingerprint of all inputs used in calculation."""
        data: dict[str, Any] = payroll_input.to_canonical_dict()
        json_str = json.dumps(data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]
