"""PPh 21 withholding calculation using versioned tax tables."""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

from indo_payroll.calculators.line_builder import LineItemBuilder
from indo_payroll.calculators.tax_tables import TaxBracket, TaxTableVersion
from indo_payroll.calculators.types import ZERO, PayrollCalculationError, WithholdingResult

MONTHS_PER_YEAR = 12


class UnknownPtkpStatusError(PayrollCalculationError):
    """Raised when an employee's PTKP status is not in the tax table."""

    code = "unknown_ptkp_status"

    def __init__(self, ptkp_status: str, tax_table_version: str):
        self.ptkp_status = ptkp_status
        self.tax_table_version = tax_table_version
        super().__init__(
            f"PTKP status '{ptkp_status}' not found in tax table {tax_table_version}"
        )


class Pph21Calculator:
    """Computes monthly PPh 21 withholding with simple annualization.

    Pipeline:
    1) occupational cost = min(rate * gross, monthly cap)
    2) net monthly = gross + taxable employer BPJS - occupational cost
       - BPJS employee deduction
    3) annualized = net monthly * 12
    4) PTKP allowance from the table
    5) annual taxable = max(0, annualized - PTKP), floored to rounding unit
    6) progressive brackets -> annual tax; monthly = annual / 12
    """

    def compute_withholding(
        self,
        gross_pay: Decimal,
        bpjs_employee_deduction: Decimal,
        ptkp_status: str,
        tax_table: TaxTableVersion,
        taxable_benefit: Decimal = ZERO,
    ) -> WithholdingResult:
        """Calculate withholding for one month.

        ``taxable_benefit`` (employer BPJS premiums) is taxable income but
        does not enter the occupational cost base.

        Raises:
            UnknownPtkpStatusError: If the PTKP status is not in the table
        """
        ptkp_allowance = tax_table.ptkp_amounts.get(ptkp_status)
        if ptkp_allowance is None:
            raise UnknownPtkpStatusError(ptkp_status, tax_table.version)

        occupational_cost = self.calculate_occupational_cost(gross_pay, tax_table)
        net_monthly = gross_pay + taxable_benefit - occupational_cost - bpjs_employee_deduction
        annualized = net_monthly * MONTHS_PER_YEAR

        annual_taxable = self.round_taxable_income(
            max(ZERO, annualized - ptkp_allowance),
            tax_table.taxable_income_rounding,
        )

        annual_tax = self.calculate_progressive_tax(annual_taxable, tax_table.brackets)
        monthly = LineItemBuilder.round_to_rupiah(annual_tax / MONTHS_PER_YEAR)

        return WithholdingResult(
            gross_income=gross_pay,
            taxable_benefit=taxable_benefit,
            occupational_cost=occupational_cost,
            bpjs_deduction=bpjs_employee_deduction,
            net_monthly_income=net_monthly,
            annualized_net_income=annualized,
            ptkp_allowance=ptkp_allowance,
            annual_taxable_income=annual_taxable,
            annual_tax=annual_tax,
            monthly_withholding=monthly,
        )

    @staticmethod
    def calculate_occupational_cost(gross_pay: Decimal, tax_table: TaxTableVersion) -> Decimal:
        """Biaya jabatan for one month."""
        if gross_pay <= 0:
            return ZERO
        rule = tax_table.occupational_cost
        return LineItemBuilder.round_to_rupiah(min(gross_pay * rule.rate, rule.monthly_cap))

    @staticmethod
    def round_taxable_income(amount: Decimal, unit: Decimal) -> Decimal:
        """Round down to a whole multiple of the rounding unit."""
        if amount <= 0:
            return ZERO
        return (amount / unit).to_integral_value(rounding=ROUND_FLOOR) * unit

    @staticmethod
    def calculate_progressive_tax(
        taxable_income: Decimal,
        brackets: tuple[TaxBracket, ...] | list[TaxBracket],
    ) -> Decimal:
        """Annual tax using progressive brackets.

        Each bracket taxes the part of income within [min, max) at its rate.
        """
        if taxable_income <= 0:
            return ZERO

        total_tax = ZERO
        for bracket in sorted(brackets, key=lambda b: b.min_amount):
            if taxable_income <= bracket.min_amount:
                break

            upper = taxable_income
            if bracket.max_amount is not None:
                upper = min(taxable_income, bracket.max_amount)

            portion = upper - bracket.min_amount
            if portion > 0:
                total_tax += portion * bracket.rate

        return LineItemBuilder.round_to_rupiah(total_tax)
