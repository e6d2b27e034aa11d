"""Payroll calculators. The orchestrator is ``indo_payroll.calculators.engine``."""

from indo_payroll.calculators.aggregator import SalaryComponentAggregator
from indo_payroll.calculators.bpjs_calculator import BpjsCalculator
from indo_payroll.calculators.line_builder import LineItemBuilder
from indo_payroll.calculators.pph21_calculator import Pph21Calculator
from indo_payroll.calculators.tax_tables import (
    ConfigurationError,
    TaxTableProvider,
    TaxTableVersion,
    load_default_tax_tables,
)

__all__ = [
    "LineItemBuilder",
    "SalaryComponentAggregator",
    "BpjsCalculator",
    "Pph21Calculator",
    "ConfigurationError",
    "TaxTableProvider",
    "TaxTableVersion",
    "load_default_tax_tables",
]
