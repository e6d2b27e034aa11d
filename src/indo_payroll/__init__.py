"""Indonesian payroll engine: BPJS contributions, PPh 21 withholding and net pay."""

__version__ = "0.1.0"
