"""HTTP API for the payroll engine."""
