"""Indonesian identity number validation (NIK / NPWP) and PTKP labels."""

from __future__ import annotations

import re

from indo_payroll.calculators.types import (
    Employee,
    EmployeeStatus,
    EmploymentStatus,
    PayrollCalculationError,
)

_NIK_PATTERN = re.compile(r"[0-9]{16}")
_NPWP_PATTERN = re.compile(r"[0-9]{15}")
_NPWP_FORMATTED_PATTERN = re.compile(r"[0-9]{2}\.[0-9]{3}\.[0-9]{3}\.[0-9]-[0-9]{3}\.[0-9]{3}")

PTKP_DESCRIPTIONS = {
    "TK/0": "Tidak Kawin, tanpa tanggungan",
    "TK/1": "Tidak Kawin, 1 tanggungan",
    "TK/2": "Tidak Kawin, 2 tanggungan",
    "TK/3": "Tidak Kawin, 3 tanggungan",
    "K/0": "Kawin, tanpa tanggungan",
    "K/1": "Kawin, 1 tanggungan",
    "K/2": "Kawin, 2 tanggungan",
    "K/3": "Kawin, 3 tanggungan",
}


class InvalidEmployeeError(PayrollCalculationError):
    """Raised when employee master data violates identity invariants."""

    code = "invalid_employee"

    def __init__(self, employee_id: str, errors: list[str]):
        self.employee_id = employee_id
        self.errors = errors
        super().__init__(f"Invalid employee {employee_id}: {'; '.join(errors)}")


def validate_nik(nik: str | None) -> list[str]:
    """Validate a 16-digit NIK. Returns list of error messages."""
    if not nik or not _NIK_PATTERN.fullmatch(nik):
        return ["NIK must be exactly 16 digits"]
    if len(set(nik)) == 1:
        return ["NIK cannot consist of a single repeated digit"]
    return []


def clean_npwp(npwp: str) -> str:
    """Strip the dots and dash from a formatted NPWP."""
    return npwp.replace(".", "").replace("-", "")


def validate_npwp(npwp: str | None) -> list[str]:
    """Validate an optional 15-digit NPWP (formatted or bare)."""
    if npwp is None or npwp == "":
        return []

    errors: list[str] = []
    if not _NPWP_PATTERN.fullmatch(clean_npwp(npwp)):
        errors.append("NPWP must be 15 digits")
    elif len(npwp) == 20 and not _NPWP_FORMATTED_PATTERN.fullmatch(npwp):
        errors.append("NPWP format must be XX.XXX.XXX.X-XXX.XXX")
    return errors


def format_npwp(npwp: str) -> str:
    """Format an NPWP as XX.XXX.XXX.X-XXX.XXX; invalid input is returned as-is."""
    clean = clean_npwp(npwp)
    if not _NPWP_PATTERN.fullmatch(clean):
        return npwp
    return f"{clean[:2]}.{clean[2:5]}.{clean[5:8]}.{clean[8]}-{clean[9:12]}.{clean[12:15]}"


def describe_ptkp_status(status: str) -> str:
    return PTKP_DESCRIPTIONS.get(status, status)


def validate_employee(employee: Employee) -> None:
    """Check employee master data before calculation.

    Raises:
        InvalidEmployeeError: Listing every violated rule
    """
    errors = validate_nik(employee.nik) + validate_npwp(employee.npwp)

    if employee.employment_status not in {s.value for s in EmploymentStatus}:
        errors.append(f"Unknown employment status '{employee.employment_status}'")
    if employee.employee_status not in {s.value for s in EmployeeStatus}:
        errors.append(f"Unknown employee status '{employee.employee_status}'")

    if errors:
        raise InvalidEmployeeError(employee.employee_id, errors)
