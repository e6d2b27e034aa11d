"""Versioned tax table snapshots and effective-date lookup."""

from __future__ import annotations

import bisect
import hashlib
import json
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from indo_payroll.calculators.types import BpjsGroup, PtkpStatus

DEFAULT_TAX_TABLE_RESOURCE = "tax_tables.json"


class ConfigurationError(Exception):
    """Raised when tax table configuration is missing or inconsistent."""


@dataclass(frozen=True)
class TaxBracket:
    """Progressive PPh 21 bracket on annual taxable income."""

    min_amount: Decimal
    max_amount: Decimal | None  # None = no upper limit
    rate: Decimal  # As decimal, e.g., 0.05 for 5%


@dataclass(frozen=True)
class OccupationalCostRule:
    """Biaya jabatan: rate of gross pay with a monthly cap."""

    rate: Decimal
    monthly_cap: Decimal


@dataclass(frozen=True)
class BpjsProgramRate:
    """Contribution rates for one BPJS program."""

    code: str  # 'health', 'jht', 'jp', 'jkk', 'jkm'
    group: str  # 'health' or 'manpower'
    employee_rate: Decimal
    employer_rate: Decimal
    salary_cap: Decimal | None = None
    tax_deductible: bool = False  # employee part reduces PPh 21 taxable income
    taxable_benefit: bool = False  # employer part is added to PPh 21 gross


@dataclass(frozen=True)
class TaxTableVersion:
    """Immutable snapshot of statutory payroll parameters.

    Payload structure (package data file and database ``payload_json``):
    {
        "ptkp": {"TK/0": 54000000, ...},
        "brackets": [{"min": 0, "max": 60000000, "rate": 0.05}, ...],
        "occupational_cost": {"rate": 0.05, "monthly_cap": 500000},
        "bpjs_programs": [
            {"code": "health", "group": "health", "employee_rate": 0.01,
             "employer_rate": 0.04, "salary_cap": 12000000,
             "tax_deductible": false, "taxable_benefit": true},
            ...
        ],
        "taxable_income_rounding": 1000
    }
    """

    version: str
    effective_start: date
    effective_end: date | None
    ptkp_amounts: Mapping[str, Decimal]
    brackets: tuple[TaxBracket, ...]
    occupational_cost: OccupationalCostRule
    bpjs_programs: tuple[BpjsProgramRate, ...]
    taxable_income_rounding: Decimal = Decimal("1000")
    fingerprint: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "ptkp_amounts", MappingProxyType(dict(self.ptkp_amounts)))
        object.__setattr__(self, "brackets", tuple(sorted(self.brackets, key=lambda b: b.min_amount)))
        object.__setattr__(self, "bpjs_programs", tuple(self.bpjs_programs))
        self._validate()
        if not self.fingerprint:
            canonical = json.dumps(self.to_payload(), sort_keys=True)
            object.__setattr__(
                self, "fingerprint", hashlib.sha256(canonical.encode()).hexdigest()[:32]
            )

    def _validate(self) -> None:
        if self.effective_end is not None and self.effective_end < self.effective_start:
            raise ConfigurationError(
                f"Tax table {self.version} ends before it starts "
                f"({self.effective_end} < {self.effective_start})"
            )

        missing = [s.value for s in PtkpStatus if s.value not in self.ptkp_amounts]
        if missing:
            raise ConfigurationError(
                f"Tax table {self.version} is missing PTKP amounts for {missing}"
            )

        if not self.brackets:
            raise ConfigurationError(f"Tax table {self.version} has no tax brackets")
        if self.brackets[0].min_amount != 0:
            raise ConfigurationError(
                f"Tax table {self.version}: first bracket must start at 0"
            )
        for prev, nxt in zip(self.brackets, self.brackets[1:]):
            if prev.max_amount is None or prev.max_amount != nxt.min_amount:
                raise ConfigurationError(
                    f"Tax table {self.version}: brackets are not contiguous at "
                    f"{prev.max_amount} / {nxt.min_amount}"
                )
        if self.brackets[-1].max_amount is not None:
            raise ConfigurationError(
                f"Tax table {self.version}: last bracket must be open-ended"
            )

        codes = [p.code for p in self.bpjs_programs]
        if len(codes) != len(set(codes)):
            raise ConfigurationError(f"Tax table {self.version}: duplicate BPJS program codes")
        for program in self.bpjs_programs:
            if program.group not in (BpjsGroup.HEALTH.value, BpjsGroup.MANPOWER.value):
                raise ConfigurationError(
                    f"Tax table {self.version}: unknown BPJS group '{program.group}'"
                )

        if self.taxable_income_rounding <= 0:
            raise ConfigurationError(
                f"Tax table {self.version}: rounding unit must be positive"
            )

    def covers(self, as_of_date: date) -> bool:
        if as_of_date < self.effective_start:
            return False
        return self.effective_end is None or as_of_date <= self.effective_end

    @classmethod
    def from_payload(
        cls,
        version: str,
        effective_start: date,
        effective_end: date | None,
        payload: Mapping[str, Any],
    ) -> TaxTableVersion:
        """Build a version from its JSON payload."""
        try:
            brackets = [
                TaxBracket(
                    min_amount=_decimal(b["min"]),
                    max_amount=_decimal(b["max"]) if b.get("max") is not None else None,
                    rate=_decimal(b["rate"]),
                )
                for b in payload.get("brackets", [])
            ]
            occupational = payload["occupational_cost"]
            programs = [
                BpjsProgramRate(
                    code=p["code"],
                    group=p["group"],
                    employee_rate=_decimal(p.get("employee_rate", 0)),
                    employer_rate=_decimal(p.get("employer_rate", 0)),
                    salary_cap=(
                        _decimal(p["salary_cap"]) if p.get("salary_cap") is not None else None
                    ),
                    tax_deductible=bool(p.get("tax_deductible", False)),
                    taxable_benefit=bool(p.get("taxable_benefit", False)),
                )
                for p in payload.get("bpjs_programs", [])
            ]
            return cls(
                version=version,
                effective_start=effective_start,
                effective_end=effective_end,
                ptkp_amounts={k: _decimal(v) for k, v in payload.get("ptkp", {}).items()},
                brackets=tuple(brackets),
                occupational_cost=OccupationalCostRule(
                    rate=_decimal(occupational["rate"]),
                    monthly_cap=_decimal(occupational["monthly_cap"]),
                ),
                bpjs_programs=tuple(programs),
                taxable_income_rounding=_decimal(payload.get("taxable_income_rounding", 1000)),
            )
        except (KeyError, TypeError) as e:
            raise ConfigurationError(f"Malformed tax table payload for {version}: {e}") from e

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TaxTableVersion:
        """Build a version from a self-describing dict (payload plus metadata)."""
        try:
            return cls.from_payload(
                version=str(data["version"]),
                effective_start=date.fromisoformat(data["effective_start"]),
                effective_end=(
                    date.fromisoformat(data["effective_end"])
                    if data.get("effective_end")
                    else None
                ),
                payload=data,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Malformed tax table entry: {e}") from e

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON payload (numbers as strings to keep precision)."""
        return {
            "ptkp": {k: str(v) for k, v in sorted(self.ptkp_amounts.items())},
            "brackets": [
                {
                    "min": str(b.min_amount),
                    "max": str(b.max_amount) if b.max_amount is not None else None,
                    "rate": str(b.rate),
                }
                for b in self.brackets
            ],
            "occupational_cost": {
                "rate": str(self.occupational_cost.rate),
                "monthly_cap": str(self.occupational_cost.monthly_cap),
            },
            "bpjs_programs": [
                {
                    "code": p.code,
                    "group": p.group,
                    "employee_rate": str(p.employee_rate),
                    "employer_rate": str(p.employer_rate),
                    "salary_cap": str(p.salary_cap) if p.salary_cap is not None else None,
                    "tax_deductible": p.tax_deductible,
                    "taxable_benefit": p.taxable_benefit,
                }
                for p in self.bpjs_programs
            ],
            "taxable_income_rounding": str(self.taxable_income_rounding),
        }


class TaxTableProvider:
    """Resolves the active tax table version for a calculation date.

    Versions are indexed by effective start date. An open-ended version is
    implicitly closed by the next version's start; explicit overlaps are
    rejected so exactly one version is active on any covered date.
    """

    def __init__(self, versions: Iterable[TaxTableVersion]):
        ordered = sorted(versions, key=lambda v: v.effective_start)
        if not ordered:
            raise ConfigurationError("No tax table versions configured")

        labels = [v.version for v in ordered]
        if len(labels) != len(set(labels)):
            raise ConfigurationError(f"Duplicate tax table version labels in {labels}")

        for prev, nxt in zip(ordered, ordered[1:]):
            if prev.effective_start == nxt.effective_start:
                raise ConfigurationError(
                    f"Tax tables {prev.version} and {nxt.version} share "
                    f"effective start {prev.effective_start}"
                )
            if prev.effective_end is not None and prev.effective_end >= nxt.effective_start:
                raise ConfigurationError(
                    f"Tax tables {prev.version} and {nxt.version} overlap"
                )

        self._versions: tuple[TaxTableVersion, ...] = tuple(ordered)
        self._starts = [v.effective_start for v in ordered]
        self._by_label = {v.version: v for v in ordered}

    @property
    def versions(self) -> tuple[TaxTableVersion, ...]:
        return self._versions

    def get_active_tax_table(self, as_of_date: date) -> TaxTableVersion:
        """Get the version in effect on a date.

        Raises:
            ConfigurationError: If no version covers the date
        """
        idx = bisect.bisect_right(self._starts, as_of_date) - 1
        if idx < 0:
            raise ConfigurationError(f"No tax table in effect on {as_of_date}")

        version = self._versions[idx]
        if not version.covers(as_of_date):
            raise ConfigurationError(
                f"No tax table in effect on {as_of_date} "
                f"({version.version} ended {version.effective_end})"
            )
        return version

    def effective_end_of(self, version: TaxTableVersion) -> date | None:
        """Explicit or implied (by successor) last effective date."""
        if version.effective_end is not None:
            return version.effective_end
        idx = self._versions.index(version)
        if idx + 1 < len(self._versions):
            return self._versions[idx + 1].effective_start - timedelta(days=1)
        return None

    def get_version(self, label: str) -> TaxTableVersion:
        try:
            return self._by_label[label]
        except KeyError:
            raise ConfigurationError(f"Unknown tax table version '{label}'") from None

    @classmethod
    def from_dicts(cls, entries: Iterable[Mapping[str, Any]]) -> TaxTableProvider:
        return cls(TaxTableVersion.from_dict(entry) for entry in entries)

    @classmethod
    def from_json_file(cls, path: str | Path) -> TaxTableProvider:
        """Load versions from a JSON file with a top-level ``versions`` list."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read tax tables from {path}: {e}") from e
        return cls.from_dicts(data.get("versions", []))


def load_default_tax_tables() -> TaxTableProvider:
    """Load the tax tables shipped with the package."""
    text = (
        resources.files("indo_payroll.data")
        .joinpath(DEFAULT_TAX_TABLE_RESOURCE)
        .read_text(encoding="utf-8")
    )
    return TaxTableProvider.from_dicts(json.loads(text)["versions"])


def _decimal(value: Any) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"Invalid numeric value in tax table: {value!r}") from e
    if not result.is_finite():
        raise ConfigurationError(f"Invalid numeric value in tax table: {value!r}")
    return result
