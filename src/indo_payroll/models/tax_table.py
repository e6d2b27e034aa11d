"""Persisted tax table versions."""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Date, String
from sqlalchemy.orm import Mapped, mapped_column

from indo_payroll.models.base import Base, TimestampMixin


class TaxTableRecord(Base, TimestampMixin):
    """One immutable tax table version.

    ``payload`` holds PTKP amounts, brackets, occupational cost rule and
    BPJS programs with amounts as strings; ``payload_hash`` is the
    fingerprint of the parsed version at save time.
    """

    __tablename__ = "tax_table_version"

    tax_table_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    version: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    effective_start: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    effective_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(32), nullable=False)
