"""ORM models."""

from indo_payroll.models.base import Base, TimestampMixin
from indo_payroll.models.tax_table import TaxTableRecord

__all__ = ["Base", "TimestampMixin", "TaxTableRecord"]
