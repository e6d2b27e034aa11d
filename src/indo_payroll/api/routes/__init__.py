"""API routes."""

from indo_payroll.api.routes.health import router as health_router
from indo_payroll.api.routes.payroll_periods import router as payroll_periods_router
from indo_payroll.api.routes.preview import router as preview_router
from indo_payroll.api.routes.tax_tables import router as tax_tables_router

__all__ = ["health_router", "payroll_periods_router", "preview_router", "tax_tables_router"]
