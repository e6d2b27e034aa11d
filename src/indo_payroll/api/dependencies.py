"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from indo_payroll.calculators.engine import PayrollEngine
from indo_payroll.calculators.tax_tables import TaxTableProvider
from indo_payroll.config import Settings
from indo_payroll.services.period_service import PayrollPeriodService


async def get_organization_id(
    x_organization_id: Annotated[str | None, Header()] = None
) -> str:
    """Extract organization ID from header."""
    if not x_organization_id or not x_organization_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Organization-ID header is required",
        )
    return x_organization_id.strip()


def _app_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tax tables are not loaded",
        )
    return value


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_tax_tables(request: Request) -> TaxTableProvider:
    return _app_state(request, "tax_tables")


def get_engine(request: Request) -> PayrollEngine:
    return _app_state(request, "engine")


def get_period_service(request: Request) -> PayrollPeriodService:
    return _app_state(request, "period_service")


# Type aliases for cleaner dependency injection
OrganizationId = Annotated[str, Depends(get_organization_id)]
AppSettings = Annotated[Settings, Depends(get_settings_dep)]
TaxTables = Annotated[TaxTableProvider, Depends(get_tax_tables)]
Engine = Annotated[PayrollEngine, Depends(get_engine)]
PeriodService = Annotated[PayrollPeriodService, Depends(get_period_service)]
