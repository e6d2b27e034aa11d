"""Tax table API endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from indo_payroll.api.dependencies import TaxTables
from indo_payroll.api.schemas import ErrorResponse, TaxTableResponse
from indo_payroll.calculators.tax_tables import (
    ConfigurationError,
    TaxTableProvider,
    TaxTableVersion,
)

router = APIRouter(prefix="/tax-tables", tags=["tax-tables"])


def _to_response(provider: TaxTableProvider, version: TaxTableVersion) -> TaxTableResponse:
    return TaxTableResponse(
        version=version.version,
        effective_start=version.effective_start,
        effective_end=provider.effective_end_of(version),
        fingerprint=version.fingerprint,
        payload=version.to_payload(),
    )


@router.get("", response_model=list[TaxTableResponse])
async def list_tax_tables(tax_tables: TaxTables) -> list[TaxTableResponse]:
    """List loaded tax table versions, oldest first."""
    return [_to_response(tax_tables, v) for v in tax_tables.versions]


@router.get(
    "/active",
    response_model=TaxTableResponse,
    responses={503: {"model": ErrorResponse}},
)
async def get_active_tax_table(
    tax_tables: TaxTables,
    as_of: Annotated[date | None, Query()] = None,
) -> TaxTableResponse:
    """Get the version in effect on ``as_of`` (default: today)."""
    try:
        version = tax_tables.get_active_tax_table(as_of or date.today())
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )
    return _to_response(tax_tables, version)
