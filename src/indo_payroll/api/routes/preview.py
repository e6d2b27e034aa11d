"""Single-employee payroll preview endpoint."""

from fastapi import APIRouter, HTTPException, status

from indo_payroll.api.dependencies import Engine, OrganizationId
from indo_payroll.api.schemas import (
    ErrorResponse,
    LineItemResponse,
    PreviewRequest,
    PreviewResponse,
)
from indo_payroll.calculators.tax_tables import ConfigurationError
from indo_payroll.calculators.types import PayrollCalculationError, PayrollPeriod

router = APIRouter(prefix="/payroll", tags=["payroll"])


@router.post(
    "/preview",
    response_model=PreviewResponse,
    responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def preview_employee(
    engine: Engine,
    organization_id: OrganizationId,
    payload: PreviewRequest,
) -> PreviewResponse:
    """Calculate one employee for a month without storing anything."""
    period_date = PayrollPeriod(
        period_id="preview",
        year=payload.year,
        month=payload.month,
        organization_id=organization_id,
    ).as_of_date
    try:
        preview = engine.preview_employee(payload.employee.to_payroll_input(), period_date)
    except PayrollCalculationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{e.code}: {e}",
        )
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )

    return PreviewResponse(
        tax_table_version=preview.tax_table_version,
        line_item=LineItemResponse.model_validate(preview.line_item),
        explanation=preview.explanation,
    )
