"""Payroll period API endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, Response, status
from fastapi.concurrency import run_in_threadpool

from indo_payroll.api.dependencies import OrganizationId, PeriodService
from indo_payroll.api.schemas import (
    AuditEntryResponse,
    CalculateRequest,
    CalculationResponse,
    ErrorResponse,
    LineItemErrorResponse,
    LineItemListResponse,
    LineItemResponse,
    PeriodCreate,
    PeriodListResponse,
    PeriodResponse,
    StatsResponse,
    TotalsResponse,
    ValidationIssueResponse,
    ValidationResponse,
)
from indo_payroll.calculators.tax_tables import ConfigurationError
from indo_payroll.services.period_service import DuplicatePeriodError, PeriodNotFoundError
from indo_payroll.services.state_machine import (
    FinalizationBlockedError,
    InvalidTransitionError,
)

router = APIRouter(prefix="/payroll-periods", tags=["payroll-periods"])

PeriodId = Annotated[str, Path()]


_ERROR_STATUS: tuple[tuple[type[Exception], int], ...] = (
    (PeriodNotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicatePeriodError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),  # includes AlreadyFinalizedError
    (FinalizationBlockedError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
)
SERVICE_ERRORS = tuple(error_type for error_type, _ in _ERROR_STATUS)


def _http_error(e: Exception) -> HTTPException:
    """Map a service error to an HTTP error."""
    code = next(code for error_type, code in _ERROR_STATUS if isinstance(e, error_type))
    return HTTPException(status_code=code, detail=str(e))


# ============================================================================
# Payroll period CRUD
# ============================================================================


@router.post(
    "",
    response_model=PeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def create_period(
    service: PeriodService,
    organization_id: OrganizationId,
    payload: PeriodCreate,
) -> PeriodResponse:
    """Create a new payroll period in draft status."""
    try:
        period = service.create_period(payload.year, payload.month, organization_id)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return PeriodResponse.from_period(period)


@router.get("", response_model=PeriodListResponse)
async def list_periods(
    service: PeriodService,
    organization_id: OrganizationId,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    year: int | None = None,
) -> PeriodListResponse:
    """List payroll periods for an organization with optional filters."""
    periods = service.list_periods(organization_id=organization_id, status=status_filter, year=year)
    return PeriodListResponse(
        items=[PeriodResponse.from_period(p) for p in periods],
        total=len(periods),
    )


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    service: PeriodService,
    organization_id: OrganizationId,
    year: int | None = None,
) -> StatsResponse:
    """Period counts by status and finalized net pay for a year."""
    stats = service.get_stats(year=year, organization_id=organization_id)
    return StatsResponse.model_validate(stats, from_attributes=True)


@router.get(
    "/{period_id}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(
    service: PeriodService,
    organization_id: OrganizationId,
    period_id: PeriodId,
) -> PeriodResponse:
    """Get a specific payroll period by ID."""
    try:
        period = service.get_period(period_id, organization_id)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return PeriodResponse.from_period(period)


@router.delete(
    "/{period_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_period(
    service: PeriodService,
    organization_id: OrganizationId,
    period_id: PeriodId,
) -> Response:
    """Delete a draft payroll period."""
    try:
        service.delete_period(period_id, organization_id)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Calculation and lifecycle
# ============================================================================


@router.post(
    "/{period_id}/calculate",
    response_model=CalculationResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def calculate_period(
    service: PeriodService,
    organization_id: OrganizationId,
    period_id: PeriodId,
    payload: CalculateRequest,
) -> CalculationResponse:
    """Recalculate a draft period from the supplied employee inputs.

    Per-employee failures are reported in ``errors`` and do not fail the
    request.
    """
    inputs = [employee.to_payroll_input() for employee in payload.employees]
    try:
        result = await run_in_threadpool(
            service.calculate_period, period_id, inputs, organization_id
        )
        period = service.get_period(period_id, organization_id)
    except SERVICE_ERRORS as e:
        raise _http_error(e)

    return CalculationResponse(
        period=PeriodResponse.from_period(period),
        tax_table_version=result.tax_table_version,
        line_item_count=len(result.line_items),
        error_count=result.error_count,
        errors=[LineItemErrorResponse.model_validate(err) for err in result.errors],
        skipped_employee_ids=result.skipped_employee_ids,
        totals=TotalsResponse.model_validate(result.totals),
    )


@router.post(
    "/{period_id}/finalize",
    response_model=PeriodResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def finalize_period(
    service: PeriodService,
    organization_id: OrganizationId,
    period_id: PeriodId,
) -> PeriodResponse:
    """Finalize a calculated period with no outstanding errors."""
    try:
        period = service.finalize_period(period_id, organization_id)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return PeriodResponse.from_period(period)


@router.post(
    "/{period_id}/supersede",
    response_model=PeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def supersede_period(
    service: PeriodService,
    organization_id: OrganizationId,
    period_id: PeriodId,
) -> PeriodResponse:
    """Open a replacement draft for a finalized period."""
    try:
        replacement = service.supersede_period(period_id, organization_id)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return PeriodResponse.from_period(replacement)


# ============================================================================
# Results
# ============================================================================


@router.get(
    "/{period_id}/line-items",
    response_model=LineItemListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_line_items(
    service: PeriodService,
    organization_id: OrganizationId,
    period_id: PeriodId,
) -> LineItemListResponse:
    """List a period's line items, outstanding errors and totals."""
    try:
        period = service.get_period(period_id, organization_id)
        line_items = service.get_line_items(period_id, organization_id)
        totals = service.get_totals(period_id, organization_id)
    except SERVICE_ERRORS as e:
        raise _http_error(e)

    return LineItemListResponse(
        items=[LineItemResponse.model_validate(li) for li in line_items],
        errors=[
            LineItemErrorResponse.model_validate(period.errors[k]) for k in sorted(period.errors)
        ],
        totals=TotalsResponse.model_validate(totals),
    )


@router.get(
    "/{period_id}/validation",
    response_model=ValidationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def validate_period(
    service: PeriodService,
    organization_id: OrganizationId,
    period_id: PeriodId,
    expected_employee_id: Annotated[list[str] | None, Query()] = None,
) -> ValidationResponse:
    """Check a period before finalizing it."""
    try:
        validation = service.validate_period(
            period_id,
            expected_employee_ids=expected_employee_id,
            organization_id=organization_id,
        )
    except SERVICE_ERRORS as e:
        raise _http_error(e)

    return ValidationResponse(
        period_id=validation.period_id,
        is_valid=validation.is_valid,
        issues=[ValidationIssueResponse.model_validate(i) for i in validation.issues],
    )


@router.get(
    "/{period_id}/audit",
    response_model=list[AuditEntryResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_audit_trail(
    service: PeriodService,
    organization_id: OrganizationId,
    period_id: PeriodId,
) -> list[AuditEntryResponse]:
    """List recorded actions for a period, oldest first."""
    try:
        entries = service.audit_trail(period_id, organization_id)
    except SERVICE_ERRORS as e:
        raise _http_error(e)
    return [AuditEntryResponse.model_validate(entry) for entry in entries]
