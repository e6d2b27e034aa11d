"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from pydantic import BaseModel
from sqlalchemy import text

from indo_payroll.api.dependencies import AppSettings
from indo_payroll.database import get_session

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    tax_table_versions: int


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(request: Request, settings: AppSettings) -> HealthResponse:
    """Check API, tax table and (when used) database health."""
    db_status = "unused"
    if settings.tax_table_source == "database":
        db_status = "unhealthy"
        try:
            async with get_session() as db:
                await db.execute(text("SELECT 1"))
            db_status = "healthy"
        except Exception:
            db_status = "unhealthy"

    tax_tables = getattr(request.app.state, "tax_tables", None)
    versions = len(tax_tables.versions) if tax_tables is not None else 0

    healthy = versions > 0 and db_status != "unhealthy"
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        tax_table_versions=versions,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    """Readiness check for container orchestration."""
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
