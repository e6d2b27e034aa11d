"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from indo_payroll import __version__
from indo_payroll.api.routes import (
    health_router,
    payroll_periods_router,
    preview_router,
    tax_tables_router,
)
from indo_payroll.calculators.engine import PayrollEngine
from indo_payroll.calculators.tax_tables import TaxTableProvider
from indo_payroll.config import Settings, get_settings
from indo_payroll.database import create_tables, dispose_db, init_db
from indo_payroll.services.period_service import PayrollPeriodService
from indo_payroll.services.tax_table_repository import (
    load_configured_tax_tables,
    load_file_tax_tables,
)

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def wire_services(app: FastAPI, tax_tables: TaxTableProvider) -> None:
    """Attach the tax tables, engine and period service to the app."""
    engine = PayrollEngine(tax_tables, settings=app.state.settings)
    app.state.tax_tables = tax_tables
    app.state.engine = engine
    app.state.period_service = PayrollPeriodService(engine)
    logger.info(
        "Loaded %d tax table version(s): %s",
        len(tax_tables.versions),
        ", ".join(v.version for v in tax_tables.versions),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings: Settings = app.state.settings
    if app.state.tax_tables is None:
        engine, factory = init_db()
        await create_tables(engine)
        wire_services(app, await load_configured_tax_tables(settings, factory))
    yield
    # Shutdown
    await dispose_db()


def create_app(
    settings: Settings | None = None,
    tax_tables: TaxTableProvider | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    File-based tax tables are loaded here; database-backed ones are loaded
    on startup.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Indonesian Payroll Engine API",
        description="PPh 21 and BPJS payroll calculation",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.tax_tables = None
    app.state.engine = None
    app.state.period_service = None

    if tax_tables is None and settings.tax_table_source == "file":
        tax_tables = load_file_tax_tables(settings)
    if tax_tables is not None:
        wire_services(app, tax_tables)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(tax_tables_router, prefix="/api/v1")
    app.include_router(payroll_periods_router, prefix="/api/v1")
    app.include_router(preview_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
