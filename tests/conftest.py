"""Pytest fixtures for payroll engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Callable

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from indo_payroll.api.app import create_app
from indo_payroll.calculators.engine import PayrollEngine
from indo_payroll.calculators.tax_tables import (
    TaxTableProvider,
    TaxTableVersion,
    load_default_tax_tables,
)
from indo_payroll.calculators.types import (
    BpjsEnrollment,
    Employee,
    EmployeePayrollInput,
    SalaryComponent,
    VariableInputs,
)
from indo_payroll.config import Settings
from indo_payroll.models import Base
from indo_payroll.services.period_service import PayrollPeriodService

# Use in-memory SQLite for tests (with async support)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

VALID_NIK = "3171234567890123"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="1.0.0",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
        tax_table_source="file",
        tax_table_path=None,
        calculation_workers=1,
    )


@pytest.fixture
def tax_tables() -> TaxTableProvider:
    return load_default_tax_tables()


@pytest.fixture
def tax_table(tax_tables: TaxTableProvider) -> TaxTableVersion:
    """The 2024 default table."""
    return tax_tables.get_active_tax_table(date(2024, 6, 30))


@pytest.fixture
def payroll_engine(tax_tables: TaxTableProvider, settings: Settings) -> PayrollEngine:
    return PayrollEngine(tax_tables, settings=settings)


@pytest.fixture
def period_service(payroll_engine: PayrollEngine) -> PayrollPeriodService:
    return PayrollPeriodService(payroll_engine)


@pytest.fixture
def make_employee() -> Callable[..., Employee]:
    """Factory for valid employees; override any field by keyword."""

    def _make(employee_id: str = "EMP001", **overrides) -> Employee:
        fields = {
            "employee_id": employee_id,
            "full_name": f"Karyawan {employee_id}",
            "nik": VALID_NIK,
            "ptkp_status": "TK/0",
            "bpjs": BpjsEnrollment(health=False, manpower=False),
        }
        fields.update(overrides)
        return Employee(**fields)

    return _make


@pytest.fixture
def make_input(make_employee) -> Callable[..., EmployeePayrollInput]:
    """Factory for payroll inputs with a basic salary and optional allowance."""

    def _make(
        employee_id: str = "EMP001",
        basic: str | Decimal = "10000000",
        allowance: str | Decimal | None = None,
        variable_inputs: VariableInputs | None = None,
        extra_components: tuple[SalaryComponent, ...] = (),
        **employee_overrides,
    ) -> EmployeePayrollInput:
        components = [
            SalaryComponent(
                component_id=f"{employee_id}-basic",
                employee_id=employee_id,
                name="Gaji Pokok",
                component_type="basic_salary",
                amount=Decimal(basic),
            )
        ]
        if allowance is not None:
            components.append(
                SalaryComponent(
                    component_id=f"{employee_id}-transport",
                    employee_id=employee_id,
                    name="Tunjangan Transport",
                    component_type="fixed_allowance",
                    amount=Decimal(allowance),
                )
            )
        return EmployeePayrollInput(
            employee=make_employee(employee_id, **employee_overrides),
            components=tuple(components) + tuple(extra_components),
            variable_inputs=variable_inputs or VariableInputs(),
        )

    return _make


@pytest.fixture
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(settings, tax_tables) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = create_app(settings=settings, tax_tables=tax_tables)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
