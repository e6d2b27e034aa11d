"""Tax table persistence through SQLAlchemy."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from indo_payroll.calculators.tax_tables import (
    ConfigurationError,
    TaxTableProvider,
    TaxTableVersion,
    load_default_tax_tables,
)
from indo_payroll.database import init_db
from indo_payroll.models import TaxTableRecord

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import async_sessionmaker

    from indo_payroll.config import Settings

logger = logging.getLogger(__name__)


class TaxTableRepository:
    """Loads and stores tax table versions.

    Stored versions are immutable: saving an existing label with a
    different payload is rejected.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_records(self) -> list[TaxTableRecord]:
        result = await self.session.execute(
            select(TaxTableRecord).order_by(TaxTableRecord.effective_start)
        )
        return list(result.scalars().all())

    async def get_record(self, version: str) -> TaxTableRecord | None:
        result = await self.session.execute(
            select(TaxTableRecord).where(TaxTableRecord.version == version)
        )
        return result.scalar_one_or_none()

    async def load_provider(self) -> TaxTableProvider:
        """Build a provider from every stored version.

        Raises:
            ConfigurationError: If nothing is stored, a payload no longer
                matches its hash, or versions overlap
        """
        versions = [self._to_version(record) for record in await self.list_records()]
        return TaxTableProvider(versions)

    async def save_version(self, version: TaxTableVersion) -> TaxTableRecord:
        """Store a version; saving an identical version again is a no-op.

        Raises:
            ConfigurationError: If the label exists with another payload or
                the version overlaps a stored one
        """
        existing = await self.get_record(version.version)
        if existing is not None:
            if existing.payload_hash != version.fingerprint:
                raise ConfigurationError(
                    f"Tax table {version.version} already exists with a different payload"
                )
            return existing

        stored = [self._to_version(record) for record in await self.list_records()]
        TaxTableProvider([*stored, version])

        record = TaxTableRecord(
            version=version.version,
            effective_start=version.effective_start,
            effective_end=version.effective_end,
            payload=version.to_payload(),
            payload_hash=version.fingerprint,
        )
        self.session.add(record)
        await self.session.flush()

        logger.info(
            "Stored tax table %s effective %s", version.version, version.effective_start
        )
        return record

    async def seed_defaults(self) -> int:
        """Store the packaged default versions that are not stored yet.

        Returns the number of versions inserted.
        """
        inserted = 0
        for version in load_default_tax_tables().versions:
            if await self.get_record(version.version) is None:
                await self.save_version(version)
                inserted += 1
        return inserted

    @staticmethod
    def _to_version(record: TaxTableRecord) -> TaxTableVersion:
        version = TaxTableVersion.from_payload(
            version=record.version,
            effective_start=record.effective_start,
            effective_end=record.effective_end,
            payload=record.payload,
        )
        if version.fingerprint != record.payload_hash:
            raise ConfigurationError(
                f"Stored tax table {record.version} does not match its payload hash"
            )
        return version


def load_file_tax_tables(settings: Settings) -> TaxTableProvider:
    """Load ``TAX_TABLE_PATH``, or the packaged defaults when unset."""
    if settings.tax_table_path:
        return TaxTableProvider.from_json_file(settings.tax_table_path)
    return load_default_tax_tables()


async def load_configured_tax_tables(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> TaxTableProvider:
    """Load tax tables from the source named by ``TAX_TABLE_SOURCE``.

    ``file`` reads ``TAX_TABLE_PATH`` (or the packaged defaults);
    ``database`` reads stored versions, seeding the defaults when empty.
    """
    if settings.tax_table_source == "file":
        return load_file_tax_tables(settings)

    if settings.tax_table_source != "database":
        raise ConfigurationError(f"Unknown tax table source '{settings.tax_table_source}'")

    if session_factory is None:
        _, session_factory = init_db()

    async with session_factory() as session:
        repository = TaxTableRepository(session)
        if not await repository.list_records():
            seeded = await repository.seed_defaults()
            await session.commit()
            logger.info("Seeded %d default tax table version(s)", seeded)
        return await repository.load_provider()
