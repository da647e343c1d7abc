"""
Reference Catalog

Bulk upsert and lookup of SKU reference data (item group, CBM per unit).
Upserts are set-based INSERT ... ON CONFLICT statements, chunked so a single
statement never carries more than chunk_size entries.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from warehouse_analytics.database.connection import session_scope
from warehouse_analytics.database.models import CatalogEntry
from warehouse_analytics.errors import IngestionError
from warehouse_analytics.ingestion.readers import CatalogRecord
from warehouse_analytics.transformation.join import UNMATCHED_ITEM_GROUP, CatalogMatch, clean_sku

logger = structlog.get_logger(__name__)


def _insert_for(session: AsyncSession):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise IngestionError(f"Catalog upsert is not supported on {dialect}")


class ReferenceCatalog:
    """
    SKU -> (cbm_per_unit, item_group) reference table.

    Example:
        catalog = ReferenceCatalog(session_factory)
        await catalog.upsert_batch(records)
        match = await catalog.lookup("SKU-1")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        chunk_size: int = 1000,
    ):
        self.session_factory = session_factory
        self.chunk_size = chunk_size

    @staticmethod
    def _dedupe(records: Iterable[CatalogRecord]) -> List[Dict]:
        # last write wins within one upload as well as across uploads
        latest: Dict[str, Dict] = {}
        now = datetime.utcnow()
        for record in records:
            sku = clean_sku(record.sku_id)
            if not sku:
                continue
            latest[sku] = {
                "sku_id": sku,
                "item_group": record.item_group or UNMATCHED_ITEM_GROUP,
                "cbm_per_unit": float(record.cbm_per_unit or 0.0),
                "updated_at": now,
            }
        return list(latest.values())

    async def upsert_batch(self, records: Iterable[CatalogRecord]) -> int:
        """
        Insert or replace catalog entries by SKU id.

        Returns:
            Number of distinct SKUs written
        """
        entries = self._dedupe(records)
        if not entries:
            return 0

        async with session_scope(self.session_factory) as session:
            insert = _insert_for(session)
            for start in range(0, len(entries), self.chunk_size):
                chunk = entries[start:start + self.chunk_size]
                stmt = insert(CatalogEntry).values(chunk)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[CatalogEntry.sku_id],
                    set_={
                        "item_group": stmt.excluded.item_group,
                        "cbm_per_unit": stmt.excluded.cbm_per_unit,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                await session.execute(stmt)

        logger.info("Catalog upserted", entries=len(entries), chunk_size=self.chunk_size)
        return len(entries)

    async def lookup(self, sku_id: str) -> Optional[CatalogMatch]:
        """Catalog values for a trimmed SKU id, or None when unknown."""
        sku = clean_sku(sku_id)
        if sku is None:
            return None
        async with self.session_factory() as session:
            entry = await session.get(CatalogEntry, sku)
        if entry is None:
            return None
        return CatalogMatch(cbm_per_unit=entry.cbm_per_unit, item_group=entry.item_group)

    async def snapshot(self) -> Dict[str, CatalogMatch]:
        """Whole catalog as a dict, used by ingestion for in-process joins."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(CatalogEntry.sku_id, CatalogEntry.cbm_per_unit, CatalogEntry.item_group)
            )
            return {
                sku: CatalogMatch(cbm_per_unit=cbm, item_group=group)
                for sku, cbm, group in result.all()
            }

    async def count(self) -> int:
        async with self.session_factory() as session:
            return await session.scalar(select(func.count()).select_from(CatalogEntry)) or 0
