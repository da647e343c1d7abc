"""
Batch Ingestion

Loads one source file as one upload batch:
- Creates the batch in PROCESSING state
- Joins every record against a catalog snapshot
- Writes fact rows in chunked transactions
- Flips the batch to PROCESSED, or FAILED with the error message

Rows committed before a failure are kept so a bad upload can be inspected.
The report cache is cleared after every ingestion or deletion, whatever
the outcome.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union
import uuid

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from warehouse_analytics.database.connection import session_scope
from warehouse_analytics.database.models import (
    BatchStatus,
    InventoryDailyStock,
    InventoryFact,
    MovementFact,
    SourceKind,
    UploadBatch,
)
from warehouse_analytics.errors import IngestionError, NotFoundError
from warehouse_analytics.ingestion.catalog import ReferenceCatalog
from warehouse_analytics.ingestion.readers import (
    CatalogRecord,
    InboundRecord,
    InventoryRecord,
    OutboundRecord,
    reader_for,
)
from warehouse_analytics.transformation.join import inventory_row, movement_row

logger = structlog.get_logger(__name__)


class IngestionResult(BaseModel):
    """Result of ingesting one source file"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    batch_id: uuid.UUID
    source_kind: SourceKind
    file_name: str
    status: BatchStatus
    rows_read: int = 0
    rows_inserted: int = 0
    error_message: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None


class BatchInfo(BaseModel):
    """Upload batch as listed by the upload management endpoints"""
    batch_id: uuid.UUID
    source_kind: SourceKind
    file_name: str
    status: BatchStatus
    rows_inserted: int
    error_message: Optional[str] = None
    uploaded_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


@dataclass
class _Progress:
    rows_read: int = 0
    rows_inserted: int = 0


Writer = Callable[[uuid.UUID, _Progress], Awaitable[None]]


class BatchIngestor:
    """
    Ingests catalog, inbound, outbound and inventory files.

    Example:
        ingestor = BatchIngestor(session_factory, cache=report_cache)
        result = await ingestor.ingest_file(SourceKind.INBOUND, "inbound.xlsx")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache=None,
        chunk_size: int = 1000,
        catalog_chunk_size: int = 1000,
        max_rows: int = 500000,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.chunk_size = chunk_size
        self.max_rows = max_rows
        self.catalog = ReferenceCatalog(session_factory, chunk_size=catalog_chunk_size)

    # -------------------------------------------------------------------------
    # Batch lifecycle
    # -------------------------------------------------------------------------

    async def _create_batch(self, kind: SourceKind, file_name: str) -> uuid.UUID:
        batch = UploadBatch(
            batch_id=uuid.uuid4(),
            source_kind=kind,
            file_name=file_name,
            status=BatchStatus.PROCESSING,
            rows_inserted=0,
            uploaded_at=datetime.utcnow(),
        )
        async with session_scope(self.session_factory) as session:
            session.add(batch)
        return batch.batch_id

    async def _finish_batch(
        self,
        batch_id: uuid.UUID,
        status: BatchStatus,
        rows_inserted: int,
        error_message: Optional[str] = None,
    ) -> datetime:
        completed_at = datetime.utcnow()
        async with session_scope(self.session_factory) as session:
            await session.execute(
                update(UploadBatch)
                .where(UploadBatch.batch_id == batch_id)
                .values(
                    status=status,
                    rows_inserted=rows_inserted,
                    error_message=error_message,
                    completed_at=completed_at,
                )
            )
        return completed_at

    async def _invalidate_cache(self) -> None:
        if self.cache is not None:
            await self.cache.clear_all()

    async def _run(self, kind: SourceKind, file_name: str, writer: Writer) -> IngestionResult:
        started_at = datetime.utcnow()
        batch_id = await self._create_batch(kind, file_name)
        progress = _Progress()

        logger.info("Starting batch ingestion", batch_id=batch_id, kind=kind, file=file_name)

        status = BatchStatus.PROCESSED
        error_message = None
        try:
            await writer(batch_id, progress)
        except Exception as e:
            status = BatchStatus.FAILED
            error_message = str(e) or type(e).__name__
            logger.error(
                "Batch ingestion failed",
                batch_id=batch_id,
                kind=kind,
                error=error_message,
                error_type=type(e).__name__,
                rows_inserted=progress.rows_inserted,
            )

        try:
            completed_at = await self._finish_batch(batch_id, status, progress.rows_inserted, error_message)
        finally:
            await self._invalidate_cache()

        result = IngestionResult(
            batch_id=batch_id,
            source_kind=kind,
            file_name=file_name,
            status=status,
            rows_read=progress.rows_read,
            rows_inserted=progress.rows_inserted,
            error_message=error_message,
            started_at=started_at,
            completed_at=completed_at,
            load_duration_seconds=(completed_at - started_at).total_seconds(),
        )
        if status == BatchStatus.PROCESSED:
            logger.info(
                "Batch ingestion completed",
                batch_id=batch_id,
                kind=kind,
                rows_inserted=result.rows_inserted,
                duration_seconds=result.load_duration_seconds,
            )
        return result

    # -------------------------------------------------------------------------
    # Chunked writes
    # -------------------------------------------------------------------------

    def _count_row(self, progress: _Progress) -> None:
        progress.rows_read += 1
        if progress.rows_read > self.max_rows:
            raise IngestionError(f"File exceeds the maximum of {self.max_rows} data rows")

    async def _flush(self, chunks: Dict[Table, List[Dict[str, Any]]]) -> None:
        """Write one chunk of rows (possibly across tables) in a single transaction."""
        async with session_scope(self.session_factory) as session:
            for table, rows in chunks.items():
                if rows:
                    await session.execute(insert(table), rows)

    @staticmethod
    def _require_rows(progress: _Progress) -> None:
        if progress.rows_read == 0:
            raise IngestionError("File has no data rows")

    def _movement_writer(self, kind: SourceKind, records: Iterable) -> Writer:
        table = MovementFact.__table__

        async def write(batch_id: uuid.UUID, progress: _Progress) -> None:
            catalog = await self.catalog.snapshot()
            chunk: List[Dict[str, Any]] = []
            for record in records:
                self._count_row(progress)
                chunk.append(self._movement_values(kind, batch_id, catalog, record))
                if len(chunk) >= self.chunk_size:
                    await self._flush({table: chunk})
                    progress.rows_inserted += len(chunk)
                    chunk = []
            if chunk:
                await self._flush({table: chunk})
                progress.rows_inserted += len(chunk)
            self._require_rows(progress)

        return write

    @staticmethod
    def _movement_values(kind: SourceKind, batch_id: uuid.UUID, catalog, record) -> Dict[str, Any]:
        if kind == SourceKind.INBOUND:
            return movement_row(
                batch_id,
                kind,
                catalog,
                fact_date=record.fact_date,
                order_sku=record.invoice_sku,
                fulfilled_sku=record.received_sku,
                order_qty=record.invoice_qty,
                fulfilled_qty=record.received_qty,
                good_qty=record.good_qty,
            )
        return movement_row(
            batch_id,
            kind,
            catalog,
            fact_date=record.fact_date,
            order_sku=record.so_item,
            fulfilled_sku=record.dn_item,
            order_qty=record.so_qty,
            fulfilled_qty=record.dn_qty,
            customer_group=record.customer_group,
            warehouse=record.warehouse,
            transporter=record.transporter,
        )

    def _inventory_writer(self, records: Iterable[InventoryRecord]) -> Writer:
        rows_table = InventoryFact.__table__
        stock_table = InventoryDailyStock.__table__

        async def write(batch_id: uuid.UUID, progress: _Progress) -> None:
            catalog = await self.catalog.snapshot()
            rows: List[Dict[str, Any]] = []
            stocks: List[Dict[str, Any]] = []
            for record in records:
                self._count_row(progress)
                row = inventory_row(batch_id, catalog, record.item, record.warehouse)
                rows.append(row)
                stocks.extend(
                    {
                        "stock_id": uuid.uuid4(),
                        "row_id": row["row_id"],
                        "batch_id": batch_id,
                        "stock_date": stock_date,
                        "quantity": quantity,
                    }
                    for stock_date, quantity in record.daily_quantities
                )
                if len(rows) >= self.chunk_size:
                    await self._flush({rows_table: rows, stock_table: stocks})
                    progress.rows_inserted += len(rows)
                    rows, stocks = [], []
            if rows:
                await self._flush({rows_table: rows, stock_table: stocks})
                progress.rows_inserted += len(rows)
            self._require_rows(progress)

        return write

    def _catalog_writer(self, records: Iterable[CatalogRecord]) -> Writer:
        async def write(batch_id: uuid.UUID, progress: _Progress) -> None:
            entries = []
            for record in records:
                self._count_row(progress)
                entries.append(record)
            self._require_rows(progress)
            progress.rows_inserted = await self.catalog.upsert_batch(entries)

        return write

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def ingest_catalog(self, records: Iterable[CatalogRecord], file_name: str = "catalog") -> IngestionResult:
        """Upsert catalog entries; recorded as a CATALOG batch."""
        return await self._run(SourceKind.CATALOG, file_name, self._catalog_writer(records))

    async def ingest_inbound(self, records: Iterable[InboundRecord], file_name: str = "inbound") -> IngestionResult:
        return await self._run(
            SourceKind.INBOUND, file_name, self._movement_writer(SourceKind.INBOUND, records)
        )

    async def ingest_outbound(self, records: Iterable[OutboundRecord], file_name: str = "outbound") -> IngestionResult:
        return await self._run(
            SourceKind.OUTBOUND, file_name, self._movement_writer(SourceKind.OUTBOUND, records)
        )

    async def ingest_inventory(self, records: Iterable[InventoryRecord], file_name: str = "inventory") -> IngestionResult:
        return await self._run(SourceKind.INVENTORY, file_name, self._inventory_writer(records))

    async def ingest(self, kind: SourceKind, records: Iterable, file_name: str) -> IngestionResult:
        """Dispatch to the ingest method for the given source kind."""
        handlers = {
            SourceKind.CATALOG: self.ingest_catalog,
            SourceKind.INBOUND: self.ingest_inbound,
            SourceKind.OUTBOUND: self.ingest_outbound,
            SourceKind.INVENTORY: self.ingest_inventory,
        }
        return await handlers[SourceKind(kind)](records, file_name=file_name)

    async def ingest_file(
        self,
        kind: SourceKind,
        path: Union[str, Path],
        file_name: Optional[str] = None,
    ) -> IngestionResult:
        """
        Read a CSV/XLSX file lazily and ingest it.

        Read errors surface as a FAILED batch, not an exception.
        """
        reader = reader_for(kind, path, file_name=file_name)
        return await self.ingest(kind, reader, file_name=reader.file_name)

    async def delete_batch(self, batch_id: uuid.UUID) -> None:
        """
        Delete a batch and, through the foreign-key cascade, all its rows.

        Raises:
            NotFoundError: If no batch has this id
        """
        async with session_scope(self.session_factory) as session:
            exists = await session.scalar(
                select(UploadBatch.batch_id).where(UploadBatch.batch_id == batch_id)
            )
            if exists is None:
                raise NotFoundError(f"Upload {batch_id} not found")
            await session.execute(delete(UploadBatch).where(UploadBatch.batch_id == batch_id))

        await self._invalidate_cache()
        logger.info("Batch deleted", batch_id=batch_id)

    async def list_batches(self, kind: Optional[SourceKind] = None) -> List[BatchInfo]:
        """Upload batches, newest first, optionally restricted to one kind."""
        query = select(UploadBatch).order_by(UploadBatch.uploaded_at.desc())
        if kind is not None:
            query = query.where(UploadBatch.source_kind == SourceKind(kind))
        async with self.session_factory() as session:
            batches = (await session.scalars(query)).all()
        return [BatchInfo.model_validate(batch) for batch in batches]
