"""
Integration Tests - Batch Ingestion
"""
from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from warehouse_analytics.analytics.filters import build_filters
from warehouse_analytics.database.models import (
    BatchStatus,
    InventoryDailyStock,
    InventoryFact,
    MovementFact,
    ProductCategory,
    SourceKind,
    UploadBatch,
)
from warehouse_analytics.errors import IngestionError, NotFoundError
from warehouse_analytics.ingestion import catalog as catalog_module
from warehouse_analytics.ingestion.batch_loader import BatchIngestor
from warehouse_analytics.ingestion.readers import CatalogRecord


async def count(session_factory, model, *conditions) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model).where(*conditions))


class TestCatalogIngestion:
    """Tests for catalog uploads"""

    async def test_upsert_is_chunked_and_last_write_wins(self, ingestor, sheets):
        path = sheets.catalog([
            ("SKU-1", "Electronics", 0.5),
            ("SKU-2", "Edel", 0.2),
            ("SKU-3", "Toys", 0.1),
            ("SKU-1", "Electronics", 0.75),
        ])

        result = await ingestor.ingest_file(SourceKind.CATALOG, path)

        assert result.status == BatchStatus.PROCESSED
        assert result.rows_read == 4
        assert result.rows_inserted == 3
        assert await ingestor.catalog.count() == 3
        match = await ingestor.catalog.lookup(" SKU-1 ")
        assert match.cbm_per_unit == 0.75
        assert match.item_group == "Electronics"

    async def test_reupload_replaces_entries(self, ingestor):
        await ingestor.ingest_catalog([CatalogRecord("SKU-1", "Toys", 1.0)])
        await ingestor.ingest_catalog([CatalogRecord("SKU-1", "Edel", 2.0)])

        match = await ingestor.catalog.lookup("SKU-1")
        assert (match.cbm_per_unit, match.item_group) == (2.0, "Edel")
        assert await ingestor.catalog.lookup("SKU-404") is None

    def test_unsupported_dialect_is_an_ingestion_error(self):
        session = SimpleNamespace(bind=SimpleNamespace(dialect=SimpleNamespace(name="mssql")))

        with pytest.raises(IngestionError, match="mssql"):
            catalog_module._insert_for(session)

    async def test_unsupported_dialect_fails_batch(self, ingestor, sheets, monkeypatch):
        session = SimpleNamespace(bind=SimpleNamespace(dialect=SimpleNamespace(name="mssql")))
        unsupported = catalog_module._insert_for
        monkeypatch.setattr(catalog_module, "_insert_for", lambda _: unsupported(session))

        result = await ingestor.ingest_file(SourceKind.CATALOG, sheets.catalog([("SKU-1", "Toys", 0.1)]))

        assert result.status == BatchStatus.FAILED
        assert "not supported on mssql" in result.error_message


class TestMovementIngestion:
    """Tests for inbound and outbound uploads"""

    async def test_inbound_row_is_joined_against_catalog(self, ingestor, session_factory, sheets):
        await ingestor.ingest_file(SourceKind.CATALOG, sheets.catalog([("SKU-1", "Electronics", 0.5)]))

        result = await ingestor.ingest_file(
            SourceKind.INBOUND, sheets.inbound([("2024-01-05", "SKU-1", "SKU-1", 10, 10, 10)])
        )

        assert result.status == BatchStatus.PROCESSED
        assert result.rows_inserted == 1
        async with session_factory() as session:
            fact = (await session.scalars(select(MovementFact))).one()
        assert fact.batch_id == result.batch_id
        assert fact.source_kind == SourceKind.INBOUND
        assert fact.total_cbm == pytest.approx(5.0)
        assert fact.product_category == ProductCategory.ELECTRONICS

    async def test_catalog_change_does_not_touch_written_rows(self, ingestor, service, session_factory, sheets):
        await ingestor.ingest_file(SourceKind.CATALOG, sheets.catalog([("SKU-1", "Electronics", 0.5)]))
        first = await ingestor.ingest_file(
            SourceKind.INBOUND, sheets.inbound([("2024-01-05", "SKU-1", "SKU-1", 10, 10, 10)])
        )

        await ingestor.ingest_file(SourceKind.CATALOG, sheets.catalog([("SKU-1", "Electronics", 2.0)]))
        second = await ingestor.ingest_file(
            SourceKind.INBOUND, sheets.inbound([("2024-01-06", "SKU-1", "SKU-1", 10, 10, 10)])
        )

        async with session_factory() as session:
            old = (await session.scalars(select(MovementFact).where(MovementFact.batch_id == first.batch_id))).one()
            new = (await session.scalars(select(MovementFact).where(MovementFact.batch_id == second.batch_id))).one()
        assert old.cbm_per_unit == pytest.approx(0.5)
        assert old.total_cbm == pytest.approx(5.0)
        assert new.cbm_per_unit == pytest.approx(2.0)
        assert new.total_cbm == pytest.approx(20.0)

        report = await service.inbound_summary(build_filters(SourceKind.INBOUND, upload_id=str(first.batch_id)))
        assert report["cards"]["totalCbm"] == pytest.approx(5.0)

    async def test_unknown_sku_is_kept_with_zero_volume(self, ingestor, session_factory, sheets):
        result = await ingestor.ingest_file(
            SourceKind.INBOUND, sheets.inbound([("2024-01-05", "SKU-9", "SKU-9", 4, 4, 4)])
        )

        assert result.status == BatchStatus.PROCESSED
        async with session_factory() as session:
            fact = (await session.scalars(select(MovementFact))).one()
        assert fact.cbm_per_unit == 0.0
        assert fact.item_group == "Others"
        assert fact.product_category == ProductCategory.OTHERS
        assert fact.fulfilled_qty == 4.0

    async def test_outbound_rows_are_chunked(self, ingestor, session_factory, sheets):
        entries = [
            {"date": "2024-02-01", "so_item": f"SKU-{i}", "so_qty": 1, "dn_item": f"SKU-{i}", "dn_qty": 1,
             "customer_group": "Amazon", "warehouse": "WH-1"}
            for i in range(5)
        ]

        result = await ingestor.ingest_file(SourceKind.OUTBOUND, sheets.outbound(entries))

        assert result.status == BatchStatus.PROCESSED
        assert result.rows_inserted == 5
        assert await count(session_factory, MovementFact, MovementFact.batch_id == result.batch_id) == 5

    async def test_empty_file_fails_batch(self, ingestor, session_factory, sheets):
        result = await ingestor.ingest_file(SourceKind.INBOUND, sheets.inbound([]))

        assert result.status == BatchStatus.FAILED
        assert "no data rows" in result.error_message
        async with session_factory() as session:
            batch = await session.get(UploadBatch, result.batch_id)
        assert batch.status == BatchStatus.FAILED
        assert batch.completed_at is not None

    async def test_unreadable_file_fails_batch(self, ingestor, tmp_path):
        path = tmp_path / "inbound.xlsx"
        path.write_bytes(b"this is not a workbook")

        result = await ingestor.ingest_file(SourceKind.INBOUND, path)

        assert result.status == BatchStatus.FAILED
        assert result.error_message

    async def test_partial_failure_keeps_committed_chunks(self, session_factory, report_cache, sheets):
        ingestor = BatchIngestor(session_factory, cache=report_cache, chunk_size=2, max_rows=3)
        rows = [("2024-01-05", f"SKU-{i}", f"SKU-{i}", 1, 1, 1) for i in range(5)]

        result = await ingestor.ingest_file(SourceKind.INBOUND, sheets.inbound(rows))

        assert result.status == BatchStatus.FAILED
        assert result.rows_inserted == 2
        assert await count(session_factory, MovementFact, MovementFact.batch_id == result.batch_id) == 2


class TestInventoryIngestion:
    """Tests for inventory uploads"""

    async def test_rows_and_daily_stock(self, ingestor, session_factory, sheets):
        days = [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3)]
        path = sheets.inventory(
            days,
            [("SKU-1", "WH-1", [10, 20, 30]), ("SKU-2", "", [1, "", 2])],
            total=[11, 20, 32],
        )

        result = await ingestor.ingest_file(SourceKind.INVENTORY, path)

        assert result.status == BatchStatus.PROCESSED
        assert result.rows_inserted == 3
        assert await count(session_factory, InventoryDailyStock) == 9
        async with session_factory() as session:
            rows = {r.item: r for r in (await session.scalars(select(InventoryFact))).all()}
        assert rows["Total"].is_total_row
        assert rows["SKU-2"].warehouse == "Unknown"


class TestBatchManagement:
    """Tests for listing, deletion and cache invalidation"""

    async def test_delete_cascades(self, ingestor, session_factory, sheets):
        result = await ingestor.ingest_file(
            SourceKind.INBOUND, sheets.inbound([("2024-01-05", "SKU-1", "SKU-1", 1, 1, 1)])
        )

        await ingestor.delete_batch(result.batch_id)

        assert await count(session_factory, MovementFact) == 0
        assert await count(session_factory, UploadBatch) == 0
        with pytest.raises(NotFoundError):
            await ingestor.delete_batch(result.batch_id)

    async def test_list_batches_newest_first(self, ingestor, sheets):
        first = await ingestor.ingest_file(
            SourceKind.INBOUND, sheets.inbound([("2024-01-05", "A", "A", 1, 1, 1)], name="a.csv")
        )
        second = await ingestor.ingest_file(
            SourceKind.OUTBOUND,
            sheets.outbound([{"date": "2024-01-05", "so_item": "A", "dn_item": "A", "dn_qty": 1}], name="b.csv"),
        )

        batches = await ingestor.list_batches()
        assert [b.batch_id for b in batches] == [second.batch_id, first.batch_id]
        assert batches[0].file_name == "b.csv"

        inbound_only = await ingestor.list_batches(SourceKind.INBOUND)
        assert [b.batch_id for b in inbound_only] == [first.batch_id]

    async def test_every_ingestion_clears_cache(self, ingestor, report_cache, sheets):
        await report_cache.put("inbound|summary", {"stale": True})
        await ingestor.ingest_file(SourceKind.INBOUND, sheets.inbound([]))
        assert await report_cache.get("inbound|summary") is None

        await report_cache.put("inbound|summary", {"stale": True})
        await ingestor.ingest_file(SourceKind.CATALOG, sheets.catalog([("SKU-1", "Toys", 1)]))
        assert await report_cache.get("inbound|summary") is None
