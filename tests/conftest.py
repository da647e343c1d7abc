"""
Test Suite Configuration
"""
import csv
from datetime import date
from pathlib import Path
from typing import Any, List, Optional, Sequence

import pytest

from warehouse_analytics.analytics.reports import ReportService
from warehouse_analytics.database.connection import build_engine, build_session_factory, create_tables
from warehouse_analytics.ingestion.batch_loader import BatchIngestor
from warehouse_analytics.ingestion.readers import column_index
from warehouse_analytics.serving.cache import MemoryCacheBackend, ReportCache


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with the full schema"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def report_cache() -> ReportCache:
    return ReportCache(MemoryCacheBackend())


@pytest.fixture
def ingestor(session_factory, report_cache) -> BatchIngestor:
    return BatchIngestor(session_factory, cache=report_cache, chunk_size=2, catalog_chunk_size=2)


@pytest.fixture
def service(session_factory, report_cache) -> ReportService:
    return ReportService(session_factory, report_cache)


def _row(width: int, cells: dict) -> List[Any]:
    """Positional row of `width` cells; `cells` maps column letters to values."""
    row: List[Any] = [""] * width
    for letter, value in cells.items():
        row[column_index(letter)] = "" if value is None else value
    return row


class SheetFactory:
    """Writes CSV files in the warehouse export layouts"""

    def __init__(self, directory: Path):
        self.directory = directory

    def write(self, name: str, rows: Sequence[Sequence[Any]]) -> Path:
        width = max(len(row) for row in rows)
        path = self.directory / name
        with path.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh)
            for row in rows:
                writer.writerow(list(row) + [""] * (width - len(row)))
        return path

    def catalog(self, entries, name: str = "catalog.csv") -> Path:
        """entries: (sku, item_group, cbm_per_unit)"""
        rows = [_row(8, {"B": "Item Code", "D": "Item Group", "H": "CBM"})]
        rows += [_row(8, {"B": sku, "D": group, "H": cbm}) for sku, group, cbm in entries]
        return self.write(name, rows)

    def inbound(self, entries, name: str = "inbound.csv") -> Path:
        """entries: (date, invoice_sku, received_sku, invoice_qty, received_qty, good_qty)"""
        rows = [
            _row(14, {"A": "Inbound Report"}),
            _row(14, {"B": "Date of Unload", "I": "Invoice SKU", "J": "Received SKU",
                      "K": "Invoice Qty", "L": "Received Qty", "N": "Good Qty"}),
        ]
        for fact_date, invoice_sku, received_sku, invoice_qty, received_qty, good_qty in entries:
            rows.append(_row(14, {
                "B": fact_date, "I": invoice_sku, "J": received_sku,
                "K": invoice_qty, "L": received_qty, "N": good_qty,
            }))
        return self.write(name, rows)

    def outbound(self, entries, name: str = "outbound.csv") -> Path:
        """entries: dicts with date, so_item, so_qty, dn_item, dn_qty, customer_group, warehouse"""
        rows = [_row(24, {"C": "Customer Group", "K": "Source Warehouse", "L": "SO Item",
                          "N": "SO Qty", "S": "DN Date", "U": "DN Item", "V": "DN Qty",
                          "X": "Transporter"})]
        for entry in entries:
            rows.append(_row(24, {
                "C": entry.get("customer_group"),
                "K": entry.get("warehouse"),
                "L": entry.get("so_item"),
                "N": entry.get("so_qty", 0),
                "S": entry.get("date"),
                "U": entry.get("dn_item"),
                "V": entry.get("dn_qty", 0),
                "X": entry.get("transporter"),
            }))
        return self.write(name, rows)

    def inventory(
        self,
        dates: Sequence[date],
        items,
        name: str = "inventory.csv",
        total: Optional[Sequence[float]] = None,
    ) -> Path:
        """items: (item, warehouse, daily quantities aligned with `dates`)"""
        width = 7 + len(dates)
        header = _row(width, {"A": "Item", "C": "Warehouse"})
        for offset, day in enumerate(dates):
            header[7 + offset] = day.isoformat()
        rows = [header]
        for item, warehouse, quantities in items:
            row = _row(width, {"A": item, "C": warehouse})
            row[7:] = list(quantities)
            rows.append(row)
        if total is not None:
            row = _row(width, {"A": "Total"})
            row[7:] = list(total)
            rows.append(row)
        return self.write(name, rows)


@pytest.fixture
def sheets(tmp_path) -> SheetFactory:
    return SheetFactory(tmp_path)
