"""
Unit Tests - Spreadsheet Readers and Cell Parsing
"""
from datetime import date, datetime

import pytest

from warehouse_analytics.database.models import SourceKind
from warehouse_analytics.errors import IngestionError
from warehouse_analytics.ingestion.readers import (
    CatalogRecord,
    InboundReader,
    InventoryReader,
    OutboundReader,
    column_index,
    excel_serial_to_date,
    parse_date,
    parse_header_date,
    parse_number,
    parse_text,
    reader_for,
)


class TestCellParsing:
    """Tests for column addressing and cell conversion"""

    def test_column_index(self):
        assert column_index("A") == 0
        assert column_index("h") == 7
        assert column_index("Z") == 25
        assert column_index("AA") == 26

    def test_parse_text(self):
        assert parse_text("  SKU-1 ") == "SKU-1"
        assert parse_text("   ") is None
        assert parse_text(None) is None
        assert parse_text(12345.0) == "12345"
        assert parse_text(1.5) == "1.5"

    def test_parse_number(self):
        assert parse_number("1,234.5") == 1234.5
        assert parse_number(" 10 ") == 10.0
        assert parse_number(7) == 7.0
        assert parse_number("n/a") == 0.0
        assert parse_number("") == 0.0
        assert parse_number(None) == 0.0

    def test_excel_serials(self):
        assert excel_serial_to_date(1) == date(1900, 1, 1)
        assert excel_serial_to_date(59) == date(1900, 2, 28)
        assert excel_serial_to_date(61) == date(1900, 3, 1)
        assert excel_serial_to_date(45292) == date(2024, 1, 1)
        assert excel_serial_to_date(45296.75) == date(2024, 1, 5)
        assert excel_serial_to_date(0) is None
        assert excel_serial_to_date(3000000) is None

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2024-01-05", date(2024, 1, 5)),
            ("2024-01-05 10:30:00", date(2024, 1, 5)),
            ("2024-01-05T10:30:00", date(2024, 1, 5)),
            ("05/01/2024", date(2024, 1, 5)),
            ("05-01-24", date(2024, 1, 5)),
            ("45296", date(2024, 1, 5)),
            (45296, date(2024, 1, 5)),
            (datetime(2024, 1, 5, 8, 0), date(2024, 1, 5)),
            (date(2024, 1, 5), date(2024, 1, 5)),
            ("2024-02-30", None),
            ("yesterday", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse_date(self, raw, expected):
        assert parse_date(raw) == expected

    def test_header_dates_outside_range_are_ignored(self):
        assert parse_header_date("Warehouse") is None
        assert parse_header_date(10) is None
        assert parse_header_date("2024-03-01") == date(2024, 3, 1)


class TestReaders:
    """Tests for the positional readers over CSV files"""

    def test_catalog_reader(self, sheets):
        path = sheets.catalog([("SKU-1", "Electronics", 0.5), ("", "Toys", 1), ("SKU-2", "", "")])
        records = list(reader_for(SourceKind.CATALOG, path))

        assert records == [
            CatalogRecord(sku_id="SKU-1", item_group="Electronics", cbm_per_unit=0.5),
            CatalogRecord(sku_id="SKU-2", item_group=None, cbm_per_unit=0.0),
        ]

    def test_inbound_reader_skips_two_leading_rows(self, sheets):
        path = sheets.inbound([
            ("2024-01-05", "SKU-1", "SKU-1", 12, 10, 9),
            ("2024-01-06", "", "", 5, 5, 5),
            ("06/01/2024", "SKU-2", "", 3, 0, 0),
        ])
        records = list(InboundReader(path))

        assert len(records) == 2
        first, second = records
        assert first.fact_date == date(2024, 1, 5)
        assert (first.invoice_sku, first.received_sku) == ("SKU-1", "SKU-1")
        assert (first.invoice_qty, first.received_qty, first.good_qty) == (12.0, 10.0, 9.0)
        assert second.fact_date == date(2024, 1, 6)
        assert second.received_sku is None

    def test_outbound_reader(self, sheets):
        path = sheets.outbound([
            {"date": "2024-02-01", "so_item": "SKU-1", "so_qty": 4, "dn_item": "SKU-1", "dn_qty": 3,
             "customer_group": "Amazon", "warehouse": "WH-1", "transporter": "Blue Dart"},
        ])
        (record,) = list(OutboundReader(path))

        assert record.fact_date == date(2024, 2, 1)
        assert (record.so_item, record.dn_item) == ("SKU-1", "SKU-1")
        assert (record.so_qty, record.dn_qty) == (4.0, 3.0)
        assert record.customer_group == "Amazon"
        assert record.warehouse == "WH-1"
        assert record.transporter == "Blue Dart"

    def test_inventory_reader_pairs_every_date_column(self, sheets):
        days = [date(2024, 3, 1), date(2024, 3, 2)]
        path = sheets.inventory(days, [("SKU-1", "WH-1", [10, ""]), ("", "WH-1", [1, 1])], total=[10, 0])
        records = list(InventoryReader(path))

        assert [r.item for r in records] == ["SKU-1", "Total"]
        assert records[0].warehouse == "WH-1"
        assert records[0].daily_quantities == ((days[0], 10.0), (days[1], 0.0))

    def test_readers_are_restartable(self, sheets):
        path = sheets.inbound([("2024-01-05", "SKU-1", "SKU-1", 1, 1, 1)])
        reader = InboundReader(path)

        assert list(reader) == list(reader)

    def test_unsupported_file_type(self, tmp_path):
        path = tmp_path / "inbound.txt"
        path.write_text("nothing useful")

        with pytest.raises(IngestionError):
            list(reader_for(SourceKind.INBOUND, path))
