"""
Unit Tests - Catalog Join
"""
import uuid
from datetime import date

import pytest

from warehouse_analytics.database.models import ProductCategory, SalesChannel, SourceKind
from warehouse_analytics.transformation.join import (
    CatalogMatch,
    inventory_row,
    is_total_row,
    movement_row,
    resolve_sku,
)

CATALOG = {
    "SKU-1": CatalogMatch(cbm_per_unit=0.5, item_group="Electronics"),
    "SKU-2": CatalogMatch(cbm_per_unit=0.0, item_group="Toys"),
}


class TestResolveSku:
    """Tests for resolve_sku"""

    def test_match_is_trimmed_and_exact(self):
        resolved = resolve_sku("  SKU-1 ", CATALOG)
        assert resolved.matched
        assert resolved.sku == "SKU-1"
        assert resolved.cbm_per_unit == 0.5
        assert resolved.product_category == ProductCategory.ELECTRONICS

    @pytest.mark.parametrize("sku", ["sku-1", "SKU-9", "", None])
    def test_unknown_sku_degrades(self, sku):
        resolved = resolve_sku(sku, CATALOG)
        assert not resolved.matched
        assert resolved.cbm_per_unit == 0.0
        assert resolved.item_group == "Others"
        assert resolved.product_category == ProductCategory.OTHERS


class TestMovementRow:
    """Tests for movement_row"""

    def test_inbound_row(self):
        batch_id = uuid.uuid4()
        row = movement_row(
            batch_id,
            SourceKind.INBOUND,
            CATALOG,
            fact_date=date(2024, 1, 5),
            order_sku="SKU-1",
            fulfilled_sku="SKU-1",
            order_qty=12,
            fulfilled_qty=10,
            good_qty=9,
        )

        assert row["batch_id"] == batch_id
        assert row["total_cbm"] == pytest.approx(5.0)
        assert row["product_category"] == ProductCategory.ELECTRONICS
        assert row["good_qty"] == 9
        assert row["sales_channel"] is None

    def test_order_sku_used_when_fulfilled_blank(self):
        row = movement_row(
            uuid.uuid4(), SourceKind.INBOUND, CATALOG, None, "SKU-1", "  ", 4, 0,
        )
        assert row["fulfilled_sku"] is None
        assert row["cbm_per_unit"] == 0.5
        assert row["total_cbm"] == 0.0

    def test_outbound_row_carries_channel(self):
        row = movement_row(
            uuid.uuid4(),
            SourceKind.OUTBOUND,
            CATALOG,
            fact_date=date(2024, 2, 1),
            order_sku="SKU-9",
            fulfilled_sku="SKU-9",
            order_qty=3,
            fulfilled_qty=3,
            customer_group="Blinkit",
            warehouse="WH-1",
        )
        assert row["sales_channel"] == SalesChannel.QUICK_COMMERCE
        assert row["warehouse"] == "WH-1"
        assert row["total_cbm"] == 0.0
        assert row["product_category"] == ProductCategory.OTHERS


class TestInventoryRow:
    """Tests for inventory_row"""

    def test_total_row_skips_join(self):
        row = inventory_row(uuid.uuid4(), CATALOG, " Total ", None)
        assert row["is_total_row"]
        assert row["item"] == "Total"
        assert row["cbm_per_unit"] == 0.0
        assert row["warehouse"] == "Unknown"

    def test_sku_row(self):
        row = inventory_row(uuid.uuid4(), CATALOG, "SKU-1", "WH-2")
        assert not row["is_total_row"]
        assert row["cbm_per_unit"] == 0.5
        assert row["product_category"] == ProductCategory.ELECTRONICS

    @pytest.mark.parametrize("item, expected", [("TOTAL", True), ("Grand Total", True), ("Totals", False), ("", False)])
    def test_total_markers(self, item, expected):
        assert is_total_row(item) is expected
