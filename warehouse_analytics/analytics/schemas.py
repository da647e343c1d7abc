"""
Report Payloads

Pydantic models for report responses. Fields are snake_case in Python and
camelCase on the wire.
"""

from typing import List, Optional
import uuid

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ReportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DateRange(ReportModel):
    min_date: Optional[str] = None
    max_date: Optional[str] = None


# =============================================================================
# INBOUND / OUTBOUND
# =============================================================================

class MovementCards(ReportModel):
    """
    Card metrics. "order" is the invoice (inbound) or sales order
    (outbound); "fulfilled" is the received qty (inbound) or delivery note
    (outbound).
    """
    order_sku_count: int
    fulfilled_sku_count: int
    order_qty_total: float
    fulfilled_qty_total: float
    good_qty_total: float
    order_cbm_total: float
    total_cbm: float
    pending_qty_total: float


class BreakdownRow(ReportModel):
    """One row of a category or channel table (key "TOTAL" for the sum row)"""
    key: str
    label: str
    order_sku_count: int
    order_qty: float
    order_cbm: float
    fulfilled_sku_count: int
    fulfilled_qty: float
    total_cbm: float
    pending_qty: float


class MovementPoint(ReportModel):
    key: str
    label: str
    start_date: str
    end_date: str
    order_qty: float
    fulfilled_qty: float
    total_cbm: float


class MovementTimeSeries(ReportModel):
    granularity: str
    points: List[MovementPoint]


class MovementDay(ReportModel):
    date: str
    label: str
    fulfilled_qty: float
    total_cbm: float
    edel_fulfilled_qty: float
    edel_total_cbm: float


class MovementTotals(ReportModel):
    total_fulfilled_qty: float
    total_cbm: float
    total_edel_fulfilled_qty: float
    total_edel_cbm: float
    day_data: List[MovementDay]


class MovementSummary(ReportModel):
    kind: str
    upload_id: uuid.UUID
    cards: MovementCards
    category_table: List[BreakdownRow]
    channel_table: Optional[List[BreakdownRow]] = None
    available_dates: DateRange
    available_months: List[str]
    product_categories: List[str]
    available_warehouses: Optional[List[str]] = None
    time_series: MovementTimeSeries
    summary_totals: MovementTotals


class TopProduct(ReportModel):
    rank: int
    product: str
    total_cbm: float
    total_qty: float
    product_category: str
    percentage_of_total: float


class TopProductsReport(ReportModel):
    kind: str
    upload_id: uuid.UUID
    rank_by: str
    sort_order: str
    limit: int
    products: List[TopProduct]


# =============================================================================
# INVENTORY
# =============================================================================

class InventoryCards(ReportModel):
    """
    inventory_qty_basis is "total_row" when the sheet's Total row drove the
    quantity card, "sku_sum" when per-SKU quantities were summed instead.
    """
    inbound_sku_count: int
    inventory_qty_total: float
    total_cbm: float
    inventory_qty_basis: str


class InventoryCategoryRow(ReportModel):
    key: str
    label: str
    sku_count: int
    avg_qty: float
    total_cbm: float


class InventoryPoint(ReportModel):
    key: str
    label: str
    start_date: str
    end_date: str
    days: int
    avg_qty: float
    avg_cbm: float


class InventoryTimeSeries(ReportModel):
    granularity: str
    points: List[InventoryPoint]


class InventoryDay(ReportModel):
    date: str
    label: str
    qty: float
    cbm: float


class InventoryTotals(ReportModel):
    days: int
    average_qty: float
    average_cbm: float
    day_data: List[InventoryDay]


class InventorySummary(ReportModel):
    kind: str
    upload_id: uuid.UUID
    cards: InventoryCards
    category_table: List[InventoryCategoryRow]
    available_dates: DateRange
    available_months: List[str]
    product_categories: List[str]
    available_warehouses: List[str]
    time_series: InventoryTimeSeries
    summary_totals: InventoryTotals
