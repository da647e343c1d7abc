"""
Catalog Join

Shared join step for every fact variant: resolve a SKU against a catalog
snapshot, derive total CBM and the normalized product category. Unknown
SKUs degrade to zero CBM and the "Others" item group; they are never
rejected.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Mapping, Optional
import uuid

from warehouse_analytics.database.models import ProductCategory, SourceKind
from warehouse_analytics.transformation.categories import normalize_category, normalize_channel

UNMATCHED_ITEM_GROUP = "Others"

TOTAL_ROW_MARKERS = frozenset({"total", "grand total"})


@dataclass(frozen=True)
class CatalogMatch:
    """Catalog values copied onto a fact row at ingestion time"""
    cbm_per_unit: float
    item_group: str


@dataclass(frozen=True)
class ResolvedSku:
    """Outcome of joining one SKU against the catalog"""
    sku: Optional[str]
    item_group: str
    cbm_per_unit: float
    product_category: ProductCategory
    matched: bool


def clean_sku(sku: Optional[str]) -> Optional[str]:
    if sku is None:
        return None
    sku = str(sku).strip()
    return sku or None


def resolve_sku(sku: Optional[str], catalog: Mapping[str, CatalogMatch]) -> ResolvedSku:
    """
    Look up a trimmed SKU (exact, case-sensitive) in a catalog snapshot.

    Returns:
        ResolvedSku with cbm_per_unit=0 and item_group "Others" when the SKU
        is blank or unknown
    """
    key = clean_sku(sku)
    match = catalog.get(key) if key is not None else None
    if match is None:
        return ResolvedSku(
            sku=key,
            item_group=UNMATCHED_ITEM_GROUP,
            cbm_per_unit=0.0,
            product_category=ProductCategory.OTHERS,
            matched=False,
        )
    return ResolvedSku(
        sku=key,
        item_group=match.item_group,
        cbm_per_unit=float(match.cbm_per_unit),
        product_category=normalize_category(match.item_group),
        matched=True,
    )


def total_cbm(quantity: float, cbm_per_unit: float) -> float:
    return float(quantity or 0.0) * float(cbm_per_unit or 0.0)


def is_total_row(item: Optional[str]) -> bool:
    return bool(item) and str(item).strip().lower() in TOTAL_ROW_MARKERS


def movement_row(
    batch_id: uuid.UUID,
    source_kind: SourceKind,
    catalog: Mapping[str, CatalogMatch],
    fact_date: Optional[date],
    order_sku: Optional[str],
    fulfilled_sku: Optional[str],
    order_qty: float,
    fulfilled_qty: float,
    good_qty: Optional[float] = None,
    customer_group: Optional[str] = None,
    warehouse: Optional[str] = None,
    transporter: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build one fact_movements row (column -> value) for a parsed record.

    The fulfilled-side SKU drives the join; the order-side SKU is used when
    the fulfilled side is blank.
    """
    order_sku = clean_sku(order_sku)
    fulfilled_sku = clean_sku(fulfilled_sku)
    resolved = resolve_sku(fulfilled_sku or order_sku, catalog)

    row: Dict[str, Any] = {
        "fact_id": uuid.uuid4(),
        "batch_id": batch_id,
        "source_kind": source_kind,
        "fact_date": fact_date,
        "order_sku": order_sku,
        "fulfilled_sku": fulfilled_sku,
        "order_qty": float(order_qty or 0.0),
        "fulfilled_qty": float(fulfilled_qty or 0.0),
        "good_qty": good_qty,
        "item_group": resolved.item_group,
        "cbm_per_unit": resolved.cbm_per_unit,
        "total_cbm": total_cbm(fulfilled_qty, resolved.cbm_per_unit),
        "product_category": resolved.product_category,
        "customer_group": None,
        "sales_channel": None,
        "warehouse": None,
        "transporter": None,
    }
    if source_kind == SourceKind.OUTBOUND:
        row.update(
            customer_group=customer_group,
            sales_channel=normalize_channel(customer_group),
            warehouse=warehouse,
            transporter=transporter,
        )
    return row


def inventory_row(
    batch_id: uuid.UUID,
    catalog: Mapping[str, CatalogMatch],
    item: str,
    warehouse: Optional[str],
) -> Dict[str, Any]:
    """
    Build one inventory_rows row. Total rows skip the catalog join.
    """
    item = str(item).strip()
    total = is_total_row(item)
    if total:
        resolved = resolve_sku(None, catalog)
    else:
        resolved = resolve_sku(item, catalog)
    return {
        "row_id": uuid.uuid4(),
        "batch_id": batch_id,
        "item": item,
        "warehouse": (warehouse or "").strip() or "Unknown",
        "item_group": resolved.item_group,
        "cbm_per_unit": resolved.cbm_per_unit,
        "product_category": resolved.product_category,
        "is_total_row": total,
    }
