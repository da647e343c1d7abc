"""
Database Models - Batch-Scoped Fact Schema

This module defines the data models for warehouse reporting. Every fact row
belongs to exactly one upload batch and is removed with it.

Reference Tables:
- UploadBatch: One ingested source file and its processing status
- CatalogEntry: SKU -> (item group, CBM per unit) reference data

Fact Tables:
- MovementFact: Inbound receipts and outbound dispatches (tagged by source kind)
- InventoryFact: One SKU (or aggregate Total row) of an inventory snapshot
- InventoryDailyStock: Daily quantity recorded for an inventory row
"""

from datetime import datetime, date
from enum import Enum
from typing import Optional, List
import uuid

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def utcnow() -> datetime:
    return datetime.utcnow()


# =============================================================================
# ENUMERATIONS
# =============================================================================

class SourceKind(str, Enum):
    """Kind of spreadsheet an upload batch was created from"""
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    INVENTORY = "inventory"
    CATALOG = "catalog"


class BatchStatus(str, Enum):
    """Upload batch lifecycle"""
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class ProductCategory(str, Enum):
    """Closed set of product categories"""
    EDEL = "EDEL"
    HOME_AND_KITCHEN = "HOME_AND_KITCHEN"
    ELECTRONICS = "ELECTRONICS"
    HEALTH_AND_PERSONAL_CARE = "HEALTH_AND_PERSONAL_CARE"
    AUTOMOTIVE_AND_TOOLS = "AUTOMOTIVE_AND_TOOLS"
    TOYS_AND_GAMES = "TOYS_AND_GAMES"
    BRAND_PRIVATE_LABEL = "BRAND_PRIVATE_LABEL"
    OTHERS = "OTHERS"


class SalesChannel(str, Enum):
    """Closed set of outbound sales channels derived from the customer group"""
    E_COMMERCE = "E_COMMERCE"
    OFFLINE = "OFFLINE"
    QUICK_COMMERCE = "QUICK_COMMERCE"
    EBO = "EBO"
    B2C = "B2C"
    OTHERS = "OTHERS"


# =============================================================================
# REFERENCE TABLES
# =============================================================================

class UploadBatch(Base):
    """
    Upload Batch Table

    Created when an upload starts (PROCESSING) and flipped to PROCESSED or
    FAILED when ingestion ends. Owns every fact row derived from the file.
    """
    __tablename__ = "upload_batches"

    batch_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_kind: Mapped[SourceKind] = mapped_column(SQLEnum(SourceKind), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[BatchStatus] = mapped_column(
        SQLEnum(BatchStatus), nullable=False, default=BatchStatus.PROCESSING
    )
    rows_inserted: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Relationships (passive: rows are removed by the database cascade)
    movements: Mapped[List["MovementFact"]] = relationship(
        back_populates="batch", passive_deletes=True
    )
    inventory_rows: Mapped[List["InventoryFact"]] = relationship(
        back_populates="batch", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_upload_batches_kind_status", "source_kind", "status", "uploaded_at"),
    )


class CatalogEntry(Base):
    """
    Catalog Table

    Reference data keyed by SKU id. Upserted in bulk, last write wins.
    Fact rows copy the values at ingestion time and never follow later edits.
    """
    __tablename__ = "catalog_entries"

    sku_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    item_group: Mapped[str] = mapped_column(String(200), nullable=False, default="Others")
    cbm_per_unit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


# =============================================================================
# FACT TABLES
# =============================================================================

class MovementFact(Base):
    """
    Movement Fact Table

    Shared shape of inbound and outbound rows. The "order" side is the
    invoice (inbound) or sales order (outbound); the "fulfilled" side is the
    received quantity (inbound) or delivery note (outbound).

    Invariant: total_cbm = fulfilled_qty * cbm_per_unit, fixed at ingestion.
    """
    __tablename__ = "fact_movements"

    fact_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    batch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("upload_batches.batch_id", ondelete="CASCADE"), nullable=False
    )
    source_kind: Mapped[SourceKind] = mapped_column(SQLEnum(SourceKind), nullable=False)

    fact_date: Mapped[Optional[date]] = mapped_column(Date)
    order_sku: Mapped[Optional[str]] = mapped_column(String(100))
    fulfilled_sku: Mapped[Optional[str]] = mapped_column(String(100))

    # Measures
    order_qty: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    fulfilled_qty: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    good_qty: Mapped[Optional[float]] = mapped_column(Float)

    # Catalog-derived
    item_group: Mapped[str] = mapped_column(String(200), nullable=False, default="Others")
    cbm_per_unit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_cbm: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    product_category: Mapped[ProductCategory] = mapped_column(
        SQLEnum(ProductCategory), nullable=False, default=ProductCategory.OTHERS
    )

    batch: Mapped["UploadBatch"] = relationship(back_populates="movements")

    __mapper_args__ = {
        "polymorphic_on": "source_kind",
    }

    __table_args__ = (
        Index("ix_fact_movements_batch_date", "batch_id", "fact_date"),
        Index("ix_fact_movements_batch_category", "batch_id", "product_category"),
        Index("ix_fact_movements_fulfilled_sku", "fulfilled_sku"),
    )


class InboundFact(MovementFact):
    """Inbound receipt: invoice SKU/qty vs received SKU/qty"""
    __mapper_args__ = {
        "polymorphic_identity": SourceKind.INBOUND,
    }


class OutboundFact(MovementFact):
    """Outbound dispatch: sales order vs delivery note"""
    customer_group: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    sales_channel: Mapped[Optional[SalesChannel]] = mapped_column(SQLEnum(SalesChannel), nullable=True)
    warehouse: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    transporter: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    __mapper_args__ = {
        "polymorphic_identity": SourceKind.OUTBOUND,
    }


class InventoryFact(Base):
    """
    Inventory Row Table

    One SKU line of an inventory snapshot, or the sheet's aggregate Total row
    (is_total_row=True, never joined against the catalog).
    """
    __tablename__ = "inventory_rows"

    row_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    batch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("upload_batches.batch_id", ondelete="CASCADE"), nullable=False
    )
    item: Mapped[str] = mapped_column(String(200), nullable=False)
    warehouse: Mapped[str] = mapped_column(String(200), nullable=False, default="Unknown")
    item_group: Mapped[str] = mapped_column(String(200), nullable=False, default="Others")
    cbm_per_unit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    product_category: Mapped[ProductCategory] = mapped_column(
        SQLEnum(ProductCategory), nullable=False, default=ProductCategory.OTHERS
    )
    is_total_row: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    batch: Mapped["UploadBatch"] = relationship(back_populates="inventory_rows")
    daily_stocks: Mapped[List["InventoryDailyStock"]] = relationship(
        back_populates="row", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_inventory_rows_batch", "batch_id", "is_total_row"),
    )


class InventoryDailyStock(Base):
    """
    Inventory Daily Stock Table

    Grain: one row per inventory row per day. batch_id is carried alongside
    row_id so date-range queries can filter without joining.
    """
    __tablename__ = "inventory_daily_stock"

    stock_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    row_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("inventory_rows.row_id", ondelete="CASCADE"), nullable=False
    )
    batch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("upload_batches.batch_id", ondelete="CASCADE"), nullable=False
    )
    stock_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    row: Mapped["InventoryFact"] = relationship(back_populates="daily_stocks")

    __table_args__ = (
        Index("ix_inventory_daily_row_date", "row_id", "stock_date"),
        Index("ix_inventory_daily_batch_date", "batch_id", "stock_date"),
    )
