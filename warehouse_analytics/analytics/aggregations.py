"""
Aggregation Engine

Every metric is computed by an aggregate query in the database; no method
here loads fact rows into memory. Each method takes its own session so the
report service can run independent queries concurrently.

MovementAggregator serves inbound and outbound batches (same table, tagged
by source kind). InventoryAggregator serves inventory snapshots, whose
quantity and CBM cards are time averages rather than sums.
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import and_, case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from warehouse_analytics.analytics.filters import RankBy, ReportFilters, SortOrder
from warehouse_analytics.database.models import (
    InventoryDailyStock,
    InventoryFact,
    MovementFact,
    OutboundFact,
    ProductCategory,
    SalesChannel,
)

logger = structlog.get_logger(__name__)

TOTAL_KEY = "TOTAL"


def _f(value) -> float:
    return float(value or 0.0)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class MovementMetrics:
    order_sku_count: int = 0
    fulfilled_sku_count: int = 0
    order_qty: float = 0.0
    fulfilled_qty: float = 0.0
    good_qty: float = 0.0
    order_cbm: float = 0.0
    total_cbm: float = 0.0

    @property
    def pending_qty(self) -> float:
        # negative when more was fulfilled than ordered
        return self.order_qty - self.fulfilled_qty

    def __add__(self, other: "MovementMetrics") -> "MovementMetrics":
        return MovementMetrics(
            order_sku_count=self.order_sku_count + other.order_sku_count,
            fulfilled_sku_count=self.fulfilled_sku_count + other.fulfilled_sku_count,
            order_qty=self.order_qty + other.order_qty,
            fulfilled_qty=self.fulfilled_qty + other.fulfilled_qty,
            good_qty=self.good_qty + other.good_qty,
            order_cbm=self.order_cbm + other.order_cbm,
            total_cbm=self.total_cbm + other.total_cbm,
        )


@dataclass
class RankedProduct:
    product: str
    total_cbm: float
    total_qty: float
    product_category: ProductCategory


@dataclass
class InventoryCardValues:
    sku_count: int
    qty: float
    total_cbm: float
    qty_basis: str


@dataclass
class InventoryGroupMetrics:
    sku_count: int = 0
    avg_qty: float = 0.0
    total_cbm: float = 0.0


def months_of(dates: Sequence[date]) -> List[str]:
    return sorted({f"{d.year}-{d.month:02d}" for d in dates})


# =============================================================================
# INBOUND / OUTBOUND
# =============================================================================

class MovementAggregator:
    """
    Pushdown aggregates over fact_movements for one batch.

    Example:
        aggregator = MovementAggregator(batch_id, filters)
        async with session_factory() as session:
            cards = await aggregator.card_metrics(session)
    """

    def __init__(self, batch_id, filters: ReportFilters):
        self.batch_id = batch_id
        self.filters = filters

    def conditions(self) -> list:
        conds = [MovementFact.batch_id == self.batch_id]
        if self.filters.from_date:
            conds.append(MovementFact.fact_date >= self.filters.from_date)
        if self.filters.to_date:
            conds.append(MovementFact.fact_date <= self.filters.to_date)
        if self.filters.categories:
            conds.append(MovementFact.product_category.in_(self.filters.categories))
        if self.filters.warehouse:
            conds.append(OutboundFact.warehouse == self.filters.warehouse)
        return conds

    @staticmethod
    def _metric_columns() -> list:
        return [
            func.count(distinct(MovementFact.order_sku)),
            func.count(distinct(MovementFact.fulfilled_sku)),
            func.coalesce(func.sum(MovementFact.order_qty), 0.0),
            func.coalesce(func.sum(MovementFact.fulfilled_qty), 0.0),
            func.coalesce(func.sum(MovementFact.good_qty), 0.0),
            func.coalesce(func.sum(MovementFact.order_qty * MovementFact.cbm_per_unit), 0.0),
            func.coalesce(func.sum(MovementFact.total_cbm), 0.0),
        ]

    @staticmethod
    def _to_metrics(values: Sequence) -> MovementMetrics:
        return MovementMetrics(
            order_sku_count=int(values[0] or 0),
            fulfilled_sku_count=int(values[1] or 0),
            order_qty=_f(values[2]),
            fulfilled_qty=_f(values[3]),
            good_qty=_f(values[4]),
            order_cbm=_f(values[5]),
            total_cbm=_f(values[6]),
        )

    async def card_metrics(self, session: AsyncSession) -> MovementMetrics:
        """Distinct SKU counts and quantity/CBM sums in one query."""
        row = (await session.execute(select(*self._metric_columns()).where(*self.conditions()))).one()
        return self._to_metrics(row)

    async def _grouped(self, session: AsyncSession, column) -> Dict:
        stmt = (
            select(column, *self._metric_columns())
            .where(*self.conditions())
            .group_by(column)
        )
        result = await session.execute(stmt)
        return {row[0]: self._to_metrics(row[1:]) for row in result.all()}

    async def category_table(self, session: AsyncSession) -> List[Tuple[str, MovementMetrics]]:
        """
        One row per category (every category, or only the selected ones)
        followed by a TOTAL row that sums them.
        """
        grouped = await self._grouped(session, MovementFact.product_category)
        categories = self.filters.categories or tuple(ProductCategory)
        rows = [(c.value, grouped.get(c, MovementMetrics())) for c in categories]
        total = MovementMetrics()
        for _, metrics in rows:
            total = total + metrics
        rows.append((TOTAL_KEY, total))
        return rows

    async def channel_table(self, session: AsyncSession) -> List[Tuple[str, MovementMetrics]]:
        """Outbound breakdown by sales channel, with a TOTAL row."""
        grouped = await self._grouped(session, OutboundFact.sales_channel)
        rows = []
        for channel in SalesChannel:
            metrics = grouped.get(channel, MovementMetrics())
            if channel == SalesChannel.OTHERS and None in grouped:
                metrics = metrics + grouped[None]
            rows.append((channel.value, metrics))
        total = MovementMetrics()
        for _, metrics in rows:
            total = total + metrics
        rows.append((TOTAL_KEY, total))
        return rows

    async def daily_totals(self, session: AsyncSession) -> List[Tuple[date, Dict[str, float]]]:
        """Per-day sums (rows without a date are left out), EDEL split included."""
        is_edel = MovementFact.product_category == ProductCategory.EDEL
        stmt = (
            select(
                MovementFact.fact_date,
                func.coalesce(func.sum(MovementFact.order_qty), 0.0),
                func.coalesce(func.sum(MovementFact.fulfilled_qty), 0.0),
                func.coalesce(func.sum(MovementFact.total_cbm), 0.0),
                func.coalesce(func.sum(case((is_edel, MovementFact.fulfilled_qty), else_=0.0)), 0.0),
                func.coalesce(func.sum(case((is_edel, MovementFact.total_cbm), else_=0.0)), 0.0),
            )
            .where(*self.conditions(), MovementFact.fact_date.is_not(None))
            .group_by(MovementFact.fact_date)
            .order_by(MovementFact.fact_date)
        )
        result = await session.execute(stmt)
        return [
            (
                row[0],
                {
                    "order_qty": _f(row[1]),
                    "fulfilled_qty": _f(row[2]),
                    "total_cbm": _f(row[3]),
                    "edel_fulfilled_qty": _f(row[4]),
                    "edel_total_cbm": _f(row[5]),
                },
            )
            for row in result.all()
        ]

    async def available_dates(self, session: AsyncSession) -> Tuple[Optional[date], Optional[date]]:
        stmt = select(func.min(MovementFact.fact_date), func.max(MovementFact.fact_date)).where(
            MovementFact.batch_id == self.batch_id
        )
        return tuple((await session.execute(stmt)).one())

    async def available_months(self, session: AsyncSession) -> List[str]:
        stmt = (
            select(distinct(MovementFact.fact_date))
            .where(MovementFact.batch_id == self.batch_id, MovementFact.fact_date.is_not(None))
        )
        return months_of((await session.scalars(stmt)).all())

    async def product_categories(self, session: AsyncSession) -> List[str]:
        stmt = select(distinct(MovementFact.product_category)).where(MovementFact.batch_id == self.batch_id)
        return sorted(c.value for c in (await session.scalars(stmt)).all())

    async def available_warehouses(self, session: AsyncSession) -> List[str]:
        stmt = select(distinct(OutboundFact.warehouse)).where(
            MovementFact.batch_id == self.batch_id, OutboundFact.warehouse.is_not(None)
        )
        return sorted((await session.scalars(stmt)).all())

    async def top_products(
        self,
        session: AsyncSession,
        rank_by: RankBy,
        sort_order: SortOrder,
        limit: int,
    ) -> Tuple[List[RankedProduct], float]:
        """
        Products (fulfilled SKUs) ranked by CBM or quantity.

        Ties are broken by SKU ascending. Returns the ranked slice and the
        metric total over every product in the filtered set.
        """
        conds = self.conditions() + [
            MovementFact.fulfilled_sku.is_not(None),
            MovementFact.fulfilled_sku != "",
        ]
        total_cbm = func.coalesce(func.sum(MovementFact.total_cbm), 0.0).label("total_cbm")
        total_qty = func.coalesce(func.sum(MovementFact.fulfilled_qty), 0.0).label("total_qty")
        metric = total_cbm if rank_by == RankBy.CBM else total_qty
        ordering = metric.asc() if sort_order == SortOrder.BOTTOM else metric.desc()

        stmt = (
            select(
                MovementFact.fulfilled_sku,
                total_cbm,
                total_qty,
                func.max(MovementFact.product_category).label("product_category"),
            )
            .where(*conds)
            .group_by(MovementFact.fulfilled_sku)
            .order_by(ordering, MovementFact.fulfilled_sku.asc())
            .limit(limit)
        )
        metric_column = MovementFact.total_cbm if rank_by == RankBy.CBM else MovementFact.fulfilled_qty
        total_stmt = select(func.coalesce(func.sum(metric_column), 0.0)).where(*conds)

        rows = (await session.execute(stmt)).all()
        grand_total = _f(await session.scalar(total_stmt))
        return (
            [
                RankedProduct(
                    product=row[0],
                    total_cbm=_f(row[1]),
                    total_qty=_f(row[2]),
                    product_category=ProductCategory(row[3]) if row[3] else ProductCategory.OTHERS,
                )
                for row in rows
            ],
            grand_total,
        )


# =============================================================================
# INVENTORY
# =============================================================================

class InventoryAggregator:
    """
    Pushdown aggregates over inventory_rows / inventory_daily_stock.

    Quantity card: mean of the Total row's daily quantities when the sheet
    has one and no category/warehouse filter is active, otherwise the sum
    of per-SKU daily quantities. CBM card: sum over SKUs with CBM > 0 of
    (average daily qty in range x CBM per unit).
    """

    QTY_BASIS_TOTAL_ROW = "total_row"
    QTY_BASIS_SKU_SUM = "sku_sum"

    def __init__(self, batch_id, filters: ReportFilters):
        self.batch_id = batch_id
        self.filters = filters

    def row_conditions(self) -> list:
        conds = [InventoryFact.batch_id == self.batch_id, InventoryFact.is_total_row.is_(False)]
        if self.filters.categories:
            conds.append(InventoryFact.product_category.in_(self.filters.categories))
        if self.filters.warehouse:
            conds.append(InventoryFact.warehouse == self.filters.warehouse)
        return conds

    def date_conditions(self) -> list:
        conds = [InventoryDailyStock.batch_id == self.batch_id]
        if self.filters.from_date:
            conds.append(InventoryDailyStock.stock_date >= self.filters.from_date)
        if self.filters.to_date:
            conds.append(InventoryDailyStock.stock_date <= self.filters.to_date)
        return conds

    def _per_row(self):
        """Average daily quantity in range for every matching SKU row."""
        return (
            select(
                InventoryFact.row_id,
                InventoryFact.item,
                InventoryFact.cbm_per_unit,
                InventoryFact.product_category,
                func.avg(InventoryDailyStock.quantity).label("avg_qty"),
            )
            .join(InventoryDailyStock, InventoryDailyStock.row_id == InventoryFact.row_id)
            .where(*self.row_conditions(), *self.date_conditions())
            .group_by(
                InventoryFact.row_id,
                InventoryFact.item,
                InventoryFact.cbm_per_unit,
                InventoryFact.product_category,
            )
            .subquery()
        )

    @staticmethod
    def _volume_columns(per_row) -> list:
        has_cbm = per_row.c.cbm_per_unit > 0
        contributes = and_(has_cbm, per_row.c.avg_qty != 0)
        return [
            func.count(distinct(case((has_cbm, per_row.c.item)))),
            func.coalesce(func.sum(per_row.c.avg_qty), 0.0),
            func.coalesce(
                func.sum(case((contributes, per_row.c.avg_qty * per_row.c.cbm_per_unit), else_=0.0)),
                0.0,
            ),
        ]

    async def _total_row_mean(self, session: AsyncSession) -> Optional[float]:
        stmt = (
            select(
                func.sum(InventoryDailyStock.quantity),
                func.count(distinct(InventoryDailyStock.stock_date)),
            )
            .join(InventoryFact, InventoryFact.row_id == InventoryDailyStock.row_id)
            .where(
                InventoryFact.batch_id == self.batch_id,
                InventoryFact.is_total_row.is_(True),
                *self.date_conditions(),
            )
        )
        total, days = (await session.execute(stmt)).one()
        if not days:
            return None
        return _f(total) / days

    def uses_total_row(self) -> bool:
        return not self.filters.has_row_filters

    async def qty_basis(self, session: AsyncSession) -> str:
        if self.uses_total_row() and await self._total_row_mean(session) is not None:
            return self.QTY_BASIS_TOTAL_ROW
        return self.QTY_BASIS_SKU_SUM

    async def card_metrics(self, session: AsyncSession) -> InventoryCardValues:
        per_row = self._per_row()
        sku_count, _, total_cbm = (await session.execute(select(*self._volume_columns(per_row)))).one()

        mean = await self._total_row_mean(session) if self.uses_total_row() else None
        if mean is not None:
            qty, basis = mean, self.QTY_BASIS_TOTAL_ROW
        else:
            stmt = (
                select(func.coalesce(func.sum(InventoryDailyStock.quantity), 0.0))
                .join(InventoryFact, InventoryFact.row_id == InventoryDailyStock.row_id)
                .where(*self.row_conditions(), *self.date_conditions())
            )
            qty, basis = _f(await session.scalar(stmt)), self.QTY_BASIS_SKU_SUM

        return InventoryCardValues(
            sku_count=int(sku_count or 0),
            qty=qty,
            total_cbm=_f(total_cbm),
            qty_basis=basis,
        )

    async def category_table(self, session: AsyncSession) -> List[Tuple[str, InventoryGroupMetrics]]:
        per_row = self._per_row()
        stmt = select(per_row.c.product_category, *self._volume_columns(per_row)).group_by(
            per_row.c.product_category
        )
        grouped = {
            ProductCategory(row[0]): InventoryGroupMetrics(
                sku_count=int(row[1] or 0), avg_qty=_f(row[2]), total_cbm=_f(row[3])
            )
            for row in (await session.execute(stmt)).all()
        }
        categories = self.filters.categories or tuple(ProductCategory)
        rows = [(c.value, grouped.get(c, InventoryGroupMetrics())) for c in categories]
        rows.append(
            (
                TOTAL_KEY,
                InventoryGroupMetrics(
                    sku_count=sum(m.sku_count for _, m in rows),
                    avg_qty=sum(m.avg_qty for _, m in rows),
                    total_cbm=sum(m.total_cbm for _, m in rows),
                ),
            )
        )
        return rows

    async def daily_totals(self, session: AsyncSession) -> List[Tuple[date, Dict[str, float]]]:
        """
        Per-day quantity (on the same basis as the quantity card) and CBM.
        """
        sku_stmt = (
            select(
                InventoryDailyStock.stock_date,
                func.coalesce(func.sum(InventoryDailyStock.quantity), 0.0),
                func.coalesce(
                    func.sum(
                        case(
                            (
                                InventoryFact.cbm_per_unit > 0,
                                InventoryDailyStock.quantity * InventoryFact.cbm_per_unit,
                            ),
                            else_=0.0,
                        )
                    ),
                    0.0,
                ),
            )
            .join(InventoryFact, InventoryFact.row_id == InventoryDailyStock.row_id)
            .where(*self.row_conditions(), *self.date_conditions())
            .group_by(InventoryDailyStock.stock_date)
        )
        days: Dict[date, Dict[str, float]] = {}
        for stock_date, qty, cbm in (await session.execute(sku_stmt)).all():
            days[stock_date] = {"qty": _f(qty), "cbm": _f(cbm)}

        if await self.qty_basis(session) == self.QTY_BASIS_TOTAL_ROW:
            total_stmt = (
                select(InventoryDailyStock.stock_date, func.sum(InventoryDailyStock.quantity))
                .join(InventoryFact, InventoryFact.row_id == InventoryDailyStock.row_id)
                .where(
                    InventoryFact.batch_id == self.batch_id,
                    InventoryFact.is_total_row.is_(True),
                    *self.date_conditions(),
                )
                .group_by(InventoryDailyStock.stock_date)
            )
            for values in days.values():
                values["qty"] = 0.0
            for stock_date, qty in (await session.execute(total_stmt)).all():
                days.setdefault(stock_date, {"qty": 0.0, "cbm": 0.0})["qty"] = _f(qty)

        return sorted(days.items())

    async def available_dates(self, session: AsyncSession) -> Tuple[Optional[date], Optional[date]]:
        stmt = select(
            func.min(InventoryDailyStock.stock_date), func.max(InventoryDailyStock.stock_date)
        ).where(InventoryDailyStock.batch_id == self.batch_id)
        return tuple((await session.execute(stmt)).one())

    async def available_months(self, session: AsyncSession) -> List[str]:
        stmt = select(distinct(InventoryDailyStock.stock_date)).where(
            InventoryDailyStock.batch_id == self.batch_id
        )
        return months_of((await session.scalars(stmt)).all())

    async def product_categories(self, session: AsyncSession) -> List[str]:
        stmt = select(distinct(InventoryFact.product_category)).where(
            InventoryFact.batch_id == self.batch_id, InventoryFact.is_total_row.is_(False)
        )
        return sorted(c.value for c in (await session.scalars(stmt)).all())

    async def available_warehouses(self, session: AsyncSession) -> List[str]:
        stmt = select(distinct(InventoryFact.warehouse)).where(
            InventoryFact.batch_id == self.batch_id,
            InventoryFact.is_total_row.is_(False),
            InventoryFact.warehouse.is_not(None),
        )
        return sorted((await session.scalars(stmt)).all())
