"""
Report Service

Resolves the batch scope, then serves a report from the cache or computes
it by running the independent aggregate queries concurrently, each on its
own session, and bucketing the daily series.
"""

import asyncio
import time
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar
import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from warehouse_analytics.analytics.aggregations import (
    TOTAL_KEY,
    InventoryAggregator,
    MovementAggregator,
    MovementMetrics,
)
from warehouse_analytics.analytics.bucketing import bucketize, day_label
from warehouse_analytics.analytics.filters import RankBy, ReportFilters, TopNFilters
from warehouse_analytics.analytics.schemas import (
    BreakdownRow,
    DateRange,
    InventoryCards,
    InventoryCategoryRow,
    InventoryDay,
    InventoryPoint,
    InventorySummary,
    InventoryTimeSeries,
    InventoryTotals,
    MovementCards,
    MovementDay,
    MovementPoint,
    MovementSummary,
    MovementTimeSeries,
    MovementTotals,
    TopProduct,
    TopProductsReport,
)
from warehouse_analytics.database.models import (
    BatchStatus,
    SourceKind,
    UploadBatch,
)
from warehouse_analytics.errors import NotFoundError
from warehouse_analytics.serving.cache import ReportCache
from warehouse_analytics.transformation.categories import category_label, channel_label

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ALL = "ALL"


def r2(value: float) -> float:
    return round(float(value or 0.0), 2)


def iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _breakdown_row(key: str, label: str, metrics: MovementMetrics) -> BreakdownRow:
    return BreakdownRow(
        key=key,
        label=label,
        order_sku_count=metrics.order_sku_count,
        order_qty=metrics.order_qty,
        order_cbm=metrics.order_cbm,
        fulfilled_sku_count=metrics.fulfilled_sku_count,
        fulfilled_qty=metrics.fulfilled_qty,
        total_cbm=metrics.total_cbm,
        pending_qty=metrics.pending_qty,
    )


class ReportService:
    """
    Inbound, outbound and inventory reports.

    Example:
        service = ReportService(session_factory, cache)
        summary = await service.inbound_summary(build_filters(SourceKind.INBOUND))
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], cache: ReportCache):
        self.session_factory = session_factory
        self.cache = cache

    async def _query(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session_factory() as session:
            return await fn(session)

    async def resolve_batch(self, kind: SourceKind, batch_id: Optional[uuid.UUID]) -> uuid.UUID:
        """
        The requested batch, or the latest PROCESSED batch of this kind.

        Raises:
            NotFoundError: If there is no processed batch for the scope
        """
        async with self.session_factory() as session:
            if batch_id is None:
                latest = await session.scalar(
                    select(UploadBatch.batch_id)
                    .where(
                        UploadBatch.source_kind == kind,
                        UploadBatch.status == BatchStatus.PROCESSED,
                    )
                    .order_by(UploadBatch.uploaded_at.desc())
                    .limit(1)
                )
                if latest is None:
                    raise NotFoundError(f"No processed {kind.value} uploads found")
                return latest

            batch = await session.get(UploadBatch, batch_id)
        if batch is None or batch.source_kind != kind:
            raise NotFoundError(f"{kind.value.capitalize()} upload {batch_id} not found")
        if batch.status != BatchStatus.PROCESSED:
            raise NotFoundError(f"Upload {batch_id} is {batch.status.value}, not processed")
        return batch.batch_id

    async def _cached(self, key: str, compute: Callable[[], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
        async def timed() -> Dict[str, Any]:
            started = time.perf_counter()
            payload = await compute()
            logger.info(
                "Report computed",
                key=key,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return payload

        return await self.cache.get_or_compute(key, timed)

    # -------------------------------------------------------------------------
    # Inbound / outbound
    # -------------------------------------------------------------------------

    async def inbound_summary(self, filters: ReportFilters) -> Dict[str, Any]:
        return await self.movement_summary(SourceKind.INBOUND, filters)

    async def outbound_summary(self, filters: ReportFilters) -> Dict[str, Any]:
        return await self.movement_summary(SourceKind.OUTBOUND, filters)

    async def movement_summary(self, kind: SourceKind, filters: ReportFilters) -> Dict[str, Any]:
        """
        Summary report (cards, tables, series, totals) as a JSON-ready dict.

        Raises:
            NotFoundError: If no processed batch matches the scope
        """
        async def compute() -> Dict[str, Any]:
            batch_id = await self.resolve_batch(kind, filters.batch_id)
            summary = await self._movement_summary(kind, batch_id, filters)
            return summary.model_dump(mode="json", by_alias=True)

        return await self._cached(filters.cache_key("summary"), compute)

    async def _movement_summary(
        self, kind: SourceKind, batch_id: uuid.UUID, filters: ReportFilters
    ) -> MovementSummary:
        agg = MovementAggregator(batch_id, filters)
        is_outbound = kind == SourceKind.OUTBOUND

        async def none(_: AsyncSession) -> None:
            return None

        (
            cards,
            categories,
            channels,
            daily,
            (min_date, max_date),
            months,
            present_categories,
            warehouses,
        ) = await asyncio.gather(
            self._query(agg.card_metrics),
            self._query(agg.category_table),
            self._query(agg.channel_table if is_outbound else none),
            self._query(agg.daily_totals),
            self._query(agg.available_dates),
            self._query(agg.available_months),
            self._query(agg.product_categories),
            self._query(agg.available_warehouses if is_outbound else none),
        )

        buckets = bucketize(daily, filters.granularity)
        points = [
            MovementPoint(
                key=b.key,
                label=b.label,
                start_date=b.start.isoformat(),
                end_date=b.end.isoformat(),
                order_qty=b.metrics.get("order_qty", 0.0),
                fulfilled_qty=b.metrics.get("fulfilled_qty", 0.0),
                total_cbm=b.metrics.get("total_cbm", 0.0),
            )
            for b in buckets
        ]
        day_data = [
            MovementDay(
                date=day.isoformat(),
                label=day_label(day),
                fulfilled_qty=m["fulfilled_qty"],
                total_cbm=m["total_cbm"],
                edel_fulfilled_qty=m["edel_fulfilled_qty"],
                edel_total_cbm=m["edel_total_cbm"],
            )
            for day, m in daily
        ]

        # additive card sums come from the TOTAL row so the table reconciles exactly
        total = categories[-1][1]
        return MovementSummary(
            kind=kind.value,
            upload_id=batch_id,
            cards=MovementCards(
                order_sku_count=cards.order_sku_count,
                fulfilled_sku_count=cards.fulfilled_sku_count,
                order_qty_total=total.order_qty,
                fulfilled_qty_total=total.fulfilled_qty,
                good_qty_total=total.good_qty,
                order_cbm_total=total.order_cbm,
                total_cbm=total.total_cbm,
                pending_qty_total=total.pending_qty,
            ),
            category_table=[
                _breakdown_row(key, TOTAL_KEY.title() if key == TOTAL_KEY else category_label(key), m)
                for key, m in categories
            ],
            channel_table=(
                [
                    _breakdown_row(key, TOTAL_KEY.title() if key == TOTAL_KEY else channel_label(key), m)
                    for key, m in channels
                ]
                if is_outbound
                else None
            ),
            available_dates=DateRange(min_date=iso(min_date), max_date=iso(max_date)),
            available_months=[ALL, *months],
            product_categories=[ALL, *present_categories],
            available_warehouses=[ALL, *warehouses] if is_outbound else None,
            time_series=MovementTimeSeries(granularity=filters.granularity.value, points=points),
            summary_totals=MovementTotals(
                total_fulfilled_qty=sum(p.fulfilled_qty for p in points),
                total_cbm=sum(p.total_cbm for p in points),
                total_edel_fulfilled_qty=sum(d.edel_fulfilled_qty for d in day_data),
                total_edel_cbm=sum(d.edel_total_cbm for d in day_data),
                day_data=day_data,
            ),
        )

    async def top_products(self, query: TopNFilters) -> Dict[str, Any]:
        """
        Top or bottom products of an inbound/outbound batch.

        Raises:
            NotFoundError: If no processed batch matches the scope
        """
        kind = query.filters.kind

        async def compute() -> Dict[str, Any]:
            batch_id = await self.resolve_batch(kind, query.filters.batch_id)
            agg = MovementAggregator(batch_id, query.filters)
            ranked, grand_total = await self._query(
                lambda session: agg.top_products(session, query.rank_by, query.sort_order, query.limit)
            )
            products = []
            for rank, item in enumerate(ranked, start=1):
                value = item.total_cbm if query.rank_by == RankBy.CBM else item.total_qty
                products.append(
                    TopProduct(
                        rank=rank,
                        product=item.product,
                        total_cbm=item.total_cbm,
                        total_qty=item.total_qty,
                        product_category=category_label(item.product_category),
                        percentage_of_total=r2(value / grand_total * 100) if grand_total > 0 else 0.0,
                    )
                )
            report = TopProductsReport(
                kind=kind.value,
                upload_id=batch_id,
                rank_by=query.rank_by.value,
                sort_order=query.sort_order.value,
                limit=query.limit,
                products=products,
            )
            return report.model_dump(mode="json", by_alias=True)

        return await self._cached(query.cache_key(), compute)

    # -------------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------------

    async def inventory_summary(self, filters: ReportFilters) -> Dict[str, Any]:
        """
        Inventory report with time-averaged quantity and CBM.

        Raises:
            NotFoundError: If no processed inventory batch matches the scope
        """
        async def compute() -> Dict[str, Any]:
            batch_id = await self.resolve_batch(SourceKind.INVENTORY, filters.batch_id)
            summary = await self._inventory_summary(batch_id, filters)
            return summary.model_dump(mode="json", by_alias=True)

        return await self._cached(filters.cache_key("summary"), compute)

    async def _inventory_summary(self, batch_id: uuid.UUID, filters: ReportFilters) -> InventorySummary:
        agg = InventoryAggregator(batch_id, filters)
        (
            cards,
            categories,
            daily,
            (min_date, max_date),
            months,
            present_categories,
            warehouses,
        ) = await asyncio.gather(
            self._query(agg.card_metrics),
            self._query(agg.category_table),
            self._query(agg.daily_totals),
            self._query(agg.available_dates),
            self._query(agg.available_months),
            self._query(agg.product_categories),
            self._query(agg.available_warehouses),
        )

        buckets = bucketize(daily, filters.granularity)
        days = len(daily)
        qty_sum = sum(m["qty"] for _, m in daily)
        cbm_sum = sum(m["cbm"] for _, m in daily)

        return InventorySummary(
            kind=SourceKind.INVENTORY.value,
            upload_id=batch_id,
            cards=InventoryCards(
                inbound_sku_count=cards.sku_count,
                inventory_qty_total=cards.qty,
                total_cbm=cards.total_cbm,
                inventory_qty_basis=cards.qty_basis,
            ),
            category_table=[
                InventoryCategoryRow(
                    key=key,
                    label=TOTAL_KEY.title() if key == TOTAL_KEY else category_label(key),
                    sku_count=m.sku_count,
                    avg_qty=m.avg_qty,
                    total_cbm=m.total_cbm,
                )
                for key, m in categories
            ],
            available_dates=DateRange(min_date=iso(min_date), max_date=iso(max_date)),
            available_months=[ALL, *months],
            product_categories=[ALL, *present_categories],
            available_warehouses=[ALL, *warehouses],
            time_series=InventoryTimeSeries(
                granularity=filters.granularity.value,
                points=[
                    InventoryPoint(
                        key=b.key,
                        label=b.label,
                        start_date=b.start.isoformat(),
                        end_date=b.end.isoformat(),
                        days=b.days,
                        avg_qty=b.average("qty"),
                        avg_cbm=b.average("cbm"),
                    )
                    for b in buckets
                ],
            ),
            summary_totals=InventoryTotals(
                days=days,
                average_qty=qty_sum / days if days else 0.0,
                average_cbm=cbm_sum / days if days else 0.0,
                day_data=[
                    InventoryDay(date=day.isoformat(), label=day_label(day), qty=m["qty"], cbm=m["cbm"])
                    for day, m in daily
                ],
            ),
        )
