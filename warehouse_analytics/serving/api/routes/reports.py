"""
Report Endpoints

Summary and top-N reports for inbound, outbound and inventory batches.
Query parameters are validated before any storage access; a malformed
value answers 422, a missing batch 404.
"""

from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, Query

from warehouse_analytics.analytics.filters import (
    ReportFilters,
    TopNFilters,
    build_filters,
    build_top_n_filters,
)
from warehouse_analytics.analytics.reports import ReportService
from warehouse_analytics.analytics.schemas import InventorySummary, MovementSummary, TopProductsReport
from warehouse_analytics.database.models import SourceKind
from warehouse_analytics.serving.api.dependencies import get_report_service

router = APIRouter()


def report_filters(kind: SourceKind) -> Callable[..., ReportFilters]:
    """Dependency parsing the shared report query parameters for one kind."""

    def dependency(
        upload_id: Optional[str] = Query(None, alias="uploadId"),
        from_date: Optional[str] = Query(None, alias="fromDate"),
        to_date: Optional[str] = Query(None, alias="toDate"),
        month: Optional[str] = Query(None),
        product_category: Optional[List[str]] = Query(None, alias="productCategory"),
        time_granularity: Optional[str] = Query(None, alias="timeGranularity"),
        warehouse: Optional[str] = Query(None),
    ) -> ReportFilters:
        return build_filters(
            kind,
            upload_id=upload_id,
            from_date=from_date,
            to_date=to_date,
            month=month,
            product_category=product_category,
            time_granularity=time_granularity,
            warehouse=warehouse,
        )

    return dependency


def top_n_filters(kind: SourceKind) -> Callable[..., TopNFilters]:
    def dependency(
        upload_id: Optional[str] = Query(None, alias="uploadId"),
        from_date: Optional[str] = Query(None, alias="fromDate"),
        to_date: Optional[str] = Query(None, alias="toDate"),
        month: Optional[str] = Query(None),
        product_category: Optional[List[str]] = Query(None, alias="productCategory"),
        warehouse: Optional[str] = Query(None),
        rank_by: Optional[str] = Query(None, alias="rankBy"),
        sort_order: Optional[str] = Query(None, alias="sortOrder"),
        limit: Optional[str] = Query(None),
    ) -> TopNFilters:
        return build_top_n_filters(
            kind,
            rank_by=rank_by,
            sort_order=sort_order,
            limit=limit,
            upload_id=upload_id,
            from_date=from_date,
            to_date=to_date,
            month=month,
            product_category=product_category,
            warehouse=warehouse,
        )

    return dependency


@router.get("/inbound/summary", response_model=MovementSummary)
async def inbound_summary(
    filters: ReportFilters = Depends(report_filters(SourceKind.INBOUND)),
    service: ReportService = Depends(get_report_service),
):
    """Inbound cards, category table, time series and daily totals."""
    return await service.inbound_summary(filters)


@router.get("/outbound/summary", response_model=MovementSummary)
async def outbound_summary(
    filters: ReportFilters = Depends(report_filters(SourceKind.OUTBOUND)),
    service: ReportService = Depends(get_report_service),
):
    """Outbound cards, category and channel tables, time series and daily totals."""
    return await service.outbound_summary(filters)


@router.get("/inventory/summary", response_model=InventorySummary)
async def inventory_summary(
    filters: ReportFilters = Depends(report_filters(SourceKind.INVENTORY)),
    service: ReportService = Depends(get_report_service),
):
    """Inventory cards (time averages), category table and averaged series."""
    return await service.inventory_summary(filters)


@router.get("/inbound/top-products", response_model=TopProductsReport)
async def inbound_top_products(
    query: TopNFilters = Depends(top_n_filters(SourceKind.INBOUND)),
    service: ReportService = Depends(get_report_service),
):
    return await service.top_products(query)


@router.get("/outbound/top-products", response_model=TopProductsReport)
async def outbound_top_products(
    query: TopNFilters = Depends(top_n_filters(SourceKind.OUTBOUND)),
    service: ReportService = Depends(get_report_service),
):
    return await service.top_products(query)
