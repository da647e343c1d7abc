"""
Request-scoped access to the services created at startup.
"""

from fastapi import Request

from warehouse_analytics.analytics.reports import ReportService
from warehouse_analytics.ingestion.batch_loader import BatchIngestor


def get_report_service(request: Request) -> ReportService:
    return request.app.state.report_service


def get_ingestor(request: Request) -> BatchIngestor:
    return request.app.state.ingestor


def get_upload_dir(request: Request) -> str:
    return request.app.state.upload_dir
