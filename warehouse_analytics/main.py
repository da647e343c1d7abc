"""
FastAPI Production Application

Main entry point for the Warehouse Analytics API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from warehouse_analytics.analytics.reports import ReportService
from warehouse_analytics.config import configure_logging, get_settings
from warehouse_analytics.database.connection import close_database, get_session_factory, init_database
from warehouse_analytics.ingestion.batch_loader import BatchIngestor
from warehouse_analytics.serving.api import create_api_app
from warehouse_analytics.serving.cache import build_report_cache, close_redis

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()
    settings = get_settings()

    logger.info("Starting Warehouse Analytics API", environment=settings.app_env)

    await init_database()
    session_factory = get_session_factory()
    cache = await build_report_cache(settings)

    app.state.report_cache = cache
    app.state.report_service = ReportService(session_factory, cache)
    app.state.ingestor = BatchIngestor(
        session_factory,
        cache=cache,
        chunk_size=settings.ingestion.row_chunk_size,
        catalog_chunk_size=settings.ingestion.catalog_chunk_size,
        max_rows=settings.ingestion.max_rows,
    )
    app.state.upload_dir = settings.ingestion.upload_dir

    yield

    logger.info("Shutting down...")
    await close_database()
    await close_redis()


app = create_api_app(lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
