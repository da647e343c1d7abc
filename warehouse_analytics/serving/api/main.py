"""
FastAPI Application Factory

Creates and configures the API application. Services are expected on
``app.state`` (report_service, ingestor, report_cache, upload_dir); the
lifespan in ``warehouse_analytics.main`` puts them there.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from warehouse_analytics.config import get_settings
from warehouse_analytics.errors import IngestionError, NotFoundError, ReportValidationError
from warehouse_analytics.serving.api.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from warehouse_analytics.serving.api.routes import health_router, reports_router, uploads_router

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def validation_handler(request: Request, exc: ReportValidationError) -> JSONResponse:
    logger.info("Rejected report parameters", path=request.url.path, field=exc.field, error=exc.message)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.message, "field": exc.field},
    )


async def ingestion_handler(request: Request, exc: IngestionError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def create_api_app(lifespan=None, settings=None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Warehouse Analytics API",
        description="Upload warehouse movement files and query inbound, outbound and inventory reports",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ReportValidationError, validation_handler)
    app.add_exception_handler(IngestionError, ingestion_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router, prefix=API_PREFIX, tags=["Health"])
    app.include_router(reports_router, prefix=API_PREFIX, tags=["Reports"])
    app.include_router(uploads_router, prefix=API_PREFIX, tags=["Uploads"])

    @app.get("/api", tags=["Info"])
    async def api_info():
        """API information endpoint"""
        return {
            "name": "Warehouse Analytics API",
            "version": settings.version,
            "endpoints": {
                "reports": f"{API_PREFIX}/{{inbound,outbound,inventory}}/summary",
                "top_products": f"{API_PREFIX}/{{inbound,outbound}}/top-products",
                "uploads": f"{API_PREFIX}/uploads",
                "health": f"{API_PREFIX}/health",
            },
        }

    return app
