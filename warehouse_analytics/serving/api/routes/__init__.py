"""
API Routes Module
"""
from .health import router as health_router
from .reports import router as reports_router
from .uploads import router as uploads_router

__all__ = [
    "health_router",
    "reports_router",
    "uploads_router",
]
