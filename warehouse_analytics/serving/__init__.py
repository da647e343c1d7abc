"""
Serving Module
"""
from .cache import (
    MemoryCacheBackend,
    RedisCacheBackend,
    ReportCache,
    build_report_cache,
    close_redis,
    init_redis,
)

__all__ = [
    "MemoryCacheBackend",
    "RedisCacheBackend",
    "ReportCache",
    "build_report_cache",
    "close_redis",
    "init_redis",
]
