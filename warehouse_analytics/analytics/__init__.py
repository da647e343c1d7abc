"""
Analytics Module
"""
from .filters import Granularity, RankBy, SortOrder, ReportFilters, build_filters, build_top_n_filters
from .bucketing import Bucket, bucketize
from .reports import ReportService

__all__ = [
    "Granularity",
    "RankBy",
    "SortOrder",
    "ReportFilters",
    "build_filters",
    "build_top_n_filters",
    "Bucket",
    "bucketize",
    "ReportService",
]
