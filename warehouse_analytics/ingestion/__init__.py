"""
Data Ingestion Module
"""
from .batch_loader import BatchIngestor, BatchInfo, IngestionResult
from .catalog import ReferenceCatalog
from .readers import reader_for

__all__ = [
    "BatchIngestor",
    "BatchInfo",
    "IngestionResult",
    "ReferenceCatalog",
    "reader_for",
]
