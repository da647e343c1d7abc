"""
Data Transformation Module
"""
from .categories import (
    normalize_category,
    normalize_channel,
    category_label,
    channel_label,
    parse_category_filter,
)
from .join import CatalogMatch, ResolvedSku, resolve_sku, movement_row, inventory_row

__all__ = [
    "normalize_category",
    "normalize_channel",
    "category_label",
    "channel_label",
    "parse_category_filter",
    "CatalogMatch",
    "ResolvedSku",
    "resolve_sku",
    "movement_row",
    "inventory_row",
]
