"""
Category and Channel Normalization

Maps free-text spreadsheet values onto the closed ProductCategory and
SalesChannel enums. Matching is case-insensitive and exact against a static
alias table after trimming and collapsing internal whitespace. Both
normalizers are total: anything unrecognised becomes OTHERS.
"""

from typing import Dict, Iterable, List, Optional

from warehouse_analytics.database.models import ProductCategory, SalesChannel
from warehouse_analytics.errors import ReportValidationError


# =============================================================================
# DISPLAY LABELS
# =============================================================================

CATEGORY_LABELS: Dict[ProductCategory, str] = {
    ProductCategory.EDEL: "Edel",
    ProductCategory.HOME_AND_KITCHEN: "Home & Kitchen",
    ProductCategory.ELECTRONICS: "Electronics",
    ProductCategory.HEALTH_AND_PERSONAL_CARE: "Health & Personal Care",
    ProductCategory.AUTOMOTIVE_AND_TOOLS: "Automotive & Tools",
    ProductCategory.TOYS_AND_GAMES: "Toys & Games",
    ProductCategory.BRAND_PRIVATE_LABEL: "Brand / Private Label",
    ProductCategory.OTHERS: "Others",
}

CHANNEL_LABELS: Dict[SalesChannel, str] = {
    SalesChannel.E_COMMERCE: "E-Commerce",
    SalesChannel.OFFLINE: "Offline",
    SalesChannel.QUICK_COMMERCE: "Quick-Commerce",
    SalesChannel.EBO: "EBO",
    SalesChannel.B2C: "B2C",
    SalesChannel.OTHERS: "Others",
}


# =============================================================================
# ALIAS TABLES
# =============================================================================

_CATEGORY_SYNONYMS: Dict[ProductCategory, List[str]] = {
    ProductCategory.EDEL: ["edel"],
    ProductCategory.HOME_AND_KITCHEN: [
        "home and kitchen", "home", "kitchen", "dining", "garden",
        "lawn & garden", "packaging",
    ],
    ProductCategory.ELECTRONICS: [
        "electronic", "innovation", "smart devices", "devices", "thrasio",
    ],
    ProductCategory.HEALTH_AND_PERSONAL_CARE: [
        "health", "personal care", "fitness", "sports", "sport", "baby",
    ],
    ProductCategory.AUTOMOTIVE_AND_TOOLS: [
        "automotive", "auto", "tools", "mechanic", "spare parts", "cycle", "pca",
    ],
    ProductCategory.TOYS_AND_GAMES: ["toys", "toy", "games"],
    ProductCategory.BRAND_PRIVATE_LABEL: [
        "brand private label", "private label", "sha",
    ],
    ProductCategory.OTHERS: ["other"],
}

_CHANNEL_SYNONYMS: Dict[SalesChannel, List[str]] = {
    SalesChannel.E_COMMERCE: ["ecommerce", "e commerce", "amazon", "flipkart"],
    SalesChannel.OFFLINE: [
        "offline-gt", "offline-mt", "offline - gt", "offline - mt", "offline sales-b2b",
    ],
    SalesChannel.QUICK_COMMERCE: [
        "quick commerce", "quickcommerce", "blinkit", "swiggy", "zepto", "bigbasket",
    ],
    SalesChannel.EBO: ["store"],
    SalesChannel.B2C: [
        "amazon b2c", "flipkart(b2c)", "shopify", "decathlon", "snapmint",
        "tatacliq", "pepperfry",
    ],
    SalesChannel.OTHERS: ["other"],
}


def _fold(value: str) -> str:
    return " ".join(value.split()).lower()


def _build_aliases(enum_cls, labels: Dict, synonyms: Dict) -> Dict[str, object]:
    aliases: Dict[str, object] = {}
    for member in enum_cls:
        keys: Iterable[str] = [member.value, member.name, labels[member], *synonyms.get(member, [])]
        for key in keys:
            aliases[_fold(key)] = member
    return aliases


_CATEGORY_ALIASES = _build_aliases(ProductCategory, CATEGORY_LABELS, _CATEGORY_SYNONYMS)
_CHANNEL_ALIASES = _build_aliases(SalesChannel, CHANNEL_LABELS, _CHANNEL_SYNONYMS)


# =============================================================================
# NORMALIZERS
# =============================================================================

def normalize_category(item_group: Optional[str]) -> ProductCategory:
    """
    Map a raw item-group string to a ProductCategory.

    Never raises: None, blanks and unknown strings all map to OTHERS.
    """
    if not item_group:
        return ProductCategory.OTHERS
    return _CATEGORY_ALIASES.get(_fold(str(item_group)), ProductCategory.OTHERS)


def normalize_channel(customer_group: Optional[str]) -> SalesChannel:
    """Map an outbound customer group to a SalesChannel (OTHERS when unknown)."""
    if not customer_group:
        return SalesChannel.OTHERS
    return _CHANNEL_ALIASES.get(_fold(str(customer_group)), SalesChannel.OTHERS)


def category_label(category: ProductCategory) -> str:
    return CATEGORY_LABELS[ProductCategory(category)]


def channel_label(channel: SalesChannel) -> str:
    return CHANNEL_LABELS[SalesChannel(channel)]


def parse_category_filter(values: Optional[Iterable[str]]) -> List[ProductCategory]:
    """
    Parse user-supplied category filter values.

    Unlike normalize_category this is strict: an unknown value is a
    validation failure rather than OTHERS. "ALL" (or an empty list) means
    no filter and yields an empty list. Result is de-duplicated and sorted.

    Raises:
        ReportValidationError: If any value names no known category
    """
    selected = set()
    for raw in values or []:
        if raw is None or not str(raw).strip():
            continue
        folded = _fold(str(raw))
        if folded == "all":
            return []
        category = _CATEGORY_ALIASES.get(folded)
        if category is None:
            raise ReportValidationError("productCategory", f"unknown category '{raw}'")
        selected.add(category)
    return sorted(selected, key=lambda c: c.value)
