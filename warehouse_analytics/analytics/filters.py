"""
Report Filters

Validates raw query parameters into an immutable filter set before any
storage access. Every malformed value raises ReportValidationError.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Sequence, Tuple, Union
import re
import uuid

from warehouse_analytics.database.models import ProductCategory, SourceKind
from warehouse_analytics.errors import ReportValidationError
from warehouse_analytics.transformation.categories import parse_category_filter


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class RankBy(str, Enum):
    CBM = "cbm"
    QTY = "qty"


class SortOrder(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"


MAX_TOP_N = 100

_MONTH_KEY = re.compile(r"^(\d{4})-(\d{1,2})$")
_MONTH_NAMES = {name.lower(): index for index, name in enumerate(calendar.month_name) if name}
_MONTH_NAMES.update({name.lower(): index for index, name in enumerate(calendar.month_abbr) if name})


@dataclass(frozen=True)
class ReportFilters:
    """Validated filter set shared by every report query"""
    kind: SourceKind
    batch_id: Optional[uuid.UUID] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    categories: Tuple[ProductCategory, ...] = ()
    granularity: Granularity = Granularity.MONTH
    warehouse: Optional[str] = None

    @property
    def has_row_filters(self) -> bool:
        """True when rows are narrowed by category or warehouse (not only by date)."""
        return bool(self.categories) or self.warehouse is not None

    def cache_key(self, report: str = "summary", *extra: object) -> str:
        """Order-independent key for the report cache."""
        parts = [
            self.kind.value,
            report,
            str(self.batch_id) if self.batch_id else "latest",
            self.from_date.isoformat() if self.from_date else "",
            self.to_date.isoformat() if self.to_date else "",
            ",".join(c.value for c in self.categories),
            self.granularity.value,
            self.warehouse or "",
        ]
        parts.extend(str(getattr(value, "value", value)) for value in extra)
        return "|".join(parts)


@dataclass(frozen=True)
class TopNFilters:
    filters: ReportFilters
    rank_by: RankBy = RankBy.CBM
    sort_order: SortOrder = SortOrder.TOP
    limit: int = 10

    def cache_key(self) -> str:
        return self.filters.cache_key("top-products", self.rank_by, self.sort_order, self.limit)


def parse_iso_date(field: str, value: Optional[str]) -> Optional[date]:
    if value is None or not str(value).strip():
        return None
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ReportValidationError(field, f"'{value}' is not a valid ISO date (YYYY-MM-DD)")


def parse_month(value: Optional[str]) -> Optional[Tuple[date, date]]:
    """
    Expand a month ("2025-01", "January 2025" or "Jan 2025") to its first
    and last calendar day. None, blank and "ALL" mean no month filter.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.upper() == "ALL":
        return None

    year = month = None
    match = _MONTH_KEY.match(text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
    else:
        parts = text.split()
        if len(parts) == 2 and parts[0].lower() in _MONTH_NAMES and parts[1].isdigit():
            year, month = int(parts[1]), _MONTH_NAMES[parts[0].lower()]

    if year is None or not 1 <= month <= 12 or not 1 <= year <= 9999:
        raise ReportValidationError("month", f"'{value}' is not a month (YYYY-MM or 'January 2025')")

    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def parse_enum(field: str, enum_cls, value, default):
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        return enum_cls(str(getattr(value, "value", value)).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ReportValidationError(field, f"'{value}' is not one of: {allowed}")


def parse_limit(value: Union[int, str, None], default: int = 10) -> int:
    """Top-N size: an integer in 1..MAX_TOP_N, given as int or query string."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise ReportValidationError("limit", f"'{value}' is not an integer")
    try:
        limit = int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise ReportValidationError("limit", f"'{value}' is not an integer")
    if not 1 <= limit <= MAX_TOP_N:
        raise ReportValidationError("limit", f"limit must be between 1 and {MAX_TOP_N}")
    return limit


def parse_batch_id(value: Union[str, uuid.UUID, None]) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return uuid.UUID(text)
    except ValueError:
        raise ReportValidationError("uploadId", f"'{value}' is not a valid upload id")


def build_filters(
    kind: SourceKind,
    upload_id: Union[str, uuid.UUID, None] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
    month: Optional[str] = None,
    product_category: Union[str, Sequence[str], None] = None,
    time_granularity: Optional[str] = None,
    warehouse: Optional[str] = None,
) -> ReportFilters:
    """
    Validate raw report parameters.

    A month, when given, replaces fromDate/toDate with its calendar bounds.

    Raises:
        ReportValidationError: On the first malformed parameter
    """
    kind = SourceKind(kind)
    batch_id = parse_batch_id(upload_id)

    month_range = parse_month(month)
    if month_range is not None:
        start, end = month_range
    else:
        start = parse_iso_date("fromDate", from_date)
        end = parse_iso_date("toDate", to_date)
        if start and end and start > end:
            raise ReportValidationError("fromDate", "fromDate must not be after toDate")

    if isinstance(product_category, str):
        product_category = [product_category]
    categories = tuple(parse_category_filter(product_category))

    granularity = parse_enum("timeGranularity", Granularity, time_granularity, Granularity.MONTH)

    warehouse_value = (warehouse or "").strip() or None
    if warehouse_value is not None and warehouse_value.upper() == "ALL":
        warehouse_value = None
    if warehouse_value is not None and kind == SourceKind.INBOUND:
        raise ReportValidationError("warehouse", "warehouse filter applies to outbound and inventory only")

    return ReportFilters(
        kind=kind,
        batch_id=batch_id,
        from_date=start,
        to_date=end,
        categories=categories,
        granularity=granularity,
        warehouse=warehouse_value,
    )


def build_top_n_filters(
    kind: SourceKind,
    rank_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    limit: Union[int, str, None] = None,
    **params,
) -> TopNFilters:
    """
    Validate top-N parameters on top of the shared report filters.

    Raises:
        ReportValidationError: On a malformed parameter or a limit outside 1..100
    """
    if SourceKind(kind) not in (SourceKind.INBOUND, SourceKind.OUTBOUND):
        raise ReportValidationError("kind", "top products are available for inbound and outbound only")
    filters = build_filters(kind, **params)
    rank = parse_enum("rankBy", RankBy, rank_by, RankBy.CBM)
    order = parse_enum("sortOrder", SortOrder, sort_order, SortOrder.TOP)
    limit = parse_limit(limit)
    return TopNFilters(filters=filters, rank_by=rank, sort_order=order, limit=limit)
