"""
Spreadsheet Readers

Turns warehouse exports (CSV or XLSX) into lazy streams of typed records.
Columns are addressed by position (spreadsheet letter), matching the fixed
layouts of the warehouse management system exports. Iterating a reader a
second time re-reads the source file from the start.

Layouts:
- catalog:   header row; B=SKU id, D=item group, H=CBM per unit
- inbound:   two leading rows; B=date of unload, I=invoice SKU,
             J=received SKU, K=invoice qty, L=received qty, N=good qty
- outbound:  header row; C=customer group, K=source warehouse,
             L=sales-order item, N=sales-order qty, S=delivery-note date,
             U=delivery-note item, V=delivery-note qty, X=transporter
- inventory: header row whose cells from H onward are daily dates;
             A=item, C=warehouse
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple, Union
import re

import polars as pl
import structlog

from warehouse_analytics.database.models import SourceKind
from warehouse_analytics.errors import IngestionError

logger = structlog.get_logger(__name__)


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class CatalogRecord:
    sku_id: str
    item_group: Optional[str]
    cbm_per_unit: float


@dataclass(frozen=True)
class InboundRecord:
    fact_date: Optional[date]
    invoice_sku: Optional[str]
    received_sku: Optional[str]
    invoice_qty: float
    received_qty: float
    good_qty: float


@dataclass(frozen=True)
class OutboundRecord:
    fact_date: Optional[date]
    so_item: Optional[str]
    dn_item: Optional[str]
    so_qty: float
    dn_qty: float
    customer_group: Optional[str]
    warehouse: Optional[str]
    transporter: Optional[str]


@dataclass(frozen=True)
class InventoryRecord:
    item: str
    warehouse: Optional[str]
    daily_quantities: Tuple[Tuple[date, float], ...]


Record = Union[CatalogRecord, InboundRecord, OutboundRecord, InventoryRecord]


# =============================================================================
# CELL PARSING
# =============================================================================

EXCEL_MAX_SERIAL = 2958465
_EXCEL_EPOCH = date(1899, 12, 31)

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[ T].*)?$")
_DAY_FIRST_DATE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})$")
_NUMERIC = re.compile(r"^-?\d+(?:\.\d+)?$")


def column_index(letter: str) -> int:
    """Zero-based index of a spreadsheet column letter ("A" -> 0, "AA" -> 26)."""
    index = 0
    for char in letter.upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def cell(row: Sequence[Any], letter: str) -> Any:
    index = column_index(letter)
    return row[index] if index < len(row) else None


def parse_text(value: Any) -> Optional[str]:
    """Trimmed text, or None for blank cells. Whole floats lose their ".0"."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def parse_number(value: Any) -> float:
    """Numeric cell value; blanks and unparseable text count as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def excel_serial_to_date(serial: float) -> Optional[date]:
    """
    Convert an Excel serial day number to a date.

    Excel counts 1900-02-29 as a real day, so serials from 60 onward are
    shifted back by one.
    """
    whole = int(serial)
    if whole < 1 or whole > EXCEL_MAX_SERIAL:
        return None
    if whole >= 60:
        whole -= 1
    return _EXCEL_EPOCH + timedelta(days=whole)


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a date cell.

    Accepts date/datetime values, Excel serial numbers, ISO strings
    (optionally followed by a time) and day-first DD/MM/YYYY or DD-MM-YYYY.
    Anything else yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return excel_serial_to_date(value)

    text = str(value).strip()
    if not text:
        return None

    try:
        match = _ISO_DATE.match(text)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return date(year, month, day)

        match = _DAY_FIRST_DATE.match(text)
        if match:
            day, month, year = (int(part) for part in match.groups())
            if year < 100:
                year += 2000
            return date(year, month, day)
    except ValueError:
        return None

    if _NUMERIC.match(text):
        return excel_serial_to_date(float(text))
    return None


def parse_header_date(value: Any) -> Optional[date]:
    """Inventory header dates are only accepted between 2000 and 2100."""
    parsed = parse_date(value)
    if parsed is not None and 2000 <= parsed.year <= 2100:
        return parsed
    return None


# =============================================================================
# READERS
# =============================================================================

class SheetReader:
    """
    Base reader: loads the first relevant sheet of a file as untyped cells
    and yields one typed record per data row.
    """

    kind: SourceKind
    skip_rows: int = 1

    def __init__(self, path: Union[str, Path], file_name: Optional[str] = None):
        self.path = Path(path)
        self.file_name = file_name or self.path.name

    def load_frame(self) -> pl.DataFrame:
        """Read the source file with every cell kept positional."""
        suffix = Path(self.file_name).suffix.lower() or self.path.suffix.lower()
        try:
            if suffix == ".csv":
                return pl.read_csv(
                    self.path,
                    has_header=False,
                    infer_schema_length=0,
                    truncate_ragged_lines=True,
                )
            if suffix in (".xlsx", ".xlsm", ".xls"):
                sheets = pl.read_excel(
                    self.path,
                    sheet_id=0,
                    has_header=False,
                    drop_empty_rows=False,
                    drop_empty_cols=False,
                    raise_if_empty=False,
                )
                return self._pick_sheet(sheets)
        except Exception as e:
            raise IngestionError(f"Unreadable source file {self.file_name}: {e}") from e
        raise IngestionError(f"Unsupported file type '{suffix}' for {self.file_name}")

    @staticmethod
    def _pick_sheet(sheets) -> pl.DataFrame:
        if isinstance(sheets, pl.DataFrame):
            return sheets
        for name, frame in sheets.items():
            lowered = name.lower()
            if "query" in lowered or "report" in lowered:
                return frame
        return next(iter(sheets.values()))

    def rows(self) -> Iterator[Tuple[Any, ...]]:
        frame = self.load_frame()
        logger.debug("Source file loaded", file=self.file_name, rows=frame.height, columns=frame.width)
        for index, row in enumerate(frame.iter_rows()):
            if index < self.skip_rows:
                continue
            yield row

    def parse_row(self, row: Sequence[Any]) -> Optional[Record]:
        raise NotImplementedError

    def __iter__(self) -> Iterator[Record]:
        for row in self.rows():
            record = self.parse_row(row)
            if record is not None:
                yield record


class CatalogReader(SheetReader):
    kind = SourceKind.CATALOG

    def parse_row(self, row: Sequence[Any]) -> Optional[CatalogRecord]:
        sku_id = parse_text(cell(row, "B"))
        if not sku_id:
            return None
        return CatalogRecord(
            sku_id=sku_id,
            item_group=parse_text(cell(row, "D")),
            cbm_per_unit=parse_number(cell(row, "H")),
        )


class InboundReader(SheetReader):
    kind = SourceKind.INBOUND
    skip_rows = 2

    def parse_row(self, row: Sequence[Any]) -> Optional[InboundRecord]:
        invoice_sku = parse_text(cell(row, "I"))
        received_sku = parse_text(cell(row, "J"))
        if not invoice_sku and not received_sku:
            return None
        return InboundRecord(
            fact_date=parse_date(cell(row, "B")),
            invoice_sku=invoice_sku,
            received_sku=received_sku,
            invoice_qty=parse_number(cell(row, "K")),
            received_qty=parse_number(cell(row, "L")),
            good_qty=parse_number(cell(row, "N")),
        )


class OutboundReader(SheetReader):
    kind = SourceKind.OUTBOUND

    def parse_row(self, row: Sequence[Any]) -> Optional[OutboundRecord]:
        so_item = parse_text(cell(row, "L"))
        dn_item = parse_text(cell(row, "U"))
        if not so_item and not dn_item:
            return None
        return OutboundRecord(
            fact_date=parse_date(cell(row, "S")),
            so_item=so_item,
            dn_item=dn_item,
            so_qty=parse_number(cell(row, "N")),
            dn_qty=parse_number(cell(row, "V")),
            customer_group=parse_text(cell(row, "C")),
            warehouse=parse_text(cell(row, "K")),
            transporter=parse_text(cell(row, "X")),
        )


class InventoryReader(SheetReader):
    kind = SourceKind.INVENTORY
    first_date_column = "H"

    def __iter__(self) -> Iterator[InventoryRecord]:
        frame = self.load_frame()
        if frame.height == 0:
            return
        header = frame.row(0)
        date_columns: List[Tuple[int, date]] = []
        for index in range(column_index(self.first_date_column), len(header)):
            parsed = parse_header_date(header[index])
            if parsed is not None:
                date_columns.append((index, parsed))
        logger.debug("Inventory date columns detected", file=self.file_name, count=len(date_columns))

        for index, row in enumerate(frame.iter_rows()):
            if index < self.skip_rows:
                continue
            record = self.parse_row(row, date_columns)
            if record is not None:
                yield record

    def parse_row(self, row: Sequence[Any], date_columns=()) -> Optional[InventoryRecord]:
        item = parse_text(cell(row, "A"))
        if not item:
            return None
        return InventoryRecord(
            item=item,
            warehouse=parse_text(cell(row, "C")),
            daily_quantities=tuple(
                (stock_date, parse_number(row[index] if index < len(row) else None))
                for index, stock_date in date_columns
            ),
        )


READERS = {
    SourceKind.CATALOG: CatalogReader,
    SourceKind.INBOUND: InboundReader,
    SourceKind.OUTBOUND: OutboundReader,
    SourceKind.INVENTORY: InventoryReader,
}


def reader_for(kind: SourceKind, path: Union[str, Path], file_name: Optional[str] = None) -> SheetReader:
    """Reader for the given source kind."""
    return READERS[SourceKind(kind)](path, file_name=file_name)
