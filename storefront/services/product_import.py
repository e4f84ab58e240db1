import logging
import re
from enum import Enum
from io import BytesIO
from typing import Any, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from pydantic import ValidationError

from storefront.schemas.product import ImportRow, ImportRowError, SheetParseResult
from storefront.schemas.result import all_error_messages

logger = logging.getLogger(__name__)

MAX_IMPORT_ROWS = 1000

DUPLICATE_EXTERNAL_ID_MESSAGE = "Duplicate external_id in file"


class ImportField(str, Enum):
    """Logical product columns recognised in an import sheet."""
    EXTERNAL_ID = "external_id"
    NAME = "name"
    PRICE = "price"
    CATEGORY = "category"
    IMAGES = "images"
    DESCRIPTION = "description"
    IS_ACTIVE = "is_active"
    STOCK = "stock"
    LOW_STOCK_THRESHOLD = "low_stock_threshold"


_HEADER_SEPARATORS = re.compile(r"[\s\-]+")

# Normalized header text -> logical field
HEADER_ALIASES = {
    "external_id": ImportField.EXTERNAL_ID,
    "externalid": ImportField.EXTERNAL_ID,
    "sku": ImportField.EXTERNAL_ID,
    "ma_san_pham": ImportField.EXTERNAL_ID,
    "mã_sản_phẩm": ImportField.EXTERNAL_ID,
    "name": ImportField.NAME,
    "ten_san_pham": ImportField.NAME,
    "tên_sản_phẩm": ImportField.NAME,
    "price": ImportField.PRICE,
    "gia": ImportField.PRICE,
    "giá": ImportField.PRICE,
    "category": ImportField.CATEGORY,
    "danh_muc": ImportField.CATEGORY,
    "danh_mục": ImportField.CATEGORY,
    "images": ImportField.IMAGES,
    "image": ImportField.IMAGES,
    "hinh_anh": ImportField.IMAGES,
    "hình_ảnh": ImportField.IMAGES,
    "description": ImportField.DESCRIPTION,
    "mo_ta": ImportField.DESCRIPTION,
    "mô_tả": ImportField.DESCRIPTION,
    "isactive": ImportField.IS_ACTIVE,
    "is_active": ImportField.IS_ACTIVE,
    "active": ImportField.IS_ACTIVE,
    "stock": ImportField.STOCK,
    "ton_kho": ImportField.STOCK,
    "tonkho": ImportField.STOCK,
    "tồn_kho": ImportField.STOCK,
    "tồnkho": ImportField.STOCK,
    "low_stock_threshold": ImportField.LOW_STOCK_THRESHOLD,
    "lowstockthreshold": ImportField.LOW_STOCK_THRESHOLD,
    "nguong_canh_bao": ImportField.LOW_STOCK_THRESHOLD,
    "ngưỡng_cảnh_báo": ImportField.LOW_STOCK_THRESHOLD,
}

REQUIRED_FIELDS = (
    ImportField.EXTERNAL_ID,
    ImportField.NAME,
    ImportField.PRICE,
    ImportField.CATEGORY,
    ImportField.IMAGES,
)

TRUE_VALUES = frozenset({"true", "1", "yes", "y"})
FALSE_VALUES = frozenset({"false", "0", "no", "n"})

_IMAGE_SEPARATOR = re.compile(r"[\n,]")


def normalize_header(value: Any) -> str:
    """Lower-case a header cell; runs of spaces and dashes become a single `_`."""
    text = str(value if value is not None else "").strip()
    return _HEADER_SEPARATORS.sub("_", text).lower()


def parse_images(value: Any) -> list[str]:
    """Split a cell holding comma- and/or newline-separated URLs."""
    text = _parse_text(value)
    return [item.strip() for item in _IMAGE_SEPARATOR.split(text) if item.strip()]


def parse_boolean(value: Any) -> bool:
    """Tolerant boolean; anything unrecognised counts as true."""
    normalized = _parse_text(value).lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    return True


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _parse_number(value: Any) -> Optional[Any]:
    """
    Coerce a cell to a number.

    Unparseable text is returned as-is so that schema validation reports it
    against the right column.
    """
    if _is_blank(value):
        return None
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    try:
        number = float(text)
    except ValueError:
        return text
    return int(number) if number.is_integer() else number


def _error(row: int, message: str) -> SheetParseResult:
    return SheetParseResult(rows=[], errors=[ImportRowError(row=row, messages=[message])])


def _build_record(columns: list[Optional[ImportField]], values: tuple) -> dict[str, Any]:
    record: dict[str, Any] = {}
    for index, field in enumerate(columns):
        if field is None:
            continue
        value = values[index] if index < len(values) else None

        if field == ImportField.IMAGES:
            record[field.value] = parse_images(value)
        elif field == ImportField.PRICE:
            record[field.value] = _parse_number(value)
        elif field == ImportField.IS_ACTIVE:
            record[field.value] = parse_boolean(value)
        elif field in (ImportField.STOCK, ImportField.LOW_STOCK_THRESHOLD):
            number = _parse_number(value)
            if number is not None:
                record[field.value] = number
        else:
            record[field.value] = _parse_text(value)
    return record


def parse_product_import_sheet(buffer: bytes) -> SheetParseResult:
    """
    Parse an uploaded .xlsx file into validated import rows.

    Malformed input never raises. Problems with the file as a whole (not a
    workbook, no header, missing required columns, too many rows) produce a
    single error and no rows. Problems with individual rows are reported per
    row, numbered as in the spreadsheet, and only those rows are skipped.

    Args:
        buffer: Raw bytes of the uploaded workbook

    Returns:
        SheetParseResult with the valid rows and the row-level errors
    """
    try:
        workbook = load_workbook(BytesIO(buffer), read_only=True, data_only=True)
    except Exception as e:
        logger.info(f"Rejected unreadable import file: {e}")
        return _error(0, "Invalid or corrupted .xlsx file")

    try:
        if not workbook.worksheets:
            return _error(0, "Missing worksheet")
        sheet_rows = list(workbook.worksheets[0].iter_rows(values_only=True))
    except Exception as e:
        logger.info(f"Rejected unreadable worksheet: {e}")
        return _error(0, "Invalid or corrupted .xlsx file")
    finally:
        workbook.close()

    header = sheet_rows[0] if sheet_rows else None
    if header is None or all(_is_blank(cell) for cell in header):
        return _error(1, "Missing header row")

    columns = [HEADER_ALIASES.get(normalize_header(cell)) for cell in header]
    missing = [field.value for field in REQUIRED_FIELDS if field not in columns]
    if missing:
        return _error(1, f"Missing required columns: {', '.join(missing)}")

    data_rows = [
        (row_number, values)
        for row_number, values in enumerate(sheet_rows[1:], start=2)
        if not all(_is_blank(cell) for cell in values)
    ]
    if len(data_rows) > MAX_IMPORT_ROWS:
        return _error(0, f"Max {MAX_IMPORT_ROWS} rows allowed")

    result = SheetParseResult()
    seen: set[str] = set()

    for row_number, values in data_rows:
        try:
            row = ImportRow.model_validate(_build_record(columns, values))
        except ValidationError as e:
            result.errors.append(ImportRowError(row=row_number, messages=all_error_messages(e)))
            continue

        if row.external_id in seen:
            result.errors.append(ImportRowError(row=row_number, messages=[DUPLICATE_EXTERNAL_ID_MESSAGE]))
            continue

        seen.add(row.external_id)
        result.rows.append(row)

    return result


TEMPLATE_COLUMNS = [
    ("external_id", 15),
    ("name", 30),
    ("price", 12),
    ("category", 20),
    ("images", 40),
    ("description", 40),
    ("isActive", 10),
    ("stock", 10),
    ("low_stock_threshold", 20),
]

TEMPLATE_EXAMPLE_ROW = [
    "SP001",
    "Stoneware vase",
    199000,
    "Decor",
    "https://example.com/image1.jpg",
    "Hand-glazed stoneware, 25cm",
    True,
    10,
    5,
]


def create_product_import_template() -> bytes:
    """Build a downloadable .xlsx with the recognised headers and one example row."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Products"

    sheet.append([header for header, _ in TEMPLATE_COLUMNS])
    for index, (_, width) in enumerate(TEMPLATE_COLUMNS, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = width
    for cell in sheet[1]:
        cell.font = Font(bold=True)
        cell.fill = PatternFill(fill_type="solid", fgColor="FFD6E4F0")

    sheet.append(TEMPLATE_EXAMPLE_ROW)

    output = BytesIO()
    workbook.save(output)
    return output.getvalue()
