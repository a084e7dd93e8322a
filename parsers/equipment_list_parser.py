"""
Equipment list Excel parser.

Reads the first sheet of the equipment list template:

    Código | Descripción | Categoría | Unidad | Marca | Cantidad

Header matching ignores case and accents. Blank rows are skipped; any
malformed row aborts the whole upload with ExtractionError listing every
problem found.
"""

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Union
import structlog

import pandas as pd

from models.equipment_import import ImportRow
from exceptions import ExtractionError
from utils.text_utils import clean_cell, normalize_label

logger = structlog.get_logger(__name__)

COLUMN_ALIASES = {
    "codigo": "code",
    "descripcion": "description",
    "categoria": "category",
    "unidad": "unit",
    "marca": "brand",
    "cantidad": "quantity",
}

REQUIRED_COLUMNS = ["code", "description"]

DISPLAY_NAMES = {
    "code": "Código",
    "description": "Descripción",
    "category": "Categoría",
    "unit": "Unidad",
    "brand": "Marca",
    "quantity": "Cantidad",
}


@dataclass
class RowError:
    """Single validation error from parsing."""
    row: int
    field: str
    error: str


def parse_equipment_list(file: Union[str, Path, BytesIO]) -> list[ImportRow]:
    """
    Parse an equipment list spreadsheet into import rows.

    Args:
        file: File path (str/Path) or file-like object (BytesIO)

    Returns:
        ImportRow per non-blank data row, in file order

    Raises:
        ExtractionError: Unreadable file, missing columns, no data rows,
            or malformed rows
    """
    logger.info("parsing_equipment_list", file_type=type(file).__name__)

    try:
        df = pd.read_excel(file, sheet_name=0, dtype=object, engine="openpyxl")
    except Exception as e:
        logger.error("equipment_list_read_failed", error=str(e))
        raise ExtractionError(
            message="Failed to read Excel file",
            details={"original_error": str(e)}
        )

    df.columns = [COLUMN_ALIASES.get(normalize_label(str(col)) or "", str(col)) for col in df.columns]

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ExtractionError(
            message=f"Missing required columns: {', '.join(DISPLAY_NAMES[c] for c in missing)}",
            details={"missing": [DISPLAY_NAMES[c] for c in missing]}
        )

    rows: list[ImportRow] = []
    errors: list[RowError] = []

    for idx, record in df.iterrows():
        row_num = idx + 2  # Excel row (1-indexed + header)

        values = {
            name: clean_cell(None if pd.isna(record.get(name)) else record.get(name))
            for name in ("code", "description", "category", "unit", "brand")
        }

        # Skip blank rows
        if not any(values.values()) and _is_blank(record.get("quantity")):
            continue

        if not values["code"]:
            errors.append(RowError(row=row_num, field="Código", error="Required field is empty"))
            continue

        quantity = _parse_quantity(record.get("quantity"))
        if quantity is None:
            errors.append(RowError(row=row_num, field="Cantidad", error="Must be a non-negative number"))
            continue

        rows.append(ImportRow(quantity=quantity, **values))

    if errors:
        logger.warning("equipment_list_rows_invalid", error_count=len(errors))
        raise ExtractionError(
            message=f"Spreadsheet has {len(errors)} invalid row(s)",
            details={"errors": [
                {"row": e.row, "field": e.field, "error": e.error}
                for e in errors
            ]}
        )

    if not rows:
        raise ExtractionError(message="Spreadsheet has no data rows")

    logger.info("equipment_list_parsed", rows=len(rows))
    return rows


# ===================
# HELPER FUNCTIONS
# ===================

def _is_blank(value) -> bool:
    return value is None or (not isinstance(value, str) and pd.isna(value)) or str(value).strip() == ""


def _parse_quantity(value):
    """
    Parse the quantity cell.

    Empty or non-numeric values default to 1; negative numbers are invalid.
    """
    if _is_blank(value):
        return 1.0
    try:
        number = float(str(value).strip().replace(",", "."))
    except (ValueError, TypeError):
        return 1.0
    if number != number:  # NaN
        return 1.0
    if number < 0:
        return None
    if number == 0:
        return 1.0
    return number
