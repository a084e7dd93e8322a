"""
Text utilities for handling spreadsheet codes and Spanish labels.

Used for row identity keys, header matching and category comparison.
"""

import unicodedata
from typing import Any, Optional


def normalize_code(code: Optional[str]) -> str:
    """
    Normalize an equipment code into its identity key.

    - "  EQ001 " → "eq001"
    - None → ""

    Args:
        code: Raw code as read from the spreadsheet or the database

    Returns:
        Trimmed, lower-cased code
    """
    if code is None:
        return ""
    return str(code).strip().lower()


def strip_accents(text: str) -> str:
    """
    Remove accent marks, keeping the base characters.

    "Código" → "Codigo", "Descripción" → "Descripcion"
    """
    # NFD decomposition separates base chars from accents
    normalized = unicodedata.normalize('NFD', text)
    return ''.join(
        c for c in normalized
        if unicodedata.category(c) != 'Mn'
    )


def normalize_label(label: Optional[str]) -> Optional[str]:
    """
    Normalize a label (header, category, unit) for comparison.

    - "Categoría" → "categoria"
    - "  Válvulas  " → "valvulas"

    Returns:
        Lower-case ASCII string, or None if input is empty
    """
    if not label:
        return None

    label = str(label).strip()

    if not label:
        return None

    return strip_accents(label).lower()


def clean_cell(value: Any, max_length: int = 255) -> str:
    """
    Clean a spreadsheet cell for storage (preserves accents).

    - Strips whitespace
    - Renders integral floats without the trailing ".0" (102.0 → "102")
    - Truncates to max length
    - Returns "" for empty values

    Args:
        value: Raw cell value
        max_length: Maximum characters to keep

    Returns:
        Cleaned string
    """
    if value is None:
        return ""

    if isinstance(value, float):
        if value != value:  # NaN
            return ""
        if value.is_integer():
            value = int(value)

    text = str(value).strip()

    if len(text) > max_length:
        text = text[:max_length]

    return text
