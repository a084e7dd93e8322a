"""
Duplicate detector - codes repeated within one spreadsheet.

A repeated code cannot be resolved to a single catalog entry, so its
rows are never eligible for catalog creation.
"""

from collections import Counter

from models.equipment_import import ImportRow


def find_duplicate_codes(rows: list[ImportRow]) -> set[str]:
    """Normalized codes that appear more than once in the file."""
    counts = Counter(row.key for row in rows)
    return {code for code, count in counts.items() if count > 1}
