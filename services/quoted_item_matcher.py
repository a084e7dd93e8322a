"""
Quoted item matcher - default row → quoted item mappings.

Three strategies are tried in order, stopping at the first one that
finds exactly one quoted item:

    1. exact code (case-insensitive)
    2. description containment, either direction (case-insensitive);
       an empty description is contained in every other one
    3. row code inside the quoted item's description (codes of 4+ chars)

Zero or several candidates never produce a mapping: a wrong link would
corrupt the procurement list, an unmapped row only needs a manual pick.
"""

from typing import Callable, Optional
import structlog

from config import settings
from models.equipment_import import (
    EquipmentGroup,
    ImportRow,
    ItemMapping,
    MatchStrategy,
    QuotedItemOption,
)
from utils.text_utils import normalize_code

logger = structlog.get_logger(__name__)

Predicate = Callable[[ImportRow, QuotedItemOption], bool]


def flatten_quoted_items(groups: list[EquipmentGroup]) -> list[QuotedItemOption]:
    """Every quoted item across every equipment group, in group order."""
    return [item for group in groups for item in group.items]


class QuotedItemMatcher:
    """
    Computes default mappings for a set of rows.

    Args:
        min_code_length: Shortest row code searched inside descriptions
        min_fragment_length: Shortest description accepted in a
            containment match (0 disables the guard, 1 excludes empty
            descriptions)
    """

    def __init__(
        self,
        min_code_length: Optional[int] = None,
        min_fragment_length: Optional[int] = None
    ):
        self.min_code_length = (
            settings.match_min_code_length if min_code_length is None else min_code_length
        )
        self.min_fragment_length = (
            settings.match_min_fragment_length if min_fragment_length is None else min_fragment_length
        )
        self.strategies: list[tuple[MatchStrategy, Predicate]] = [
            (MatchStrategy.EXACT_CODE, self._exact_code),
            (MatchStrategy.DESCRIPTION, self._description_containment),
            (MatchStrategy.CODE_IN_DESCRIPTION, self._code_in_description),
        ]

    # ===================
    # STRATEGIES
    # ===================

    @staticmethod
    def _exact_code(row: ImportRow, item: QuotedItemOption) -> bool:
        return bool(row.key) and row.key == normalize_code(item.code)

    def _description_containment(self, row: ImportRow, item: QuotedItemOption) -> bool:
        row_desc = row.description.strip().lower()
        item_desc = item.description.strip().lower()
        if min(len(row_desc), len(item_desc)) < self.min_fragment_length:
            return False
        return row_desc in item_desc or item_desc in row_desc

    def _code_in_description(self, row: ImportRow, item: QuotedItemOption) -> bool:
        if len(row.key) < self.min_code_length:
            return False
        return row.key in item.description.lower()

    # ===================
    # MATCHING
    # ===================

    def match_row(
        self,
        row: ImportRow,
        options: list[QuotedItemOption]
    ) -> tuple[Optional[QuotedItemOption], Optional[MatchStrategy]]:
        """
        Find the unique quoted item for a row.

        Returns:
            (matched item, strategy) or (None, None) when every strategy
            found zero or several candidates
        """
        for strategy, predicate in self.strategies:
            candidates = [item for item in options if predicate(row, item)]
            if len(candidates) == 1:
                return candidates[0], strategy
        return None, None

    def default_mappings(
        self,
        rows: list[ImportRow],
        options: list[QuotedItemOption]
    ) -> dict[str, ItemMapping]:
        """
        Default mapping per row key.

        Rows sharing a code share one mapping; the first occurrence decides.
        """
        mappings: dict[str, ItemMapping] = {}
        matched = 0

        for row in rows:
            if row.key in mappings:
                continue
            item, strategy = self.match_row(row, options)
            mappings[row.key] = ItemMapping(
                row_code=row.key,
                target=item.id if item else None,
                strategy=strategy,
            )
            if item:
                matched += 1

        logger.info(
            "default_mappings_computed",
            rows=len(rows),
            options=len(options),
            matched=matched,
            unmapped=len(mappings) - matched
        )
        return mappings
