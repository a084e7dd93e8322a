"""
Persistence gateway - the only storage boundary of the import engine.

The reconciliation pipeline talks to storage exclusively through this
interface. Every mutating operation must be a no-op on empty input and
idempotent on repeated input.
"""

from abc import ABC, abstractmethod
from typing import Optional

from models.equipment_import import (
    CatalogEntry,
    CatalogEntryPayload,
    EquipmentGroup,
    ImportRow,
    LinkedOverride,
    ReplacementPayload,
)


class PersistenceGateway(ABC):
    """Storage operations required by the verifier and the executor."""

    # ===================
    # READ OPERATIONS
    # ===================

    @abstractmethod
    def find_catalog_entry(self, code: str, description: str = "") -> Optional[CatalogEntry]:
        """
        Look up a catalog entry by code, falling back to description.

        Code comparison is case-insensitive. Returns None when absent.
        """

    @abstractmethod
    def fetch_quoted_items(self, project_id: str) -> list[EquipmentGroup]:
        """Get the project's quoted equipment groups with their items."""

    # ===================
    # WRITE OPERATIONS
    # ===================

    @abstractmethod
    def create_catalog_entries(self, payloads: list[CatalogEntryPayload]) -> int:
        """
        Create catalog entries, skipping codes that already exist.

        Returns:
            Number of entries actually created
        """

    @abstractmethod
    def import_linked(
        self,
        list_id: str,
        quoted_item_ids: list[str],
        overrides: list[LinkedOverride]
    ) -> None:
        """Upsert list items linked to quoted items, using spreadsheet quantities."""

    @abstractmethod
    def import_replacement(
        self,
        list_id: str,
        group_id: str,
        replacements: list[ReplacementPayload],
        actor_id: Optional[str]
    ) -> None:
        """Create replacement list items and mark the quoted items as replaced."""

    @abstractmethod
    def import_from_catalog(
        self,
        list_id: str,
        group_id: str,
        catalog_ids: list[str],
        quantities: dict[str, float],
        actor_id: Optional[str]
    ) -> None:
        """Upsert list items backed by catalog entries."""

    @abstractmethod
    def import_direct(
        self,
        list_id: str,
        group_id: str,
        rows: list[ImportRow],
        actor_id: Optional[str]
    ) -> None:
        """Upsert list items from raw row data, without catalog linkage."""
