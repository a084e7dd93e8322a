"""
Supabase implementation of the persistence gateway.

Tables:
    catalog_equipment          permanent catalog (category_id, unit_id)
    equipment_categories       category names
    units                      unit names
    project_equipment_groups   quoted equipment groups per project
    project_equipment_items    quoted line items per group
    equipment_list_items       procurement list items

List item writes are keyed by (list_id, code): an existing item is
updated, otherwise a new one is inserted, so re-running an import
refreshes quantities instead of duplicating rows.
"""

from typing import Optional
import structlog

from config import get_supabase_client, settings
from models.equipment_import import (
    CatalogEntry,
    CatalogEntryPayload,
    EquipmentGroup,
    ImportRow,
    LinkedOverride,
    QuotedItemOption,
    ReplacementPayload,
)
from services.persistence_gateway import PersistenceGateway
from exceptions import AppError, DatabaseError, NotFoundError
from utils.text_utils import normalize_code, normalize_label

logger = structlog.get_logger(__name__)

CATALOG_SELECT = "id, code, description, brand, equipment_categories(name), units(name)"

REPLACED_STATUS = "reemplazado"


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so ilike behaves as case-insensitive equality."""
    return (
        value.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )


def _embedded_name(row: dict, relation: str) -> Optional[str]:
    """Read the name of an embedded relation ({"name": ...} or [{"name": ...}])."""
    value = row.get(relation)
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        return value.get("name")
    return None


def _to_catalog_entry(row: dict) -> CatalogEntry:
    return CatalogEntry(
        id=row["id"],
        code=row.get("code") or "",
        description=row.get("description") or "",
        category=_embedded_name(row, "equipment_categories"),
        unit=_embedded_name(row, "units"),
        brand=row.get("brand"),
    )


class SupabaseGateway(PersistenceGateway):
    """
    Persistence gateway backed by Supabase.

    Every method logs its operation and wraps driver failures in
    DatabaseError.
    """

    def __init__(self):
        self.db = get_supabase_client()

    # ===================
    # READ OPERATIONS
    # ===================

    def find_catalog_entry(self, code: str, description: str = "") -> Optional[CatalogEntry]:
        """
        Look up a catalog entry by code, then by exact description.

        The description fallback only answers when exactly one entry
        carries that description.
        """
        key = normalize_code(code)
        logger.debug("finding_catalog_entry", code=key)

        try:
            if key:
                result = (
                    self.db.table("catalog_equipment")
                    .select(CATALOG_SELECT)
                    .ilike("code", _escape_like(str(code).strip()))
                    .execute()
                )
                for row in result.data:
                    if normalize_code(row.get("code")) == key:
                        return _to_catalog_entry(row)

            description = (description or "").strip()
            if description:
                result = (
                    self.db.table("catalog_equipment")
                    .select(CATALOG_SELECT)
                    .ilike("description", _escape_like(description))
                    .execute()
                )
                wanted = description.lower()
                matches = [
                    row for row in result.data
                    if (row.get("description") or "").strip().lower() == wanted
                ]
                if len(matches) == 1:
                    return _to_catalog_entry(matches[0])

            return None

        except Exception as e:
            logger.error("find_catalog_entry_failed", code=key, error=str(e))
            raise DatabaseError("select", str(e), details={"code": code})

    def fetch_quoted_items(self, project_id: str) -> list[EquipmentGroup]:
        """Get quoted groups and their active (not replaced) items."""
        logger.info("fetching_quoted_items", project_id=project_id)

        try:
            groups_result = (
                self.db.table("project_equipment_groups")
                .select("id, name")
                .eq("project_id", project_id)
                .order("name")
                .execute()
            )
            groups = {
                row["id"]: EquipmentGroup(id=row["id"], name=row.get("name") or "")
                for row in groups_result.data
            }
            if not groups:
                return []

            items_result = (
                self.db.table("project_equipment_items")
                .select("id, group_id, code, description, category, status")
                .in_("group_id", list(groups.keys()))
                .execute()
            )

            for row in items_result.data:
                group = groups.get(row.get("group_id"))
                if group is None or row.get("status") == REPLACED_STATUS:
                    continue
                group.items.append(QuotedItemOption(
                    id=row["id"],
                    code=row.get("code") or "",
                    description=row.get("description") or "",
                    category=row.get("category") or "",
                    group_id=group.id,
                    group_name=group.name,
                ))

            logger.info(
                "quoted_items_fetched",
                project_id=project_id,
                groups=len(groups),
                items=sum(len(g.items) for g in groups.values())
            )
            return list(groups.values())

        except Exception as e:
            logger.error("fetch_quoted_items_failed", project_id=project_id, error=str(e))
            raise DatabaseError("select", str(e), details={"project_id": project_id})

    # ===================
    # CATALOG WRITES
    # ===================

    def create_catalog_entries(self, payloads: list[CatalogEntryPayload]) -> int:
        if not payloads:
            return 0

        logger.info("creating_catalog_entries", count=len(payloads))

        try:
            unique: dict[str, CatalogEntryPayload] = {}
            for payload in payloads:
                unique.setdefault(normalize_code(payload.code), payload)

            existing = (
                self.db.table("catalog_equipment")
                .select("code")
                .in_("code", [p.code for p in unique.values()])
                .execute()
            )
            existing_keys = {normalize_code(row.get("code")) for row in existing.data}
            pending = [p for key, p in unique.items() if key not in existing_keys]
            if not pending:
                logger.info("catalog_entries_already_present", count=len(unique))
                return 0

            category_ids = self._get_or_create_names(
                "equipment_categories", [p.category for p in pending]
            )
            unit_ids = self._get_or_create_names("units", [p.unit for p in pending])

            insert_data = [
                {
                    "code": p.code,
                    "description": p.description,
                    "brand": p.brand,
                    "category_id": category_ids[normalize_label(p.category)],
                    "unit_id": unit_ids[normalize_label(p.unit)],
                    "list_price": 0,
                    "internal_price": 0,
                    "cost_factor": 1.0,
                    "sale_factor": 1.15,
                    "sale_price": 0,
                    "status": "pendiente",
                }
                for p in pending
            ]
            self.db.table("catalog_equipment").insert(insert_data).execute()

            logger.info(
                "catalog_entries_created",
                created=len(pending),
                skipped=len(unique) - len(pending)
            )
            return len(pending)

        except AppError:
            raise
        except Exception as e:
            logger.error("create_catalog_entries_failed", count=len(payloads), error=str(e))
            raise DatabaseError("insert", str(e))

    def _get_or_create_names(self, table: str, names: list[str]) -> dict[str, str]:
        """Map normalized names to ids, inserting names that don't exist yet."""
        result = self.db.table(table).select("id, name").execute()
        ids = {
            normalize_label(row.get("name")): row["id"]
            for row in result.data
            if normalize_label(row.get("name"))
        }

        missing: dict[str, str] = {}
        for name in names:
            key = normalize_label(name)
            if key and key not in ids:
                missing.setdefault(key, name.strip())

        if missing:
            created = self.db.table(table).insert(
                [{"name": name} for name in missing.values()]
            ).execute()
            for row in created.data:
                ids[normalize_label(row.get("name"))] = row["id"]
            logger.info("lookup_names_created", table=table, names=list(missing.values()))

        return ids

    # ===================
    # LIST WRITES
    # ===================

    def import_linked(
        self,
        list_id: str,
        quoted_item_ids: list[str],
        overrides: list[LinkedOverride]
    ) -> None:
        if not quoted_item_ids:
            return

        logger.info("importing_linked_items", list_id=list_id, count=len(quoted_item_ids))

        try:
            result = (
                self.db.table("project_equipment_items")
                .select("id, group_id, catalog_equipment_id, code, description, category, unit, brand, quantity, client_price")
                .in_("id", quoted_item_ids)
                .execute()
            )
            quoted_by_id = {row["id"]: row for row in result.data}
            # Last override per quoted item wins
            override_by_id: dict[str, LinkedOverride] = {}
            for override in overrides:
                previous = override_by_id.get(override.quoted_item_id)
                if previous is not None:
                    logger.warning(
                        "linked_override_collision",
                        list_id=list_id,
                        quoted_item_id=override.quoted_item_id,
                        dropped_code=previous.code,
                        dropped_quantity=previous.quantity,
                        kept_code=override.code
                    )
                override_by_id[override.quoted_item_id] = override

            records = []
            for quoted_id in quoted_item_ids:
                quoted = quoted_by_id.get(quoted_id)
                if quoted is None:
                    raise NotFoundError("Quoted item", quoted_id, code="QUOTED_ITEM_NOT_FOUND")

                override = override_by_id.get(quoted_id)
                records.append({
                    "group_id": quoted.get("group_id"),
                    "quoted_item_id": quoted_id,
                    "catalog_equipment_id": quoted.get("catalog_equipment_id"),
                    "code": (override.code if override else None) or quoted.get("code"),
                    "description": (override.description if override else None) or quoted.get("description"),
                    "category": (override.category if override else None) or quoted.get("category"),
                    "unit": (override.unit if override else None) or quoted.get("unit") or settings.default_unit,
                    "brand": (override.brand if override else None) or quoted.get("brand") or "",
                    "quantity": override.quantity if override else (quoted.get("quantity") or 1),
                    "budget": quoted.get("client_price") or 0,
                    "origin": "cotizado",
                })

            self._upsert_list_items(list_id, records)

        except AppError:
            raise
        except Exception as e:
            logger.error("import_linked_failed", list_id=list_id, error=str(e))
            raise DatabaseError("upsert", str(e), details={"list_id": list_id})

    def import_replacement(
        self,
        list_id: str,
        group_id: str,
        replacements: list[ReplacementPayload],
        actor_id: Optional[str]
    ) -> None:
        if not replacements:
            return

        logger.info("importing_replacements", list_id=list_id, group_id=group_id, count=len(replacements))

        try:
            records = [
                {
                    **self._row_record(r.row),
                    "group_id": group_id,
                    "responsible_id": actor_id,
                    "quoted_item_id": r.quoted_item_id,
                    "replaces_quoted_item_id": r.quoted_item_id,
                    "budget": 0,
                    "origin": "reemplazo",
                    "review_comment": r.motive,
                }
                for r in replacements
            ]
            item_ids = self._upsert_list_items(list_id, records)

            for r in replacements:
                self.db.table("project_equipment_items").update({
                    "selected_list_item_id": item_ids.get(normalize_code(r.row.code)),
                    "list_id": list_id,
                    "status": REPLACED_STATUS,
                    "change_motive": r.motive,
                }).eq("id", r.quoted_item_id).execute()

            logger.info("replacements_imported", list_id=list_id, count=len(replacements))

        except AppError:
            raise
        except Exception as e:
            logger.error("import_replacement_failed", list_id=list_id, error=str(e))
            raise DatabaseError("upsert", str(e), details={"list_id": list_id})

    def import_from_catalog(
        self,
        list_id: str,
        group_id: str,
        catalog_ids: list[str],
        quantities: dict[str, float],
        actor_id: Optional[str]
    ) -> None:
        if not catalog_ids:
            return

        logger.info("importing_from_catalog", list_id=list_id, group_id=group_id, count=len(catalog_ids))

        try:
            result = (
                self.db.table("catalog_equipment")
                .select(CATALOG_SELECT + ", sale_price")
                .in_("id", catalog_ids)
                .execute()
            )
            catalog_by_id = {row["id"]: row for row in result.data}

            records = []
            for catalog_id in catalog_ids:
                row = catalog_by_id.get(catalog_id)
                if row is None:
                    raise NotFoundError("Catalog entry", catalog_id, code="CATALOG_ENTRY_NOT_FOUND")
                entry = _to_catalog_entry(row)
                records.append({
                    "group_id": group_id,
                    "responsible_id": actor_id,
                    "catalog_equipment_id": entry.id,
                    "code": entry.code,
                    "description": entry.description,
                    "brand": entry.brand or settings.default_brand,
                    "category": entry.category or settings.default_category,
                    "unit": entry.unit or settings.default_unit,
                    "quantity": quantities.get(catalog_id, 1),
                    "budget": row.get("sale_price") or 0,
                    "origin": "nuevo",
                })

            self._upsert_list_items(list_id, records)

        except AppError:
            raise
        except Exception as e:
            logger.error("import_from_catalog_failed", list_id=list_id, error=str(e))
            raise DatabaseError("upsert", str(e), details={"list_id": list_id})

    def import_direct(
        self,
        list_id: str,
        group_id: str,
        rows: list[ImportRow],
        actor_id: Optional[str]
    ) -> None:
        if not rows:
            return

        logger.info("importing_direct_rows", list_id=list_id, group_id=group_id, count=len(rows))

        try:
            records = [
                {
                    **self._row_record(row),
                    "group_id": group_id,
                    "responsible_id": actor_id,
                    "budget": 0,
                    "origin": "nuevo",
                }
                for row in rows
            ]
            self._upsert_list_items(list_id, records)

        except AppError:
            raise
        except Exception as e:
            logger.error("import_direct_failed", list_id=list_id, error=str(e))
            raise DatabaseError("upsert", str(e), details={"list_id": list_id})

    # ===================
    # HELPERS
    # ===================

    @staticmethod
    def _row_record(row: ImportRow) -> dict:
        return {
            "code": row.code,
            "description": row.description,
            "brand": row.brand or settings.default_brand,
            "category": row.category or settings.default_category,
            "unit": row.unit or settings.default_unit,
            "quantity": row.quantity,
        }

    def _upsert_list_items(self, list_id: str, records: list[dict]) -> dict[str, str]:
        """
        Update list items whose code already exists in the list, insert the rest.

        Returns:
            Normalized code → list item id for every written record
        """
        existing = (
            self.db.table("equipment_list_items")
            .select("id, code")
            .eq("list_id", list_id)
            .execute()
        )
        existing_by_code = {normalize_code(row.get("code")): row["id"] for row in existing.data}

        item_ids: dict[str, str] = {}
        inserts: dict[str, dict] = {}
        updated = 0

        for record in records:
            key = normalize_code(record.get("code"))
            item_id = existing_by_code.get(key)
            if item_id:
                self.db.table("equipment_list_items").update(record).eq("id", item_id).execute()
                item_ids[key] = item_id
                updated += 1
            else:
                # Last record wins for codes repeated within the same batch
                inserts[key] = {**record, "list_id": list_id, "status": "borrador"}

        if inserts:
            created = self.db.table("equipment_list_items").insert(list(inserts.values())).execute()
            for row in created.data:
                item_ids[normalize_code(row.get("code"))] = row["id"]

        logger.info(
            "list_items_upserted",
            list_id=list_id,
            inserted=len(inserts),
            updated=updated
        )
        return item_ids


# Singleton instance for convenience
_gateway: Optional[SupabaseGateway] = None

def get_persistence_gateway() -> PersistenceGateway:
    """Get or create the Supabase-backed gateway."""
    global _gateway
    if _gateway is None:
        _gateway = SupabaseGateway()
    return _gateway
