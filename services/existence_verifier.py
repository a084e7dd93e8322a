"""
Existence verifier - where does each spreadsheet row already live?

For every row the catalog is looked up by code (with the catalog's own
description fallback) and the project's quotation by the same code:

    in catalog and quoted  -> quoted
    in catalog only        -> catalog_only
    otherwise              -> new

Verification is a pure read. A failed lookup is recorded against its
row and the remaining rows are still verified; callers must not move on
to classification while errors remain (see raise_for_errors).
"""

from typing import Optional
import structlog

from config import settings
from models.equipment_import import (
    CatalogEntryPayload,
    EquipmentGroup,
    ImportRow,
    RowState,
    RowVerificationError,
    VerificationResult,
    VerifiedRow,
)
from services.persistence_gateway import PersistenceGateway
from exceptions import VerificationError
from utils.text_utils import normalize_code

logger = structlog.get_logger(__name__)


class ExistenceVerifier:
    """Classifies rows by catalog and quotation presence."""

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    def verify_existence(
        self,
        rows: list[ImportRow],
        project_id: str,
        quoted_groups: Optional[list[EquipmentGroup]] = None
    ) -> VerificationResult:
        """
        Verify every row against the catalog and the project's quotation.

        Args:
            rows: Normalized spreadsheet rows
            project_id: Project whose quotation is checked
            quoted_groups: Quotation snapshot to reuse; fetched when omitted

        Returns:
            VerificationResult with one VerifiedRow per successfully
            verified row, counts, per-row errors and catalog payloads

        Raises:
            DatabaseError: If the quotation snapshot cannot be fetched
        """
        logger.info("verifying_rows", project_id=project_id, count=len(rows))

        if quoted_groups is None:
            quoted_groups = self.gateway.fetch_quoted_items(project_id)

        quoted_by_code: dict[str, str] = {}
        for group in quoted_groups:
            for item in group.items:
                quoted_by_code.setdefault(normalize_code(item.code), item.id)

        result = VerificationResult()

        for index, row in enumerate(rows):
            try:
                entry = self.gateway.find_catalog_entry(row.code, row.description)
            except Exception as e:
                logger.warning(
                    "row_verification_failed",
                    row_index=index,
                    code=row.code,
                    error=str(e)
                )
                result.errors.append(RowVerificationError(
                    row_index=index,
                    code=row.code,
                    message=str(e),
                ))
                continue

            quoted_item_id = quoted_by_code.get(row.key)

            if entry is not None and quoted_item_id is not None:
                state = RowState.QUOTED
                result.quoted_count += 1
            elif entry is not None:
                state = RowState.CATALOG_ONLY
                result.catalog_only_count += 1
            else:
                state = RowState.NEW
                result.new_count += 1

            result.rows.append(VerifiedRow(
                **row.model_dump(),
                state=state,
                catalog_ref=entry.id if entry else None,
                quoted_item_id=quoted_item_id if entry else None,
                catalog_category=entry.category if entry else None,
            ))

            if state == RowState.NEW:
                payload = build_catalog_payload(row)
                if payload is not None:
                    result.catalog_payloads.append(payload)

        logger.info(
            "rows_verified",
            project_id=project_id,
            new=result.new_count,
            catalog_only=result.catalog_only_count,
            quoted=result.quoted_count,
            errors=len(result.errors)
        )

        return result


def is_temporary_code(code: str) -> bool:
    """Temporary codes have no real catalog identity."""
    return str(code).strip().upper().startswith(settings.temp_code_prefix.upper())


def build_catalog_payload(row: ImportRow) -> Optional[CatalogEntryPayload]:
    """
    Catalog entry data for a new row, with defaults for empty fields.

    Returns None for temporary codes.
    """
    if is_temporary_code(row.code):
        return None
    return CatalogEntryPayload(
        code=row.code,
        description=row.description,
        category=row.category or settings.default_category,
        unit=row.unit or settings.default_unit,
        brand=row.brand or settings.default_brand,
    )


def raise_for_errors(result: VerificationResult) -> None:
    """Raise VerificationError with every collected row error, if any."""
    if result.has_errors:
        raise VerificationError([e.model_dump() for e in result.errors])
