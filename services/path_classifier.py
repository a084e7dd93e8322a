"""
Path classifier - one import path per row.

Priority, first rule that applies wins:

    1. mapped, no replacement intent          -> LINKED
    2. mapped, with replacement intent        -> REPLACED
    3. catalog_only, or new + eligible opt-in -> CATALOG_IMPORT
    4. anything else                          -> DIRECT_IMPORT

An explicit mapping always beats catalog presence. A quoted row left
unmapped falls through to rules 3/4 like any other row.
"""

from typing import Optional
import structlog

from models.equipment_import import (
    CatalogRow,
    Classification,
    DirectRow,
    LinkedRow,
    ReconciliationSession,
    ReplacedRow,
    RowState,
    VerifiedRow,
)
from services.duplicate_detector import find_duplicate_codes
from services.existence_verifier import is_temporary_code

logger = structlog.get_logger(__name__)


def duplicate_keys(session: ReconciliationSession) -> set[str]:
    """
    Repeated codes of the session, recomputed from its rows.

    Sessions come back from clients on execute, so the stored
    duplicate_codes can only add keys, never hide a repeated code.
    """
    return set(session.duplicate_codes) | find_duplicate_codes(session.rows)


def is_opt_in_eligible(
    session: ReconciliationSession,
    row: VerifiedRow,
    duplicates: Optional[set[str]] = None
) -> bool:
    """Only new, non-duplicated, non-temporary rows may be added to the catalog."""
    if duplicates is None:
        duplicates = duplicate_keys(session)
    return (
        row.state == RowState.NEW
        and row.key not in duplicates
        and not is_temporary_code(row.code)
    )


def opt_in_candidates(session: ReconciliationSession) -> list[str]:
    """Row keys the user may opt into the catalog, in file order."""
    duplicates = duplicate_keys(session)
    keys: list[str] = []
    for row in session.rows:
        if is_opt_in_eligible(session, row, duplicates) and row.key not in keys:
            keys.append(row.key)
    return keys


def eligible_catalog_opt_ins(session: ReconciliationSession) -> set[str]:
    """Opted-in row keys that will actually create catalog entries."""
    duplicates = duplicate_keys(session)
    return {
        row.key
        for row in session.rows
        if row.key in session.catalog_opt_ins and is_opt_in_eligible(session, row, duplicates)
    }


def classify(session: ReconciliationSession) -> Classification:
    """
    Partition the session's rows into the four import paths.

    Pure function of the session; safe to call after every decision.
    """
    linked: list[LinkedRow] = []
    replaced: list[ReplacedRow] = []
    catalog: list[CatalogRow] = []
    direct: list[DirectRow] = []

    opt_ins = eligible_catalog_opt_ins(session)

    for row in session.rows:
        target = session.target_for(row.key)
        intent = session.replacements.get(row.key)

        if target is not None and intent is None:
            linked.append(LinkedRow(row=row, quoted_item_id=target))
        elif target is not None:
            quoted = session.quoted_item(target)
            replaced.append(ReplacedRow(
                row=row,
                quoted_item_id=target,
                group_id=quoted.group_id if quoted else None,
                motive=intent.motive,
            ))
        elif row.state == RowState.CATALOG_ONLY or row.state == RowState.QUOTED:
            catalog.append(CatalogRow(row=row))
        elif row.key in opt_ins:
            catalog.append(CatalogRow(row=row, needs_catalog_entry=True))
        else:
            direct.append(DirectRow(row=row))

    classification = Classification(
        linked=linked,
        replaced=replaced,
        catalog=catalog,
        direct=direct,
    )

    logger.debug("rows_classified", **classification.counts())
    return classification
