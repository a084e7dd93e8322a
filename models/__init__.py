"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, FrozenSchema
from models.equipment_import import (
    RowState,
    MatchStrategy,
    ImportPath,
    ImportStage,
    ImportRow,
    VerifiedRow,
    RowVerificationError,
    CatalogEntry,
    CatalogEntryPayload,
    VerificationResult,
    QuotedItemOption,
    EquipmentGroup,
    ItemMapping,
    ReplacementIntent,
    ReconciliationSession,
    LinkedRow,
    ReplacedRow,
    CatalogRow,
    DirectRow,
    ClassifiedRow,
    Classification,
    LinkedOverride,
    ReplacementPayload,
    ImportContext,
    StageReport,
    ExecutionReport,
)

__all__ = [
    # Base
    "BaseSchema",
    "FrozenSchema",

    # Enums
    "RowState",
    "MatchStrategy",
    "ImportPath",
    "ImportStage",

    # Rows and verification
    "ImportRow",
    "VerifiedRow",
    "RowVerificationError",
    "CatalogEntry",
    "CatalogEntryPayload",
    "VerificationResult",

    # Quotation
    "QuotedItemOption",
    "EquipmentGroup",

    # Session
    "ItemMapping",
    "ReplacementIntent",
    "ReconciliationSession",

    # Classification
    "LinkedRow",
    "ReplacedRow",
    "CatalogRow",
    "DirectRow",
    "ClassifiedRow",
    "Classification",

    # Execution
    "LinkedOverride",
    "ReplacementPayload",
    "ImportContext",
    "StageReport",
    "ExecutionReport",
]
