"""
Equipment list import schemas.

Covers every value that flows through a reconciliation session:
spreadsheet rows, verification output, the quoted item universe,
user decisions and the classified import paths.
"""

from typing import Annotated, Literal, Optional, Union
from enum import Enum

from pydantic import Field, model_validator

from models.base import BaseSchema, FrozenSchema
from utils.text_utils import normalize_code, normalize_label


class RowState(str, Enum):
    """Where a spreadsheet row already exists."""
    NEW = "new"
    CATALOG_ONLY = "catalog_only"
    QUOTED = "quoted"


class MatchStrategy(str, Enum):
    """Matcher tier that produced a default mapping."""
    EXACT_CODE = "exact_code"
    DESCRIPTION = "description"
    CODE_IN_DESCRIPTION = "code_in_description"


class ImportPath(str, Enum):
    """Import strategy assigned to a row at execution time."""
    LINKED = "linked"
    REPLACED = "replaced"
    CATALOG_IMPORT = "catalog_import"
    DIRECT_IMPORT = "direct_import"


class ImportStage(str, Enum):
    """Executor stages, in execution order."""
    LINKED = "linked"
    REPLACED = "replaced"
    CATALOG_IMPORT = "catalog_import"
    DIRECT_IMPORT = "direct_import"


# ===================
# ROWS
# ===================

class ImportRow(FrozenSchema):
    """One normalized spreadsheet row."""

    code: str = Field(..., description="Equipment code as written in the file")
    description: str = Field("", description="Equipment description")
    category: str = Field("", description="Category name")
    unit: str = Field("", description="Unit of measure")
    brand: str = Field("", description="Brand")
    quantity: float = Field(1, ge=0, description="Quantity requested")

    @property
    def key(self) -> str:
        """Identity key: trimmed, lower-cased code."""
        return normalize_code(self.code)


class VerifiedRow(ImportRow):
    """Import row enriched with its catalog/quotation presence."""

    state: RowState
    catalog_ref: Optional[str] = Field(None, description="Catalog entry id")
    quoted_item_id: Optional[str] = Field(None, description="Quoted item with the same code")
    catalog_category: Optional[str] = Field(None, description="Category recorded in the catalog")

    @model_validator(mode="after")
    def _catalog_ref_matches_state(self) -> "VerifiedRow":
        if self.state == RowState.NEW and self.catalog_ref is not None:
            raise ValueError("new rows cannot carry a catalog reference")
        if self.state != RowState.NEW and self.catalog_ref is None:
            raise ValueError(f"{self.state.value} rows require a catalog reference")
        return self

    @property
    def category_mismatch(self) -> bool:
        """True when the file and the catalog disagree on the category."""
        file_category = normalize_label(self.category)
        catalog_category = normalize_label(self.catalog_category)
        if not file_category or not catalog_category:
            return False
        return file_category != catalog_category

    def to_import_row(self) -> ImportRow:
        return ImportRow(
            code=self.code,
            description=self.description,
            category=self.category,
            unit=self.unit,
            brand=self.brand,
            quantity=self.quantity,
        )


class RowVerificationError(BaseSchema):
    """Lookup failure for a single row."""
    row_index: int
    code: str
    message: str


# ===================
# CATALOG
# ===================

class CatalogEntry(BaseSchema):
    """Entry of the permanent equipment catalog."""
    id: str
    code: str
    description: str = ""
    category: Optional[str] = None
    unit: Optional[str] = None
    brand: Optional[str] = None


class CatalogEntryPayload(FrozenSchema):
    """Data needed to create a catalog entry from a new row."""
    code: str
    description: str
    category: str
    unit: str
    brand: str


class VerificationResult(BaseSchema):
    """Verifier output plus the counts used for reporting."""

    rows: list[VerifiedRow] = Field(default_factory=list)
    new_count: int = 0
    catalog_only_count: int = 0
    quoted_count: int = 0
    errors: list[RowVerificationError] = Field(default_factory=list)
    catalog_payloads: list[CatalogEntryPayload] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.rows)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0


# ===================
# QUOTATION
# ===================

class QuotedItemOption(FrozenSchema):
    """Line item already committed to the project's quotation."""
    id: str
    code: str
    description: str = ""
    category: str = ""
    group_id: str
    group_name: str = ""


class EquipmentGroup(BaseSchema):
    """Quoted equipment group with its line items."""
    id: str
    name: str = ""
    items: list[QuotedItemOption] = Field(default_factory=list)


# ===================
# SESSION DECISIONS
# ===================

class ItemMapping(FrozenSchema):
    """Mapping of one row to a quoted item (target None = unmapped)."""
    row_code: str
    target: Optional[str] = None
    strategy: Optional[MatchStrategy] = Field(
        None,
        description="Matcher tier behind a default mapping; None for manual or unmapped"
    )


class ReplacementIntent(FrozenSchema):
    """Row that substitutes its mapped quoted item instead of linking to it."""
    row_code: str
    quoted_item_id: str
    motive: str = ""


class ReconciliationSession(FrozenSchema):
    """
    State of one upload-to-commit cycle.

    Immutable: every decision returns a new session, so classification is
    a pure function of this value. Dict keys are normalized row codes.
    """

    project_id: str
    rows: list[VerifiedRow] = Field(default_factory=list)
    quoted_items: list[QuotedItemOption] = Field(default_factory=list)
    mappings: dict[str, ItemMapping] = Field(default_factory=dict)
    replacements: dict[str, ReplacementIntent] = Field(default_factory=dict)
    catalog_opt_ins: frozenset[str] = Field(default_factory=frozenset)
    duplicate_codes: frozenset[str] = Field(default_factory=frozenset)

    @model_validator(mode="after")
    def _replacements_have_targets(self) -> "ReconciliationSession":
        for key, intent in self.replacements.items():
            mapping = self.mappings.get(key)
            if mapping is None or mapping.target != intent.quoted_item_id:
                raise ValueError(
                    f"replacement for {intent.row_code!r} must target its mapped quoted item"
                )
        return self

    # ===================
    # LOOKUPS
    # ===================

    def target_for(self, key: str) -> Optional[str]:
        mapping = self.mappings.get(key)
        return mapping.target if mapping else None

    def quoted_item(self, quoted_item_id: str) -> Optional[QuotedItemOption]:
        for item in self.quoted_items:
            if item.id == quoted_item_id:
                return item
        return None

    def has_row(self, key: str) -> bool:
        return any(row.key == key for row in self.rows)

    # ===================
    # DECISIONS
    # ===================

    def with_mapping(self, code: str, target: Optional[str]) -> "ReconciliationSession":
        """
        Map a row to a quoted item, or unmap it with target None.

        A replacement survives only if it still points at the new target.
        """
        key = self._require_row(code)
        if target is not None and self.quoted_item(target) is None:
            raise ValueError(f"unknown quoted item {target!r}")

        mappings = dict(self.mappings)
        mappings[key] = ItemMapping(row_code=key, target=target)

        replacements = dict(self.replacements)
        intent = replacements.get(key)
        if intent is not None and intent.quoted_item_id != target:
            del replacements[key]

        return self.model_copy(update={"mappings": mappings, "replacements": replacements})

    def with_replacement(
        self,
        code: str,
        quoted_item_id: str,
        motive: str = ""
    ) -> "ReconciliationSession":
        """Flag a row as replacing quoted_item_id; also maps it there."""
        session = self.with_mapping(code, quoted_item_id)
        key = normalize_code(code)
        replacements = dict(session.replacements)
        replacements[key] = ReplacementIntent(
            row_code=key,
            quoted_item_id=quoted_item_id,
            motive=motive,
        )
        return session.model_copy(update={"replacements": replacements})

    def without_replacement(self, code: str) -> "ReconciliationSession":
        """Turn a replacement back into a plain link."""
        key = self._require_row(code)
        replacements = {k: v for k, v in self.replacements.items() if k != key}
        return self.model_copy(update={"replacements": replacements})

    def with_catalog_opt_in(self, code: str, opted_in: bool = True) -> "ReconciliationSession":
        """Record the user's catalog choice; eligibility is enforced at classification."""
        key = self._require_row(code)
        opt_ins = set(self.catalog_opt_ins)
        if opted_in:
            opt_ins.add(key)
        else:
            opt_ins.discard(key)
        return self.model_copy(update={"catalog_opt_ins": frozenset(opt_ins)})

    def _require_row(self, code: str) -> str:
        key = normalize_code(code)
        if not self.has_row(key):
            raise ValueError(f"unknown row code {code!r}")
        return key


# ===================
# CLASSIFIED PATHS
# ===================

class LinkedRow(FrozenSchema):
    """Row linked to an existing quoted item."""
    path: Literal[ImportPath.LINKED] = ImportPath.LINKED
    row: VerifiedRow
    quoted_item_id: str


class ReplacedRow(FrozenSchema):
    """Row substituting an existing quoted item."""
    path: Literal[ImportPath.REPLACED] = ImportPath.REPLACED
    row: VerifiedRow
    quoted_item_id: str
    group_id: Optional[str] = Field(None, description="Group owning the replaced quoted item")
    motive: str = ""


class CatalogRow(FrozenSchema):
    """Row imported through the catalog."""
    path: Literal[ImportPath.CATALOG_IMPORT] = ImportPath.CATALOG_IMPORT
    row: VerifiedRow
    needs_catalog_entry: bool = False


class DirectRow(FrozenSchema):
    """Row imported straight into the list, without catalog backing."""
    path: Literal[ImportPath.DIRECT_IMPORT] = ImportPath.DIRECT_IMPORT
    row: VerifiedRow


ClassifiedRow = Annotated[
    Union[LinkedRow, ReplacedRow, CatalogRow, DirectRow],
    Field(discriminator="path")
]


class Classification(FrozenSchema):
    """The four disjoint path buckets of a session."""

    linked: list[LinkedRow] = Field(default_factory=list)
    replaced: list[ReplacedRow] = Field(default_factory=list)
    catalog: list[CatalogRow] = Field(default_factory=list)
    direct: list[DirectRow] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.linked) + len(self.replaced) + len(self.catalog) + len(self.direct)

    def counts(self) -> dict[str, int]:
        return {
            ImportPath.LINKED.value: len(self.linked),
            ImportPath.REPLACED.value: len(self.replaced),
            ImportPath.CATALOG_IMPORT.value: len(self.catalog),
            ImportPath.DIRECT_IMPORT.value: len(self.direct),
        }

    def entries(self) -> list[ClassifiedRow]:
        """All classified rows, bucket by bucket."""
        return [*self.linked, *self.replaced, *self.catalog, *self.direct]


# ===================
# GATEWAY PAYLOADS
# ===================

class LinkedOverride(FrozenSchema):
    """Spreadsheet data applied to a linked quoted item, correlated by code."""
    quoted_item_id: str
    code: str
    description: str = ""
    category: str = ""
    unit: str = ""
    brand: str = ""
    quantity: float


class ReplacementPayload(FrozenSchema):
    """One replacement handed to the gateway."""
    row: ImportRow
    quoted_item_id: str
    motive: str


# ===================
# EXECUTION
# ===================

class ImportContext(BaseSchema):
    """Caller-provided target of an import run."""
    list_id: str = Field(..., min_length=1)
    group_id: Optional[str] = Field(None, description="Selected equipment group")
    actor_id: Optional[str] = Field(None, description="User performing the import")


class StageReport(BaseSchema):
    """Outcome of one executor stage."""
    stage: ImportStage
    rows: int
    progress: int
    skipped: bool = False


class ExecutionReport(BaseSchema):
    """Outcome of a completed import run."""
    stages: list[StageReport] = Field(default_factory=list)
    progress: int = 0
    catalog_entries_created: int = 0

    @property
    def completed_stages(self) -> list[ImportStage]:
        return [s.stage for s in self.stages]


# ===================
# API SCHEMAS
# ===================

class ImportPreviewResponse(BaseSchema):
    """Session and classification preview returned after an upload."""
    session: ReconciliationSession
    total: int
    new_count: int
    catalog_only_count: int
    quoted_count: int
    classification: Classification
    eligible_catalog_opt_ins: list[str] = Field(default_factory=list)
    category_mismatches: list[str] = Field(
        default_factory=list,
        description="Row codes whose category differs from the catalog's"
    )


class ImportExecuteRequest(BaseSchema):
    """Session from the preview plus the user's decisions."""
    session: ReconciliationSession
    mappings: dict[str, Optional[str]] = Field(default_factory=dict)
    replacements: list[ReplacementIntent] = Field(default_factory=list)
    catalog_opt_ins: list[str] = Field(default_factory=list)
    group_id: Optional[str] = None
    actor_id: Optional[str] = None
