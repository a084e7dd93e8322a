"""
Import executor - commits a classified session through the gateway.

Stages run in a fixed order, one batched gateway call each:

    LINKED          20%
    REPLACED        40%
    CATALOG_IMPORT  70%   (create entries -> re-verify -> import by id)
    DIRECT_IMPORT  100%

Required selections are validated before the first call is issued.
Stages are not atomic across each other: a failure raises ExecutionError
naming the failed stage and the stages already committed. Every gateway
operation is idempotent, so re-running the whole import is safe.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional
import structlog

from config import settings
from models.equipment_import import (
    CatalogEntryPayload,
    Classification,
    ExecutionReport,
    ImportContext,
    ImportStage,
    LinkedOverride,
    ReconciliationSession,
    ReplacementPayload,
    StageReport,
)
from services.persistence_gateway import PersistenceGateway
from services.existence_verifier import ExistenceVerifier, build_catalog_payload
from services.path_classifier import classify
from exceptions import (
    AppError,
    ExecutionError,
    GroupSelectionRequiredError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[ImportStage, int], None]


@dataclass
class ExecutionPlan:
    """Everything a stage handler needs; built once before any call."""
    session: ReconciliationSession
    context: ImportContext
    classification: Classification
    replacement_group_id: Optional[str] = None
    catalog_entries_created: int = 0
    completed: list[ImportStage] = field(default_factory=list)


class ImportExecutor:
    """
    Runs the four import stages against a persistence gateway.

    The stage table is data: reordering or adding a stage only changes
    self.stages.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        verifier: Optional[ExistenceVerifier] = None
    ):
        self.gateway = gateway
        self.verifier = verifier or ExistenceVerifier(gateway)
        self.stages: list[tuple[ImportStage, int, Callable[[ExecutionPlan], int]]] = [
            (ImportStage.LINKED, 20, self._run_linked),
            (ImportStage.REPLACED, 40, self._run_replaced),
            (ImportStage.CATALOG_IMPORT, 70, self._run_catalog),
            (ImportStage.DIRECT_IMPORT, 100, self._run_direct),
        ]

    # ===================
    # ENTRY POINT
    # ===================

    def execute(
        self,
        session: ReconciliationSession,
        context: ImportContext,
        on_progress: Optional[ProgressCallback] = None
    ) -> ExecutionReport:
        """
        Classify the session and commit every stage in order.

        Args:
            session: Reconciliation session with the user's decisions
            context: Target list, selected group and acting user
            on_progress: Called with (stage, percent) after each stage

        Returns:
            ExecutionReport with one StageReport per stage

        Raises:
            GroupSelectionRequiredError: Group needed but not selected
            ValidationError: Other missing selections
            ExecutionError: A stage's gateway call failed
        """
        plan = self.prepare(session, context)
        report = ExecutionReport()

        logger.info(
            "import_execution_started",
            list_id=context.list_id,
            project_id=session.project_id,
            **plan.classification.counts()
        )

        for stage, progress, handler in self.stages:
            try:
                rows = handler(plan)
            except Exception as e:
                logger.error(
                    "import_stage_failed",
                    stage=stage.value,
                    completed=[s.value for s in plan.completed],
                    error=str(e),
                    error_type=type(e).__name__
                )
                details = e.to_dict()["error"] if isinstance(e, AppError) else {}
                raise ExecutionError(
                    stage=stage.value,
                    message=str(e),
                    completed_stages=[s.value for s in plan.completed],
                    details={"cause": details} if details else None
                ) from e

            plan.completed.append(stage)
            report.stages.append(StageReport(
                stage=stage,
                rows=rows,
                progress=progress,
                skipped=rows == 0,
            ))
            report.progress = progress

            logger.info("import_stage_completed", stage=stage.value, rows=rows, progress=progress)
            if on_progress is not None:
                on_progress(stage, progress)

        report.catalog_entries_created = plan.catalog_entries_created

        logger.info(
            "import_execution_completed",
            list_id=context.list_id,
            catalog_entries_created=report.catalog_entries_created
        )
        return report

    # ===================
    # VALIDATION
    # ===================

    def prepare(self, session: ReconciliationSession, context: ImportContext) -> ExecutionPlan:
        """
        Classify and validate without touching the gateway.

        Raises:
            GroupSelectionRequiredError: Catalog/direct rows without a group
            ValidationError: Replacements without a resolvable group, or
                writes without an acting user
        """
        classification = classify(session)
        plan = ExecutionPlan(session=session, context=context, classification=classification)

        needs_group = []
        if classification.catalog:
            needs_group.append(ImportStage.CATALOG_IMPORT.value)
        if classification.direct:
            needs_group.append(ImportStage.DIRECT_IMPORT.value)
        if needs_group and not context.group_id:
            raise GroupSelectionRequiredError(needs_group)

        if classification.replaced:
            plan.replacement_group_id = context.group_id or classification.replaced[0].group_id
            if not plan.replacement_group_id:
                raise GroupSelectionRequiredError([ImportStage.REPLACED.value])

        if (classification.replaced or classification.catalog or classification.direct) and not context.actor_id:
            raise ValidationError(
                message="The acting user is required to import new list items",
                code="ACTOR_REQUIRED"
            )

        return plan

    # ===================
    # STAGE HANDLERS
    # ===================

    def _run_linked(self, plan: ExecutionPlan) -> int:
        linked = plan.classification.linked
        if not linked:
            return 0

        quoted_item_ids: list[str] = []
        for entry in linked:
            if entry.quoted_item_id not in quoted_item_ids:
                quoted_item_ids.append(entry.quoted_item_id)

        overrides = [
            LinkedOverride(
                quoted_item_id=entry.quoted_item_id,
                code=entry.row.code,
                description=entry.row.description,
                category=entry.row.category,
                unit=entry.row.unit,
                brand=entry.row.brand,
                quantity=entry.row.quantity,
            )
            for entry in linked
        ]

        self.gateway.import_linked(plan.context.list_id, quoted_item_ids, overrides)
        return len(linked)

    def _run_replaced(self, plan: ExecutionPlan) -> int:
        replaced = plan.classification.replaced
        if not replaced:
            return 0

        replacements = [
            ReplacementPayload(
                row=entry.row.to_import_row(),
                quoted_item_id=entry.quoted_item_id,
                motive=entry.motive.strip() or settings.default_replacement_motive,
            )
            for entry in replaced
        ]

        self.gateway.import_replacement(
            plan.context.list_id,
            plan.replacement_group_id,
            replacements,
            plan.context.actor_id,
        )
        return len(replaced)

    def _run_catalog(self, plan: ExecutionPlan) -> int:
        catalog = plan.classification.catalog
        if not catalog:
            return 0

        payloads: list[CatalogEntryPayload] = []
        for entry in catalog:
            if entry.needs_catalog_entry:
                payload = build_catalog_payload(entry.row)
                if payload is not None:
                    payloads.append(payload)

        if payloads:
            plan.catalog_entries_created = self.gateway.create_catalog_entries(payloads)

        # Entries created above did not exist at initial verification
        rows = [entry.row.to_import_row() for entry in catalog]
        refreshed = self.verifier.verify_existence(rows, plan.session.project_id)
        if refreshed.has_errors:
            raise ValidationError(
                message="Re-verification failed for catalog rows",
                code="REVERIFICATION_FAILED",
                details={"errors": [e.model_dump() for e in refreshed.errors]}
            )

        catalog_ids: list[str] = []
        quantities: dict[str, float] = {}
        missing: list[str] = []
        for row in refreshed.rows:
            if row.catalog_ref is None:
                missing.append(row.code)
                continue
            if row.catalog_ref not in quantities:
                catalog_ids.append(row.catalog_ref)
                quantities[row.catalog_ref] = row.quantity

        if missing:
            raise ValidationError(
                message="Catalog rows still have no catalog entry after re-verification",
                code="CATALOG_ENTRY_MISSING",
                details={"codes": missing}
            )

        self.gateway.import_from_catalog(
            plan.context.list_id,
            plan.context.group_id,
            catalog_ids,
            quantities,
            plan.context.actor_id,
        )
        return len(catalog)

    def _run_direct(self, plan: ExecutionPlan) -> int:
        direct = plan.classification.direct
        if not direct:
            return 0

        self.gateway.import_direct(
            plan.context.list_id,
            plan.context.group_id,
            [entry.row.to_import_row() for entry in direct],
            plan.context.actor_id,
        )
        return len(direct)
