"""
Reconciliation service - one spreadsheet upload to commit cycle.

start_session() runs the read-only half of the pipeline (verify, fetch
the quotation, match, detect duplicates) and returns an immutable
session. apply_decisions() layers the user's choices on top, and
execute() hands the result to the import executor.
"""

from typing import Optional
import structlog

from models.equipment_import import (
    Classification,
    ExecutionReport,
    ImportContext,
    ImportRow,
    ReconciliationSession,
    ReplacementIntent,
    VerificationResult,
)
from services.persistence_gateway import PersistenceGateway
from services.existence_verifier import ExistenceVerifier, raise_for_errors
from services.quoted_item_matcher import QuotedItemMatcher, flatten_quoted_items
from services.duplicate_detector import find_duplicate_codes
from services.path_classifier import classify
from services.import_executor import ImportExecutor, ProgressCallback
from exceptions import ValidationError

logger = structlog.get_logger(__name__)


class ReconciliationService:
    """
    Equipment list import orchestration.

    Holds no per-session state; every call receives and returns sessions.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        matcher: Optional[QuotedItemMatcher] = None
    ):
        self.gateway = gateway
        self.verifier = ExistenceVerifier(gateway)
        self.matcher = matcher or QuotedItemMatcher()
        self.executor = ImportExecutor(gateway, self.verifier)

    # ===================
    # SESSION LIFECYCLE
    # ===================

    def start_session(
        self,
        rows: list[ImportRow],
        project_id: str
    ) -> tuple[ReconciliationSession, VerificationResult]:
        """
        Verify rows and compute default decisions.

        Args:
            rows: Rows produced by the spreadsheet parser
            project_id: Project whose quotation is reconciled

        Returns:
            (session, verification result with counts)

        Raises:
            VerificationError: If any row lookup failed
        """
        logger.info("reconciliation_session_starting", project_id=project_id, rows=len(rows))

        groups = self.gateway.fetch_quoted_items(project_id)
        verification = self.verifier.verify_existence(rows, project_id, quoted_groups=groups)
        raise_for_errors(verification)

        options = flatten_quoted_items(groups)
        session = ReconciliationSession(
            project_id=project_id,
            rows=verification.rows,
            quoted_items=options,
            mappings=self.matcher.default_mappings(verification.rows, options),
            duplicate_codes=frozenset(find_duplicate_codes(verification.rows)),
        )

        logger.info(
            "reconciliation_session_started",
            project_id=project_id,
            quoted_items=len(options),
            duplicates=len(session.duplicate_codes)
        )
        return session, verification

    def apply_decisions(
        self,
        session: ReconciliationSession,
        mappings: Optional[dict[str, Optional[str]]] = None,
        replacements: Optional[list[ReplacementIntent]] = None,
        catalog_opt_ins: Optional[list[str]] = None
    ) -> ReconciliationSession:
        """
        Apply user overrides to a session.

        Args:
            mappings: Row code → quoted item id (None to unmap)
            replacements: Rows that replace their quoted item
            catalog_opt_ins: Row codes to persist into the catalog

        Raises:
            ValidationError: Unknown row code or quoted item id
        """
        try:
            for code, target in (mappings or {}).items():
                session = session.with_mapping(code, target)
            for intent in replacements or []:
                session = session.with_replacement(intent.row_code, intent.quoted_item_id, intent.motive)
            for code in catalog_opt_ins or []:
                session = session.with_catalog_opt_in(code)
        except ValueError as e:
            raise ValidationError(message=str(e), code="INVALID_DECISION")

        return session

    def preview(self, session: ReconciliationSession) -> Classification:
        """Classification the executor would apply right now."""
        return classify(session)

    def execute(
        self,
        session: ReconciliationSession,
        context: ImportContext,
        on_progress: Optional[ProgressCallback] = None
    ) -> ExecutionReport:
        """Commit the session. See ImportExecutor.execute."""
        return self.executor.execute(session, context, on_progress)


# Singleton instance for convenience
_reconciliation_service: Optional[ReconciliationService] = None

def get_reconciliation_service() -> ReconciliationService:
    """Get or create ReconciliationService backed by Supabase."""
    global _reconciliation_service
    if _reconciliation_service is None:
        from services.supabase_gateway import get_persistence_gateway
        _reconciliation_service = ReconciliationService(get_persistence_gateway())
    return _reconciliation_service
