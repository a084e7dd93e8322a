"""
Custom exception classes for the application.

Every error carries a stable code, an HTTP status and structured details
so routes can render it with to_dict().
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "EXTRACTION_ERROR")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# IMPORT PIPELINE ERRORS
# ===================

class ExtractionError(ValidationError):
    """Spreadsheet could not be turned into import rows."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="EXTRACTION_ERROR",
            message=message,
            details=details
        )


class VerificationError(ValidationError):
    """One or more rows failed the catalog/quotation lookup."""

    def __init__(self, errors: list[dict]):
        super().__init__(
            code="VERIFICATION_FAILED",
            message=f"Verification failed for {len(errors)} row(s)",
            details={"errors": errors}
        )
        self.errors = errors


class GroupSelectionRequiredError(ValidationError):
    """An equipment group must be selected before importing."""

    def __init__(self, stages: list[str]):
        super().__init__(
            code="GROUP_SELECTION_REQUIRED",
            message="An equipment group must be selected for this import",
            details={"stages": stages}
        )


class ExecutionError(AppError):
    """
    A batched gateway call failed during import execution.

    Stages listed in completed_stages were already committed and are
    not rolled back.
    """

    def __init__(
        self,
        stage: str,
        message: str,
        completed_stages: Optional[list[str]] = None,
        details: Optional[dict] = None
    ):
        self.stage = stage
        self.completed_stages = list(completed_stages or [])
        super().__init__(
            code="IMPORT_EXECUTION_FAILED",
            message=f"Import stage {stage} failed: {message}",
            status_code=502,
            details={
                "stage": stage,
                "completed_stages": self.completed_stages,
                **(details or {})
            }
        )
