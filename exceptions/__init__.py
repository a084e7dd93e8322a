"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    DatabaseError,

    # Import pipeline
    ExtractionError,
    VerificationError,
    GroupSelectionRequiredError,
    ExecutionError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "DatabaseError",

    # Import pipeline
    "ExtractionError",
    "VerificationError",
    "GroupSelectionRequiredError",
    "ExecutionError",
]
