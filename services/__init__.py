"""
Business logic services.

The equipment import pipeline, leaves first: verifier, matcher,
duplicate detector, classifier, executor, and the orchestrating
reconciliation service.
"""

from services.persistence_gateway import PersistenceGateway
from services.existence_verifier import ExistenceVerifier, raise_for_errors
from services.quoted_item_matcher import QuotedItemMatcher, flatten_quoted_items
from services.duplicate_detector import find_duplicate_codes
from services.path_classifier import classify, eligible_catalog_opt_ins
from services.import_executor import ImportExecutor
from services.reconciliation_service import ReconciliationService, get_reconciliation_service

__all__ = [
    "PersistenceGateway",
    "ExistenceVerifier",
    "raise_for_errors",
    "QuotedItemMatcher",
    "flatten_quoted_items",
    "find_duplicate_codes",
    "classify",
    "eligible_catalog_opt_ins",
    "ImportExecutor",
    "ReconciliationService",
    "get_reconciliation_service",
]
