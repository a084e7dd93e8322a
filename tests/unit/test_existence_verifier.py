"""
Unit tests for the existence verifier.

Covers row states, counts, per-row lookup errors and catalog payloads.
"""

import pytest

from config import settings
from exceptions import VerificationError
from models.equipment_import import RowState
from services.duplicate_detector import find_duplicate_codes
from services.existence_verifier import (
    ExistenceVerifier,
    build_catalog_payload,
    is_temporary_code,
    raise_for_errors,
)
from tests.factories import ImportRowFactory, QuotedItemFactory, VerifiedRowFactory, catalog_entry


@pytest.fixture
def verifier(gateway):
    return ExistenceVerifier(gateway)


@pytest.fixture
def three_state_rows(gateway):
    """EQ001 quoted, EQ002 catalog only, EQ003 new."""
    gateway.catalog = {
        "eq001": catalog_entry("EQ001", category="Variadores"),
        "eq002": catalog_entry("EQ002", category="Motores"),
    }
    gateway.groups = [
        QuotedItemFactory.group([QuotedItemFactory.create(code="EQ001", id="q1")])
    ]
    return [
        ImportRowFactory.create(code="EQ001"),
        ImportRowFactory.create(code="EQ002"),
        ImportRowFactory.create(code="EQ003"),
    ]


# ===================
# ROW STATES
# ===================

class TestRowStates:
    """Tests for the quoted / catalog_only / new decision."""

    def test_each_state_is_assigned(self, verifier, three_state_rows):
        """Should derive the state from catalog and quotation presence."""
        result = verifier.verify_existence(three_state_rows, "project-1")

        states = {row.code: row.state for row in result.rows}
        assert states == {
            "EQ001": RowState.QUOTED,
            "EQ002": RowState.CATALOG_ONLY,
            "EQ003": RowState.NEW,
        }

    def test_counts_match_states(self, verifier, three_state_rows):
        """Should count one row per state."""
        result = verifier.verify_existence(three_state_rows, "project-1")

        assert result.total == 3
        assert result.quoted_count == 1
        assert result.catalog_only_count == 1
        assert result.new_count == 1
        assert result.has_errors is False

    def test_catalog_reference_follows_state(self, verifier, three_state_rows):
        """Should attach catalog and quoted ids only where they exist."""
        result = verifier.verify_existence(three_state_rows, "project-1")
        by_code = {row.code: row for row in result.rows}

        assert by_code["EQ001"].catalog_ref == "cat-eq001"
        assert by_code["EQ001"].quoted_item_id == "q1"
        assert by_code["EQ002"].catalog_ref == "cat-eq002"
        assert by_code["EQ002"].quoted_item_id is None
        assert by_code["EQ003"].catalog_ref is None

    def test_quoted_code_without_catalog_entry_is_new(self, verifier, gateway):
        """Should require catalog presence for the quoted state."""
        gateway.groups = [
            QuotedItemFactory.group([QuotedItemFactory.create(code="EQ050", id="q50")])
        ]

        result = verifier.verify_existence([ImportRowFactory.create(code="EQ050")], "project-1")

        assert result.rows[0].state == RowState.NEW
        assert result.rows[0].quoted_item_id is None

    def test_code_comparison_is_case_insensitive(self, verifier, gateway):
        """Should treat 'eq001 ' and 'EQ001' as the same code."""
        gateway.catalog = {"eq001": catalog_entry("EQ001")}
        gateway.groups = [
            QuotedItemFactory.group([QuotedItemFactory.create(code="EQ001", id="q1")])
        ]

        result = verifier.verify_existence([ImportRowFactory.create(code="eq001 ")], "project-1")

        assert result.rows[0].state == RowState.QUOTED

    def test_catalog_category_is_recorded(self, verifier, three_state_rows):
        """Should keep the catalog's category for mismatch warnings."""
        result = verifier.verify_existence(three_state_rows, "project-1")

        assert result.rows[1].catalog_category == "Motores"
        assert result.rows[1].category_mismatch is True
        assert result.rows[0].category_mismatch is False

    def test_verification_is_idempotent(self, verifier, three_state_rows):
        """Should produce the same result for the same inputs and storage."""
        first = verifier.verify_existence(three_state_rows, "project-1")
        second = verifier.verify_existence(three_state_rows, "project-1")

        assert first == second

    def test_verification_writes_nothing(self, verifier, gateway, three_state_rows):
        """Should only issue read calls."""
        verifier.verify_existence(three_state_rows, "project-1")

        assert gateway.call_names(mutating_only=True) == []

    def test_supplied_quotation_is_not_refetched(self, verifier, gateway, three_state_rows):
        """Should reuse a quotation snapshot passed by the caller."""
        verifier.verify_existence(three_state_rows, "project-1", quoted_groups=gateway.groups)

        assert "fetch_quoted_items" not in gateway.call_names()


# ===================
# ERRORS
# ===================

class TestRowErrors:
    """Tests for per-row lookup failures."""

    def test_failed_lookup_is_recorded_per_row(self, verifier, gateway, three_state_rows):
        """Should record the failing row and keep verifying the others."""
        gateway.lookup_errors = {"eq002"}

        result = verifier.verify_existence(three_state_rows, "project-1")

        assert result.has_errors is True
        assert len(result.errors) == 1
        assert result.errors[0].row_index == 1
        assert result.errors[0].code == "EQ002"
        assert [row.code for row in result.rows] == ["EQ001", "EQ003"]

    def test_raise_for_errors_lists_every_error(self, verifier, gateway, three_state_rows):
        """Should surface all row errors in one exception."""
        gateway.lookup_errors = {"eq001", "eq003"}
        result = verifier.verify_existence(three_state_rows, "project-1")

        with pytest.raises(VerificationError) as exc_info:
            raise_for_errors(result)

        assert len(exc_info.value.errors) == 2
        assert exc_info.value.status_code == 422
        assert exc_info.value.code == "VERIFICATION_FAILED"

    def test_raise_for_errors_passes_clean_result(self, verifier, three_state_rows):
        """Should do nothing when every row verified."""
        result = verifier.verify_existence(three_state_rows, "project-1")

        raise_for_errors(result)


# ===================
# CATALOG PAYLOADS
# ===================

class TestCatalogPayloads:
    """Tests for catalog entry data derived from new rows."""

    def test_new_rows_get_payloads(self, verifier, three_state_rows):
        """Should prepare a payload for every new row only."""
        result = verifier.verify_existence(three_state_rows, "project-1")

        assert [p.code for p in result.catalog_payloads] == ["EQ003"]

    def test_empty_fields_use_defaults(self):
        """Should fill category, unit and brand with placeholders."""
        row = ImportRowFactory.create(code="EQ010", category="", unit="", brand="")

        payload = build_catalog_payload(row)

        assert payload.category == settings.default_category
        assert payload.unit == settings.default_unit
        assert payload.brand == settings.default_brand

    def test_filled_fields_are_kept(self):
        """Should copy row values when present."""
        row = ImportRowFactory.create(code="EQ010", category="Bombas", unit="KG", brand="Siemens")

        payload = build_catalog_payload(row)

        assert (payload.category, payload.unit, payload.brand) == ("Bombas", "KG", "Siemens")

    def test_temporary_codes_get_no_payload(self, verifier):
        """Should never prepare catalog entries for TEMP- codes."""
        rows = [ImportRowFactory.create(code="TEMP-001"), ImportRowFactory.create(code="temp-abc")]

        result = verifier.verify_existence(rows, "project-1")

        assert result.new_count == 2
        assert result.catalog_payloads == []

    @pytest.mark.parametrize("code,expected", [
        ("TEMP-001", True),
        ("  temp-9", True),
        ("TEMPORAL", False),
        ("EQ-TEMP-1", False),
    ])
    def test_is_temporary_code(self, code, expected):
        """Should only match the TEMP- prefix."""
        assert is_temporary_code(code) is expected


# ===================
# DUPLICATES
# ===================

class TestDuplicateDetector:
    """Tests for find_duplicate_codes()"""

    def test_repeated_codes_are_reported(self):
        """Should report codes appearing more than once, normalized."""
        rows = [
            ImportRowFactory.create(code="EQ002"),
            ImportRowFactory.create(code="eq002"),
            ImportRowFactory.create(code="EQ003"),
        ]

        assert find_duplicate_codes(rows) == {"eq002"}

    def test_unique_codes_report_nothing(self):
        """Should return an empty set for a file without repeats."""
        assert find_duplicate_codes(ImportRowFactory.create_batch(4)) == set()

    def test_works_on_verified_rows(self):
        """Should accept verified rows as well."""
        rows = [
            VerifiedRowFactory.create(code="EQ009"),
            VerifiedRowFactory.create(code="EQ009", state=RowState.CATALOG_ONLY),
        ]

        assert find_duplicate_codes(rows) == {"eq009"}
