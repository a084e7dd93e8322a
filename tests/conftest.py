"""
Shared test fixtures.
"""

import os
import sys
from pathlib import Path

# Add project root to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings require Supabase credentials at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import pytest
from unittest.mock import patch
from datetime import datetime
from typing import Generator, Optional

from models.equipment_import import (
    CatalogEntry,
    CatalogEntryPayload,
    EquipmentGroup,
    ImportRow,
    LinkedOverride,
    ReplacementPayload,
)
from services.persistence_gateway import PersistenceGateway
from utils.text_utils import normalize_code


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """
    Mock Supabase query builder with chainable methods.

    Filters are recorded, not applied: tests configure exactly the rows
    a query should see.
    """

    def __init__(self, client: "MockSupabaseClient", table: str, data: list = None, count: int = None):
        self._client = client
        self._table = table
        self._data = data or []
        self._count = count
        self._operation = "select"
        self._payload = None
        self._filters: list[tuple] = []

    def select(self, *args, **kwargs):
        return self

    def insert(self, data):
        # Simulate insert - add ids and timestamps
        if isinstance(data, dict):
            data = [data]
        rows = []
        for item in data:
            row = dict(item)
            row["id"] = f"{self._table}-{self._client.next_id()}"
            row["created_at"] = datetime.utcnow().isoformat() + "Z"
            rows.append(row)
        self._operation = "insert"
        self._payload = rows
        self._data = rows
        return self

    def update(self, data):
        self._operation = "update"
        self._payload = data
        return self

    def eq(self, column, value):
        self._filters.append(("eq", column, value))
        return self

    def in_(self, column, values):
        self._filters.append(("in", column, list(values)))
        return self

    def ilike(self, column, pattern):
        self._filters.append(("ilike", column, pattern))
        return self

    def order(self, column, **kwargs):
        return self

    def limit(self, count):
        return self

    def execute(self) -> MockSupabaseResponse:
        self._client.log.append((self._table, self._operation, self._payload, self._filters))
        if self._operation == "update":
            return MockSupabaseResponse(data=[self._payload])
        return MockSupabaseResponse(
            data=self._data,
            count=self._count if self._count is not None else len(self._data)
        )


class MockSupabaseTable:
    """Mock Supabase table with configurable responses."""

    def __init__(self, client: "MockSupabaseClient", name: str, data: list = None, count: int = None):
        self._client = client
        self._name = name
        self._data = data or []
        self._count = count

    def _query(self) -> MockSupabaseQuery:
        return MockSupabaseQuery(self._client, self._name, [dict(r) for r in self._data], self._count)

    def select(self, *args, **kwargs):
        return self._query()

    def insert(self, data):
        return self._query().insert(data)

    def update(self, data):
        return self._query().update(data)


class MockSupabaseClient:
    """Mock Supabase client that records every executed operation."""

    def __init__(self):
        self._tables = {}
        self._counter = 0
        self.log: list[tuple] = []

    def next_id(self) -> int:
        self._counter += 1
        return self._counter

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure mock data for a table."""
        self._tables[table_name] = {"data": data, "count": count}

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        config = self._tables.get(name, {"data": [], "count": None})
        return MockSupabaseTable(self, name, config["data"], config["count"])

    def operations(self, table: str, operation: str) -> list[tuple]:
        """Executed (payload, filters) pairs for a table and operation."""
        return [
            (payload, filters)
            for t, op, payload, filters in self.log
            if t == table and op == operation
        ]


# ===================
# IN-MEMORY GATEWAY
# ===================

class InMemoryGateway(PersistenceGateway):
    """
    Persistence gateway kept in dictionaries.

    Records every call in self.calls as (method, kwargs). Methods named
    in fail_on raise RuntimeError; codes in lookup_errors make
    find_catalog_entry fail for that row.
    """

    def __init__(
        self,
        catalog: Optional[list[CatalogEntry]] = None,
        groups: Optional[list[EquipmentGroup]] = None
    ):
        self.catalog = {normalize_code(e.code): e for e in (catalog or [])}
        self.groups = groups or []
        self.calls: list[tuple[str, dict]] = []
        self.fail_on: set[str] = set()
        self.lookup_errors: set[str] = set()
        self.list_items: dict[str, dict] = {}

    def _record(self, method: str, **kwargs):
        self.calls.append((method, kwargs))
        if method in self.fail_on:
            raise RuntimeError(f"{method} unavailable")

    def call_names(self, mutating_only: bool = False) -> list[str]:
        names = [name for name, _ in self.calls]
        if mutating_only:
            names = [n for n in names if n not in ("find_catalog_entry", "fetch_quoted_items")]
        return names

    def find_catalog_entry(self, code: str, description: str = "") -> Optional[CatalogEntry]:
        self._record("find_catalog_entry", code=code, description=description)
        if normalize_code(code) in self.lookup_errors:
            raise RuntimeError(f"lookup failed for {code}")
        return self.catalog.get(normalize_code(code))

    def fetch_quoted_items(self, project_id: str) -> list[EquipmentGroup]:
        self._record("fetch_quoted_items", project_id=project_id)
        return self.groups

    def create_catalog_entries(self, payloads: list[CatalogEntryPayload]) -> int:
        self._record("create_catalog_entries", payloads=payloads)
        created = 0
        for payload in payloads:
            key = normalize_code(payload.code)
            if key not in self.catalog:
                self.catalog[key] = CatalogEntry(
                    id=f"cat-{key}",
                    code=payload.code,
                    description=payload.description,
                    category=payload.category,
                    unit=payload.unit,
                    brand=payload.brand,
                )
                created += 1
        return created

    def _upsert(self, code: str, **fields):
        item = self.list_items.setdefault(normalize_code(code), {"code": code})
        item.update(fields)

    def import_linked(self, list_id: str, quoted_item_ids: list[str], overrides: list[LinkedOverride]) -> None:
        self._record("import_linked", list_id=list_id, quoted_item_ids=quoted_item_ids, overrides=overrides)
        for override in overrides:
            self._upsert(override.code, quantity=override.quantity, quoted_item_id=override.quoted_item_id)

    def import_replacement(self, list_id: str, group_id: str, replacements: list[ReplacementPayload], actor_id) -> None:
        self._record("import_replacement", list_id=list_id, group_id=group_id, replacements=replacements, actor_id=actor_id)
        for r in replacements:
            self._upsert(r.row.code, quantity=r.row.quantity, replaces=r.quoted_item_id, motive=r.motive)

    def import_from_catalog(self, list_id: str, group_id: str, catalog_ids: list[str], quantities: dict, actor_id) -> None:
        self._record("import_from_catalog", list_id=list_id, group_id=group_id, catalog_ids=catalog_ids, quantities=quantities, actor_id=actor_id)
        by_id = {e.id: e for e in self.catalog.values()}
        for catalog_id in catalog_ids:
            self._upsert(by_id[catalog_id].code, quantity=quantities[catalog_id], catalog_id=catalog_id)

    def import_direct(self, list_id: str, group_id: str, rows: list[ImportRow], actor_id) -> None:
        self._record("import_direct", list_id=list_id, group_id=group_id, rows=rows, actor_id=actor_id)
        for row in rows:
            self._upsert(row.code, quantity=row.quantity)

    def last_call(self, method: str) -> dict:
        for name, kwargs in reversed(self.calls):
            if name == method:
                return kwargs
        raise AssertionError(f"{method} was not called")


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("catalog_equipment", [
                {"id": "1", "code": "EQ001", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("catalog_equipment", [...])
            # Now SupabaseGateway() gets the mock
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.supabase_gateway.get_supabase_client", return_value=mock_supabase):
            yield mock_supabase


@pytest.fixture
def gateway() -> InMemoryGateway:
    """Empty in-memory gateway; tests fill catalog and groups."""
    return InMemoryGateway()


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_gateway(gateway):
    """
    FastAPI test client whose reconciliation service uses the in-memory gateway.

    Usage:
        def test_endpoint(test_client_with_gateway, gateway):
            gateway.groups = [...]
            response = test_client_with_gateway.post(...)
    """
    from fastapi.testclient import TestClient
    from main import app
    from services.reconciliation_service import ReconciliationService

    service = ReconciliationService(gateway)
    with patch("routes.equipment_import.get_reconciliation_service", return_value=service):
        with patch("main.check_connection", return_value={"status": "unhealthy", "error": "test"}):
            yield TestClient(app)
