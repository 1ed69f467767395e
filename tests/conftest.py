"""
Shared test fixtures.
"""

import os
import sys
from pathlib import Path

# Add project root to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are read at import time; tests never reach a real project
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import pytest
from copy import deepcopy
from datetime import datetime, timezone
from typing import Generator, Optional
from unittest.mock import patch
from uuid import uuid4

from postgrest.exceptions import APIError


# ===================
# FAKE SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """
    Chainable query over an in-memory table.

    Filters are applied on execute(), so eq/in_ narrow selects and deletes
    the way PostgREST does.
    """

    def __init__(self, table: "MockSupabaseTable", action: str = "select", payload=None):
        self._table = table
        self._action = action
        self._payload = payload
        self._filters = []
        self._order: Optional[tuple[str, bool]] = None
        self._limit: Optional[int] = None

    def select(self, *args, **kwargs):
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> MockSupabaseResponse:
        self._table.calls.append(self._action)

        if self._action == "insert":
            return MockSupabaseResponse(data=self._table.insert_rows(self._payload))

        if self._action == "delete":
            if self._table.fail_on_delete is not None:
                raise self._table.fail_on_delete
            deleted = [row for row in self._table.rows if self._matches(row)]
            self._table.rows = [row for row in self._table.rows if not self._matches(row)]
            return MockSupabaseResponse(data=deepcopy(deleted))

        rows = [deepcopy(row) for row in self._table.rows if self._matches(row)]
        count = len(rows)
        if self._order:
            column, desc = self._order
            rows.sort(key=lambda row: row.get(column) or "", reverse=desc)
        if self._limit is not None:
            rows = rows[:self._limit]
        return MockSupabaseResponse(data=rows, count=count)


class MockSupabaseTable:
    """In-memory table with optional unique constraints and fault injection."""

    def __init__(self, rows: list = None, unique: tuple = ()):
        self.rows: list[dict] = [deepcopy(row) for row in rows or []]
        self.unique: tuple[tuple[str, ...], ...] = unique
        self.calls: list[str] = []
        self.fail_on_insert: Optional[Exception] = None
        self.fail_on_delete: Optional[Exception] = None

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self, "select")

    def insert(self, data):
        return MockSupabaseQuery(self, "insert", data)

    def delete(self):
        return MockSupabaseQuery(self, "delete")

    def insert_rows(self, data) -> list[dict]:
        """Insert all rows or none, enforcing unique constraints."""
        if self.fail_on_insert is not None:
            error, self.fail_on_insert = self.fail_on_insert, None
            raise error

        new_rows = [dict(data)] if isinstance(data, dict) else [dict(row) for row in data]

        for columns in self.unique:
            seen = {tuple(row.get(c) for c in columns) for row in self.rows}
            for row in new_rows:
                key = tuple(row.get(c) for c in columns)
                if key in seen:
                    raise APIError({
                        "message": f"duplicate key value violates unique constraint on {columns}",
                        "code": "23505",
                        "hint": None,
                        "details": None,
                    })
                seen.add(key)

        now = datetime.now(timezone.utc).isoformat()
        for row in new_rows:
            row.setdefault("id", str(uuid4()))
            row.setdefault("created_at", now)
            row.setdefault("updated_at", now)
        self.rows.extend(new_rows)
        return deepcopy(new_rows)


class MockSupabaseClient:
    """Mock Supabase client holding named in-memory tables."""

    def __init__(self):
        self._tables: dict[str, MockSupabaseTable] = {}

    def set_table_data(self, table_name: str, data: list, unique: tuple = ()):
        """Configure rows (and unique constraints) for a table."""
        self._tables[table_name] = MockSupabaseTable(data, unique or self._unique_for(table_name))

    def rows(self, table_name: str) -> list[dict]:
        """Current rows of a table."""
        return self.table(table_name).rows

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table, creating it empty on first use."""
        if name not in self._tables:
            self._tables[name] = MockSupabaseTable(unique=self._unique_for(name))
        return self._tables[name]

    @staticmethod
    def _unique_for(name: str) -> tuple:
        # Mirrors the unique indexes of the catalog schema
        return {
            "institutions": (("name_key",),),
            "collections": (("institution_id", "name_key"),),
        }.get(name, ())


# ===================
# FIXTURES
# ===================

@pytest.fixture(autouse=True)
def clear_tmp_uploads():
    """Start every test with an empty upload store."""
    from services import tmp_upload_service

    tmp_upload_service.clear()
    yield
    tmp_upload_service.clear()


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("institutions", [
                {"id": "1", "name": "Smith College", "name_key": "smith college"}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase, monkeypatch) -> Generator:
    """
    Patch the database client with mock and reset service singletons.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("institutions", [...])
            # Now any service built here gets the mock
    """
    import services.institution_service as institution_module
    import services.collection_service as collection_module
    import services.resolve_service as resolve_module
    import services.upload_service as upload_module

    monkeypatch.setattr(institution_module, "_institution_service", None)
    monkeypatch.setattr(collection_module, "_collection_service", None)
    monkeypatch.setattr(resolve_module, "_resolve_service", None)
    monkeypatch.setattr(upload_module, "_upload_service", None)

    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.institution_service.get_supabase_client", return_value=mock_supabase):
            with patch("services.collection_service.get_supabase_client", return_value=mock_supabase):
                yield mock_supabase


@pytest.fixture
def upload_service(mock_db):
    """UploadService wired to the mock database, lenient mapping."""
    from services.upload_service import UploadService
    from services.resolve_service import ResolveService
    from services.institution_service import InstitutionService
    from services.collection_service import CollectionService

    resolver = ResolveService(InstitutionService(), CollectionService())
    return UploadService(resolve_service=resolver, strict=False)


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with mocked database.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_supabase):
            response = test_client_with_mock_db.post("/api/uploads", files=...)
    """
    from fastapi.testclient import TestClient
    from main import app

    yield TestClient(app)
