"""
Unit tests for ResolveService.

Run: pytest tests/unit/test_resolve_service.py -v
"""

import pytest
from unittest.mock import patch
from postgrest.exceptions import APIError

from services.collection_service import CollectionService
from services.header_mapping_service import CandidateRecord, Geolocation
from services.institution_service import InstitutionService
from services.resolve_service import ResolveService
from exceptions import DatabaseError, PersistenceConflictError
from tests.factories import CollectionFactory, InstitutionFactory


def candidate(row, institution, collection, **kwargs) -> CandidateRecord:
    return CandidateRecord(row=row, institution_name=institution, collection_name=collection, **kwargs)


@pytest.fixture
def resolver(mock_db):
    return ResolveService(InstitutionService(), CollectionService())


class TestResolveDedup:
    """Natural-key deduplication."""

    def test_case_variants_share_one_institution(self, resolver, mock_supabase):
        """Smith College and smith college resolve to one record, first spelling wins."""
        # Act
        result = resolver.resolve([
            candidate(1, "Smith College", "Botanicals"),
            candidate(2, "smith college", "Herbarium"),
        ])

        # Assert
        assert [i.name for i in result.institutions] == ["Smith College"]
        assert [c.name for c in result.collections] == ["Botanicals", "Herbarium"]
        assert result.institutions_created == 1
        assert result.collections_created == 2
        institution_id = result.institutions[0].id
        assert all(c.institution_id == institution_id for c in result.collections)
        assert len(mock_supabase.rows("institutions")) == 1

    def test_existing_institution_reused(self, resolver, mock_supabase):
        """Should reuse the stored record and keep its stored spelling."""
        mock_supabase.set_table_data("institutions", [
            InstitutionFactory.create(id="inst-1", name="Smith College"),
        ])

        result = resolver.resolve([candidate(1, "SMITH  COLLEGE", "Botanicals")])

        assert result.institutions[0].id == "inst-1"
        assert result.institutions[0].name == "Smith College"
        assert result.institutions_created == 0
        assert mock_supabase.table("institutions").calls == ["select"]

    def test_same_collection_name_under_two_institutions(self, resolver, mock_supabase):
        """Archive under two institutions is two collections."""
        result = resolver.resolve([
            candidate(1, "Smith College", "Archive"),
            candidate(2, "Amherst College", "Archive"),
        ])

        assert result.collections_created == 2
        assert len({c.institution_id for c in result.collections}) == 2

    def test_duplicate_rows_collapse_first_fields_win(self, resolver, mock_supabase):
        """Repeated rows create one collection with the first row's fields."""
        result = resolver.resolve([
            candidate(1, "Smith College", "Botanicals", description="first",
                      geolocation=Geolocation(42.3, -72.6)),
            candidate(2, "Smith College", "BOTANICALS", description="second"),
        ])

        assert result.collections_created == 1
        stored = mock_supabase.rows("collections")[0]
        assert stored["name"] == "Botanicals"
        assert stored["description"] == "first"
        assert stored["latitude"] == 42.3

    def test_resolving_twice_is_idempotent(self, resolver, mock_supabase):
        """A second identical batch creates nothing."""
        batch = [
            candidate(1, "Smith College", "Botanicals"),
            candidate(2, "Smith College", "Herbarium"),
        ]
        first = resolver.resolve(batch)

        second = resolver.resolve(batch)

        assert second.institutions_created == 0
        assert second.collections_created == 0
        assert [i.id for i in second.institutions] == [i.id for i in first.institutions]
        assert [c.id for c in second.collections] == [c.id for c in first.collections]
        assert len(mock_supabase.rows("institutions")) == 1
        assert len(mock_supabase.rows("collections")) == 2

    def test_existing_collection_reused(self, resolver, mock_supabase):
        mock_supabase.set_table_data("institutions", [
            InstitutionFactory.create(id="inst-1", name="Smith College"),
        ])
        mock_supabase.set_table_data("collections", [
            CollectionFactory.create(institution_id="inst-1", id="coll-1", name="Botanicals"),
        ])

        result = resolver.resolve([candidate(1, "Smith College", "botanicals")])

        assert [c.id for c in result.collections] == ["coll-1"]
        assert result.collections_created == 0

    def test_empty_batch(self, resolver, mock_supabase):
        result = resolver.resolve([])

        assert result.institutions == []
        assert result.collections == []


class TestResolveFailures:
    """All-or-nothing behavior."""

    def test_conflict_on_institution_insert(self, resolver, mock_supabase):
        """A concurrent insert of the same key surfaces as a conflict."""
        mock_supabase.table("institutions").fail_on_insert = APIError({
            "message": "duplicate key value violates unique constraint",
            "code": "23505", "hint": None, "details": None,
        })

        with pytest.raises(PersistenceConflictError):
            resolver.resolve([candidate(1, "Smith College", "Botanicals")])

        assert mock_supabase.rows("collections") == []

    def test_collection_failure_rolls_back_new_institutions(self, resolver, mock_supabase):
        """Institutions created by the batch are removed if collections fail."""
        # Arrange
        mock_supabase.set_table_data("institutions", [
            InstitutionFactory.create(id="inst-old", name="Amherst College"),
        ])
        mock_supabase.table("collections").fail_on_insert = RuntimeError("connection reset")

        # Act
        with pytest.raises(DatabaseError):
            resolver.resolve([
                candidate(1, "Smith College", "Botanicals"),
                candidate(2, "Amherst College", "Archive"),
            ])

        # Assert
        assert [r["id"] for r in mock_supabase.rows("institutions")] == ["inst-old"]
        assert mock_supabase.rows("collections") == []

    def test_collection_conflict_rolls_back_and_reraises(self, resolver, mock_supabase):
        mock_supabase.table("collections").fail_on_insert = APIError({
            "message": "duplicate key value violates unique constraint",
            "code": "23505", "hint": None, "details": None,
        })

        with pytest.raises(PersistenceConflictError):
            resolver.resolve([candidate(1, "Smith College", "Botanicals")])

        assert mock_supabase.rows("institutions") == []

    def test_failed_rollback_keeps_original_error(self, resolver, mock_supabase):
        mock_supabase.table("collections").fail_on_insert = RuntimeError("connection reset")
        mock_supabase.table("institutions").fail_on_delete = RuntimeError("still down")

        with pytest.raises(DatabaseError) as exc_info:
            resolver.resolve([candidate(1, "Smith College", "Botanicals")])

        assert "connection reset" in exc_info.value.message

    def test_rollback_keeps_institution_another_batch_uses(self, resolver, mock_supabase):
        """A new institution that a concurrent batch already filled is not deleted."""
        # Arrange: a concurrent batch reuses the just-inserted Smith College,
        # commits its collection, and makes ours lose the race
        def concurrent_commit_then_conflict(items):
            smith_id = items[0].institution_id
            mock_supabase.table("collections").insert_rows([
                CollectionFactory.create(institution_id=smith_id, name="Botanicals"),
            ])
            raise PersistenceConflictError("Collection", [item.name for item in items])

        # Act
        with patch.object(
            resolver.collection_service,
            "create_many",
            side_effect=concurrent_commit_then_conflict,
        ):
            with pytest.raises(PersistenceConflictError):
                resolver.resolve([
                    candidate(1, "Smith College", "Botanicals"),
                    candidate(2, "Amherst College", "Archive"),
                ])

        # Assert: Smith College survives for the other batch, Amherst is undone
        institutions = mock_supabase.rows("institutions")
        assert [r["name"] for r in institutions] == ["Smith College"]
        assert mock_supabase.rows("collections")[0]["institution_id"] == institutions[0]["id"]
