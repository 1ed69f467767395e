"""
Institution service for lookup and creation by natural key.

Institutions are matched on name_key (see utils/text_utils.py), which has a
unique index in the database.
"""

from typing import Optional
import structlog
from postgrest.exceptions import APIError

from config import get_supabase_client
from models.catalog import InstitutionCreate, InstitutionResponse
from exceptions import DatabaseError, InstitutionNotFoundError, PersistenceConflictError

logger = structlog.get_logger(__name__)

UNIQUE_VIOLATION = "23505"
LOOKUP_CHUNK_SIZE = 100


class InstitutionService:
    """
    Institution persistence.

    Bulk lookups by natural key, bulk inserts, and deletes used to undo
    an aborted import.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "institutions"

    def get_by_id(self, institution_id: str) -> InstitutionResponse:
        """
        Get a single institution.

        Raises:
            InstitutionNotFoundError: If no institution has this id
            DatabaseError: If the query fails
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", institution_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_institution_failed", institution_id=institution_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise InstitutionNotFoundError(institution_id)

        return self._row_to_response(result.data[0])

    def find_by_keys(self, name_keys: list[str]) -> dict[str, InstitutionResponse]:
        """
        Find institutions by natural key.

        Args:
            name_keys: Normalized names to look up

        Returns:
            Dict of name_key → institution for the keys that exist
        """
        keys = list(dict.fromkeys(k for k in name_keys if k))
        if not keys:
            return {}

        found: dict[str, InstitutionResponse] = {}
        try:
            for i in range(0, len(keys), LOOKUP_CHUNK_SIZE):
                chunk = keys[i:i + LOOKUP_CHUNK_SIZE]
                result = (
                    self.db.table(self.table)
                    .select("*")
                    .in_("name_key", chunk)
                    .execute()
                )
                for row in result.data or []:
                    found[row["name_key"]] = self._row_to_response(row)
        except Exception as e:
            logger.error("find_institutions_failed", keys=len(keys), error=str(e))
            raise DatabaseError("select", str(e))

        logger.debug("institutions_found", requested=len(keys), found=len(found))
        return found

    def create_many(self, items: list[InstitutionCreate]) -> list[InstitutionResponse]:
        """
        Insert institutions in a single request.

        A single insert either stores every row or none.

        Returns:
            Created institutions, in input order

        Raises:
            PersistenceConflictError: If a name_key was inserted concurrently
            DatabaseError: If the insert fails for any other reason
        """
        if not items:
            return []

        rows = [{"name": item.name, "name_key": item.name_key} for item in items]

        try:
            result = self.db.table(self.table).insert(rows).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.warning("institution_insert_conflict", count=len(rows), error=e.message)
                raise PersistenceConflictError("Institution", [item.name for item in items])
            logger.error("create_institutions_failed", count=len(rows), error=str(e))
            raise DatabaseError("insert", str(e))
        except Exception as e:
            logger.error("create_institutions_failed", count=len(rows), error=str(e))
            raise DatabaseError("insert", str(e))

        created = [self._row_to_response(row) for row in result.data]
        logger.info("institutions_created", count=len(created))
        return created

    def delete_many(self, institution_ids: list[str]) -> None:
        """Delete institutions by id."""
        if not institution_ids:
            return

        try:
            self.db.table(self.table).delete().in_("id", institution_ids).execute()
        except Exception as e:
            logger.error("delete_institutions_failed", count=len(institution_ids), error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("institutions_deleted", count=len(institution_ids))

    def _row_to_response(self, row: dict) -> InstitutionResponse:
        """Convert database row to InstitutionResponse."""
        return InstitutionResponse(
            id=row["id"],
            name=row["name"],
            name_key=row["name_key"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


# Singleton instance
_institution_service: Optional[InstitutionService] = None


def get_institution_service() -> InstitutionService:
    """Get or create InstitutionService instance."""
    global _institution_service
    if _institution_service is None:
        _institution_service = InstitutionService()
    return _institution_service
