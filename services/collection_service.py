"""
Collection service.

A collection is identified by (institution_id, name_key): the same name may
exist once under every institution.
"""

from typing import Optional
import structlog
from postgrest.exceptions import APIError

from config import get_supabase_client
from models.catalog import CollectionCreate, CollectionResponse
from exceptions import CollectionNotFoundError, DatabaseError, PersistenceConflictError
from services.institution_service import LOOKUP_CHUNK_SIZE, UNIQUE_VIOLATION

logger = structlog.get_logger(__name__)

CollectionKey = tuple[str, str]  # (institution_id, name_key)


class CollectionService:
    """Collection persistence and read-side queries."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "collections"

    def get_by_id(self, collection_id: str) -> CollectionResponse:
        """
        Get a single collection.

        Raises:
            CollectionNotFoundError: If no collection has this id
            DatabaseError: If the query fails
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", collection_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_collection_failed", collection_id=collection_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise CollectionNotFoundError(collection_id)

        return self._row_to_response(result.data[0])

    def list_all(self, institution_id: Optional[str] = None) -> list[CollectionResponse]:
        """
        List collections, optionally for one institution.

        Returns:
            Collections ordered by name
        """
        try:
            query = self.db.table(self.table).select("*")
            if institution_id:
                query = query.eq("institution_id", institution_id)
            result = query.order("name").execute()
        except Exception as e:
            logger.error("list_collections_failed", error=str(e))
            raise DatabaseError("select", str(e))

        return [self._row_to_response(row) for row in result.data or []]

    def find_by_keys(self, keys: list[CollectionKey]) -> dict[CollectionKey, CollectionResponse]:
        """
        Find collections by (institution_id, name_key).

        Queries by both columns and keeps only the exact pairs asked for.

        Returns:
            Dict of key → collection for the keys that exist
        """
        wanted = set(k for k in keys if k[0] and k[1])
        if not wanted:
            return {}

        institution_ids = sorted({k[0] for k in wanted})
        name_keys = sorted({k[1] for k in wanted})

        found: dict[CollectionKey, CollectionResponse] = {}
        try:
            for i in range(0, len(institution_ids), LOOKUP_CHUNK_SIZE):
                id_chunk = institution_ids[i:i + LOOKUP_CHUNK_SIZE]
                for j in range(0, len(name_keys), LOOKUP_CHUNK_SIZE):
                    key_chunk = name_keys[j:j + LOOKUP_CHUNK_SIZE]
                    result = (
                        self.db.table(self.table)
                        .select("*")
                        .in_("institution_id", id_chunk)
                        .in_("name_key", key_chunk)
                        .execute()
                    )
                    for row in result.data or []:
                        key = (row["institution_id"], row["name_key"])
                        if key in wanted:
                            found[key] = self._row_to_response(row)
        except Exception as e:
            logger.error("find_collections_failed", keys=len(wanted), error=str(e))
            raise DatabaseError("select", str(e))

        logger.debug("collections_found", requested=len(wanted), found=len(found))
        return found

    def create_many(self, items: list[CollectionCreate]) -> list[CollectionResponse]:
        """
        Insert collections in a single request.

        Raises:
            PersistenceConflictError: If a (institution_id, name_key) was inserted concurrently
            DatabaseError: If the insert fails for any other reason
        """
        if not items:
            return []

        rows = [
            {
                "name": item.name,
                "name_key": item.name_key,
                "institution_id": item.institution_id,
                "latitude": item.latitude,
                "longitude": item.longitude,
                "description": item.description,
                "url": item.url,
            }
            for item in items
        ]

        try:
            result = self.db.table(self.table).insert(rows).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.warning("collection_insert_conflict", count=len(rows), error=e.message)
                raise PersistenceConflictError("Collection", [item.name for item in items])
            logger.error("create_collections_failed", count=len(rows), error=str(e))
            raise DatabaseError("insert", str(e))
        except Exception as e:
            logger.error("create_collections_failed", count=len(rows), error=str(e))
            raise DatabaseError("insert", str(e))

        created = [self._row_to_response(row) for row in result.data]
        logger.info("collections_created", count=len(created))
        return created

    def institution_ids_in_use(self, institution_ids: list[str]) -> set[str]:
        """
        Which of these institutions own at least one collection.

        Raises:
            DatabaseError: If the query fails
        """
        if not institution_ids:
            return set()

        try:
            result = (
                self.db.table(self.table)
                .select("institution_id")
                .in_("institution_id", institution_ids)
                .execute()
            )
        except Exception as e:
            logger.error("institution_references_failed", count=len(institution_ids), error=str(e))
            raise DatabaseError("select", str(e))

        return {row["institution_id"] for row in result.data or []}

    def _row_to_response(self, row: dict) -> CollectionResponse:
        """Convert database row to CollectionResponse."""
        return CollectionResponse(
            id=row["id"],
            name=row["name"],
            name_key=row["name_key"],
            institution_id=row["institution_id"],
            latitude=row.get("latitude"),
            longitude=row.get("longitude"),
            description=row.get("description"),
            url=row.get("url"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


# Singleton instance
_collection_service: Optional[CollectionService] = None


def get_collection_service() -> CollectionService:
    """Get or create CollectionService instance."""
    global _collection_service
    if _collection_service is None:
        _collection_service = CollectionService()
    return _collection_service


def collections_to_geojson(collections: list[CollectionResponse]) -> dict:
    """
    Build a GeoJSON FeatureCollection of the geolocated collections.

    Collections without coordinates are left out.
    """
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {
                    "type": "Point",
                    "coordinates": [c.longitude, c.latitude],
                },
                "properties": {
                    "collectionId": c.id,
                    "collectionName": c.name,
                    "institutionId": c.institution_id,
                },
            }
            for c in collections
            if c.has_geolocation
        ],
    }
