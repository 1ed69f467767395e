"""
Dedup/resolve service.

Turns mapped candidate rows into institution and collection records,
reusing existing records with the same natural key and creating the rest.

Within one batch, rows are resolved in order through an identity map, so
two rows naming the same new institution get the same record and the first
row's spelling and auxiliary fields win.

A batch is all-or-nothing: new institutions go in one insert, new
collections in a second, and if the second fails the institutions created
by the first are deleted again, except those a concurrent batch has already
attached collections to.
"""

from dataclasses import dataclass, field
from typing import Optional
import structlog

from models.catalog import (
    CollectionCreate,
    CollectionResponse,
    InstitutionCreate,
    InstitutionResponse,
)
from services.collection_service import CollectionKey, CollectionService, get_collection_service
from services.header_mapping_service import CandidateRecord
from services.institution_service import InstitutionService, get_institution_service
from utils.text_utils import normalize_name_key

logger = structlog.get_logger(__name__)


@dataclass
class ResolveResult:
    """Records touched by a batch, in first-seen order."""
    institutions: list[InstitutionResponse] = field(default_factory=list)
    collections: list[CollectionResponse] = field(default_factory=list)
    institutions_created: int = 0
    collections_created: int = 0


class ResolveService:
    """
    Resolves candidate rows to catalog records.

    Depends only on the institution and collection services, never on a
    database client.
    """

    def __init__(
        self,
        institution_service: Optional[InstitutionService] = None,
        collection_service: Optional[CollectionService] = None,
    ):
        self.institution_service = institution_service or get_institution_service()
        self.collection_service = collection_service or get_collection_service()

    def resolve(self, candidates: list[CandidateRecord]) -> ResolveResult:
        """
        Resolve every candidate, in order.

        Args:
            candidates: Output of the header mapping, in row order

        Returns:
            ResolveResult with every institution and collection touched

        Raises:
            PersistenceConflictError: If a concurrent commit created the same key
            DatabaseError: If a lookup or insert fails
        """
        if not candidates:
            return ResolveResult()

        institutions_by_key, created_institutions = self._resolve_institutions(candidates)

        try:
            collections_by_key, created_collections = self._resolve_collections(
                candidates, institutions_by_key
            )
        except Exception:
            self._rollback_institutions(created_institutions)
            raise

        result = ResolveResult(
            institutions_created=len(created_institutions),
            collections_created=len(created_collections),
        )

        seen_institutions: set[str] = set()
        seen_collections: set[CollectionKey] = set()
        for candidate in candidates:
            institution = institutions_by_key[normalize_name_key(candidate.institution_name)]
            if institution.id not in seen_institutions:
                seen_institutions.add(institution.id)
                result.institutions.append(institution)

            key = (institution.id, normalize_name_key(candidate.collection_name))
            if key not in seen_collections:
                seen_collections.add(key)
                result.collections.append(collections_by_key[key])

        logger.info(
            "candidates_resolved",
            rows=len(candidates),
            institutions=len(result.institutions),
            institutions_created=result.institutions_created,
            collections=len(result.collections),
            collections_created=result.collections_created,
        )
        return result

    def _resolve_institutions(
        self,
        candidates: list[CandidateRecord],
    ) -> tuple[dict[str, InstitutionResponse], list[InstitutionResponse]]:
        """Look up institutions by key, create the missing ones."""
        keys = [normalize_name_key(c.institution_name) for c in candidates]
        by_key = self.institution_service.find_by_keys(keys)

        pending: dict[str, InstitutionCreate] = {}
        for candidate, key in zip(candidates, keys):
            if key in by_key or key in pending:
                continue
            pending[key] = InstitutionCreate(name=candidate.institution_name, name_key=key)

        created = self.institution_service.create_many(list(pending.values()))
        for institution in created:
            by_key[institution.name_key] = institution

        return by_key, created

    def _resolve_collections(
        self,
        candidates: list[CandidateRecord],
        institutions_by_key: dict[str, InstitutionResponse],
    ) -> tuple[dict[CollectionKey, CollectionResponse], list[CollectionResponse]]:
        """Look up collections scoped to their institution, create the missing ones."""
        keys: list[CollectionKey] = []
        for candidate in candidates:
            institution = institutions_by_key[normalize_name_key(candidate.institution_name)]
            keys.append((institution.id, normalize_name_key(candidate.collection_name)))

        by_key = self.collection_service.find_by_keys(keys)

        pending: dict[CollectionKey, CollectionCreate] = {}
        for candidate, key in zip(candidates, keys):
            if key in by_key or key in pending:
                continue
            geolocation = candidate.geolocation
            pending[key] = CollectionCreate(
                name=candidate.collection_name,
                name_key=key[1],
                institution_id=key[0],
                latitude=geolocation.latitude if geolocation else None,
                longitude=geolocation.longitude if geolocation else None,
                description=candidate.description,
                url=candidate.url,
            )

        created = self.collection_service.create_many(list(pending.values()))
        for collection in created:
            by_key[(collection.institution_id, collection.name_key)] = collection

        return by_key, created

    def _rollback_institutions(self, created: list[InstitutionResponse]) -> None:
        """
        Undo the institution insert of an aborted batch.

        Once inserted, an institution is visible to concurrent batches, which
        may already have committed collections under it. Only institutions
        that no collection references are deleted; the schema's ON DELETE
        RESTRICT covers a reference added after this check.
        """
        if not created:
            return

        ids = [institution.id for institution in created]
        logger.warning("rolling_back_institutions", count=len(ids))
        try:
            in_use = self.collection_service.institution_ids_in_use(ids)
            if in_use:
                logger.warning("rollback_institutions_kept", ids=sorted(in_use))
            self.institution_service.delete_many([i for i in ids if i not in in_use])
        except Exception as e:
            # Stray rows are logged; the original error still propagates
            logger.error("institution_rollback_failed", ids=ids, error=str(e))


# Singleton instance
_resolve_service: Optional[ResolveService] = None


def get_resolve_service() -> ResolveService:
    """Get or create ResolveService instance."""
    global _resolve_service
    if _resolve_service is None:
        _resolve_service = ResolveService()
    return _resolve_service
