"""
Upload ingestion orchestrator.

Lifecycle of one upload:
    create()      parse CSV, keep it as a temporary upload, return its id
    find_by_id()  headers (and a few rows) for the mapping UI
    map_upload()  apply the confirmed mapping, resolve and persist records,
                  then drop the temporary upload

An upload ends either mapped (deleted after a successful commit) or expired
(reaped after the retention window). A failed mapping leaves the upload in
place so the user can retry with a corrected mapping.
"""

from typing import Any, Optional
import structlog

from config import settings
from exceptions import UploadNotFoundError
from models.upload import MapUploadResponse, SkippedRow, UploadResponse
from parsers.csv_parser import parse_csv
from services import tmp_upload_service
from services.header_mapping_service import map_rows, parse_header_mapping
from services.resolve_service import ResolveService, get_resolve_service

logger = structlog.get_logger(__name__)

# Skipped rows listed in a response; the count is always complete
MAX_REPORTED_SKIPPED_ROWS = 100


class UploadService:
    """Coordinates parsing, temporary storage, mapping and resolve."""

    def __init__(
        self,
        resolve_service: Optional[ResolveService] = None,
        strict: Optional[bool] = None,
    ):
        self._resolve_service = resolve_service
        self.strict = settings.upload_mapping_strict if strict is None else strict

    @property
    def resolve_service(self) -> ResolveService:
        # Resolved lazily so that create/find_by_id never need a database
        if self._resolve_service is None:
            self._resolve_service = get_resolve_service()
        return self._resolve_service

    def create(
        self,
        content: bytes,
        content_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> str:
        """
        Parse an uploaded CSV and keep it until it is mapped.

        Returns:
            Upload id

        Raises:
            InvalidFileError: If the file cannot be parsed
        """
        parsed = parse_csv(
            content,
            content_type=content_type,
            filename=filename,
            max_bytes=settings.upload_max_bytes,
        )

        upload_id = tmp_upload_service.create_upload(
            headers=parsed.headers,
            rows=parsed.rows,
            filename=filename,
        )

        logger.info(
            "upload_created",
            upload_id=upload_id,
            filename=filename,
            headers=len(parsed.headers),
            rows=parsed.row_count,
        )
        return upload_id

    def find_by_id(self, upload_id: str) -> UploadResponse:
        """
        Get an upload's headers for the mapping UI.

        Raises:
            UploadNotFoundError: If the upload is unknown, expired or already mapped
        """
        upload = tmp_upload_service.get_upload(upload_id)
        if upload is None:
            raise UploadNotFoundError(upload_id)

        return UploadResponse(
            id=upload.id,
            headers=list(upload.headers),
            filename=upload.filename,
            row_count=upload.row_count,
            preview_rows=[list(row) for row in upload.rows[:settings.upload_preview_rows]],
            expires_at=upload.expires_at,
        )

    def map_upload(self, upload_id: str, raw_mapping: Any) -> MapUploadResponse:
        """
        Commit an upload with a confirmed header mapping.

        Args:
            upload_id: Id returned by create()
            raw_mapping: Request body, column index → field name

        Returns:
            Distinct institution and collection names touched

        Raises:
            UploadNotFoundError: If the upload is unknown, expired or already mapped
            InvalidMappingError: If the mapping does not fit the upload
            PersistenceConflictError: If a concurrent commit won a race (retryable)
            DatabaseError: If persistence fails
        """
        upload = tmp_upload_service.get_upload(upload_id)
        if upload is None:
            raise UploadNotFoundError(upload_id)

        mapping = parse_header_mapping(raw_mapping, len(upload.headers))

        logger.info(
            "mapping_upload",
            upload_id=upload_id,
            mapping={index: field.value for index, field in mapping.items()},
            strict=self.strict,
        )

        mapped = map_rows(upload, mapping, strict=self.strict)
        resolved = self.resolve_service.resolve(mapped.candidates)

        # Single use: only a committed upload is consumed
        tmp_upload_service.delete_upload(upload_id)

        logger.info(
            "upload_mapped",
            upload_id=upload_id,
            rows_mapped=len(mapped.candidates),
            skipped=mapped.skipped_count,
            institutions=len(resolved.institutions),
            institutions_created=resolved.institutions_created,
            collections=len(resolved.collections),
            collections_created=resolved.collections_created,
        )

        return MapUploadResponse(
            institutions=list(dict.fromkeys(i.name for i in resolved.institutions)),
            collections=list(dict.fromkeys(c.name for c in resolved.collections)),
            institutions_created=resolved.institutions_created,
            collections_created=resolved.collections_created,
            rows_mapped=len(mapped.candidates),
            skipped_count=mapped.skipped_count,
            skipped_rows=[
                SkippedRow(row=e.row, reason=e.reason)
                for e in mapped.skipped[:MAX_REPORTED_SKIPPED_ROWS]
            ],
        )


# Singleton instance
_upload_service: Optional[UploadService] = None


def get_upload_service() -> UploadService:
    """Get or create UploadService instance."""
    global _upload_service
    if _upload_service is None:
        _upload_service = UploadService()
    return _upload_service
