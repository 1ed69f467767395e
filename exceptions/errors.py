"""
Custom exception classes for the application.

Every error the API returns is an AppError subclass rendered through to_dict().
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "UPLOAD_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422 unless the caller picks another 4xx)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None,
        status_code: int = 422
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# UPLOAD ERRORS
# ===================

class InvalidFileError(ValidationError):
    """Uploaded file is empty, not CSV, or malformed (400)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_FILE",
            message=message,
            details=details,
            status_code=400
        )


class UploadNotFoundError(NotFoundError):
    """Temporary upload unknown, expired, or already mapped."""

    def __init__(self, upload_id: str):
        super().__init__(
            resource="Upload",
            identifier=upload_id,
            code="UPLOAD_NOT_FOUND"
        )


class InvalidMappingError(ValidationError):
    """Header mapping does not fit the upload (400)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_MAPPING",
            message=message,
            details=details,
            status_code=400
        )


class PersistenceConflictError(ConflictError):
    """A concurrent commit wrote the same natural key first. Retryable."""

    def __init__(self, resource: str, names: list[str]):
        super().__init__(
            code="PERSISTENCE_CONFLICT",
            message=f"{resource} was created concurrently, retry the mapping",
            details={"resource": resource, "names": names}
        )


# ===================
# CATALOG ERRORS
# ===================

class InstitutionNotFoundError(NotFoundError):
    """Institution not found."""

    def __init__(self, institution_id: str):
        super().__init__(
            resource="Institution",
            identifier=institution_id,
            code="INSTITUTION_NOT_FOUND"
        )


class CollectionNotFoundError(NotFoundError):
    """Collection not found."""

    def __init__(self, collection_id: str):
        super().__init__(
            resource="Collection",
            identifier=collection_id,
            code="COLLECTION_NOT_FOUND"
        )
