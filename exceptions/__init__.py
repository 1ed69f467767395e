"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    DatabaseError,

    # Uploads
    InvalidFileError,
    UploadNotFoundError,
    InvalidMappingError,
    PersistenceConflictError,

    # Catalog
    InstitutionNotFoundError,
    CollectionNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DatabaseError",

    # Uploads
    "InvalidFileError",
    "UploadNotFoundError",
    "InvalidMappingError",
    "PersistenceConflictError",

    # Catalog
    "InstitutionNotFoundError",
    "CollectionNotFoundError",
]
