"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
)
from models.upload import (
    SemanticField,
    REQUIRED_FIELDS,
    UploadIDResponse,
    UploadResponse,
    SkippedRow,
    MapUploadResponse,
)
from models.catalog import (
    InstitutionCreate,
    InstitutionResponse,
    CollectionCreate,
    CollectionResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",

    # Uploads
    "SemanticField",
    "REQUIRED_FIELDS",
    "UploadIDResponse",
    "UploadResponse",
    "SkippedRow",
    "MapUploadResponse",

    # Catalog
    "InstitutionCreate",
    "InstitutionResponse",
    "CollectionCreate",
    "CollectionResponse",
]
