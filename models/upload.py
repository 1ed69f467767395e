"""
Upload and header-mapping schemas.

An upload is a parsed CSV waiting for the user to say which column
holds which catalog field. See services/upload_service.py for the flow.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import Field

from models.base import BaseSchema


class SemanticField(str, Enum):
    """Catalog fields a CSV column can be mapped to."""

    INSTITUTION_NAME = "institutionName"
    COLLECTION_NAME = "collectionName"
    LATITUDE = "latitude"
    LONGITUDE = "longitude"
    DESCRIPTION = "description"
    URL = "url"


REQUIRED_FIELDS = (SemanticField.INSTITUTION_NAME, SemanticField.COLLECTION_NAME)


class UploadIDResponse(BaseSchema):
    """Returned after a file is accepted."""

    id: str = Field(..., description="Opaque upload id")


class UploadResponse(BaseSchema):
    """Upload headers (and a few rows) for the mapping UI."""

    id: str = Field(..., description="Opaque upload id")
    headers: list[str] = Field(..., description="Column headers in file order")
    filename: Optional[str] = Field(None, description="Original file name")
    row_count: int = Field(..., ge=0, description="Number of data rows")
    preview_rows: list[list[str]] = Field(
        default_factory=list,
        description="First data rows, one value per header"
    )
    expires_at: datetime = Field(..., description="When the upload is discarded if not mapped")


class SkippedRow(BaseSchema):
    """A data row left out of the commit."""

    row: int = Field(..., ge=1, description="1-based data row number (header excluded)")
    reason: str = Field(..., description="Why the row was skipped")


class MapUploadResponse(BaseSchema):
    """Result of committing an upload with a header mapping."""

    institutions: list[str] = Field(default_factory=list, description="Institution names touched")
    collections: list[str] = Field(default_factory=list, description="Collection names touched")
    institutions_created: int = Field(default=0, ge=0)
    collections_created: int = Field(default=0, ge=0)
    rows_mapped: int = Field(default=0, ge=0, description="Rows committed")
    skipped_count: int = Field(default=0, ge=0, description="Rows skipped as invalid")
    skipped_rows: list[SkippedRow] = Field(default_factory=list)
