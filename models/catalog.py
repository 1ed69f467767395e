"""
Institution and collection models.

An institution owns many collections; a collection name is only
unique inside its institution.
"""

from typing import Optional
from pydantic import Field

from models.base import BaseSchema, TimestampMixin


class InstitutionCreate(BaseSchema):
    """Create a new institution."""

    name: str = Field(..., min_length=1, max_length=500, description="Display name")
    name_key: str = Field(..., min_length=1, description="Normalized name, unique")


class InstitutionResponse(BaseSchema, TimestampMixin):
    """Institution response with all fields."""

    id: str = Field(..., description="Institution UUID")
    name: str = Field(..., description="Display name")
    name_key: str = Field(..., description="Normalized name")


class CollectionCreate(BaseSchema):
    """Create a new collection under an institution."""

    name: str = Field(..., min_length=1, max_length=500, description="Display name")
    name_key: str = Field(..., min_length=1, description="Normalized name, unique per institution")
    institution_id: str = Field(..., description="Owning institution UUID")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    description: Optional[str] = Field(None, max_length=5000)
    url: Optional[str] = Field(None, max_length=2000)


class CollectionResponse(BaseSchema, TimestampMixin):
    """Collection response with all fields."""

    id: str = Field(..., description="Collection UUID")
    name: str = Field(..., description="Display name")
    name_key: str = Field(..., description="Normalized name")
    institution_id: str = Field(..., description="Owning institution UUID")
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    description: Optional[str] = None
    url: Optional[str] = None

    @property
    def has_geolocation(self) -> bool:
        return self.latitude is not None and self.longitude is not None
