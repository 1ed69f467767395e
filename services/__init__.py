"""
Business logic services.

Each service handles one step of the import pipeline or one table.
"""

from services.institution_service import InstitutionService, get_institution_service
from services.collection_service import CollectionService, get_collection_service
from services.resolve_service import ResolveService, ResolveResult, get_resolve_service
from services.upload_service import UploadService, get_upload_service

__all__ = [
    "InstitutionService",
    "get_institution_service",
    "CollectionService",
    "get_collection_service",
    "ResolveService",
    "ResolveResult",
    "get_resolve_service",
    "UploadService",
    "get_upload_service",
]
