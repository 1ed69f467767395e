"""
Catalog API routes.

Read-only lookups used by the map UI: single institutions and collections,
and the GeoJSON feed of geolocated collections.
"""

from fastapi import APIRouter, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.catalog import InstitutionResponse, CollectionResponse
from services.institution_service import get_institution_service
from services.collection_service import get_collection_service, collections_to_geojson
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Catalog"])


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


@router.get("/institutions/{institution_id}", response_model=InstitutionResponse)
async def get_institution(institution_id: str):
    """
    Get a single institution by ID.

    Raises:
        404: Institution not found
    """
    try:
        service = get_institution_service()
        return await run_in_threadpool(service.get_by_id, institution_id)
    except Exception as e:
        return handle_error(e)


@router.get("/collections")
async def list_collections(
    geojson: bool = Query(False, description="Return a GeoJSON FeatureCollection"),
    institution_id: Optional[str] = Query(None, description="Only this institution's collections"),
):
    """
    List collections.

    With geojson=true, returns a FeatureCollection of Point features for
    the collections that have coordinates, as the map expects.
    """
    try:
        service = get_collection_service()
        collections = await run_in_threadpool(service.list_all, institution_id)

        if geojson:
            return collections_to_geojson(collections)

        return [c.model_dump(mode="json") for c in collections]
    except Exception as e:
        return handle_error(e)


@router.get("/collections/{collection_id}", response_model=CollectionResponse)
async def get_collection(collection_id: str):
    """
    Get a single collection by ID.

    Raises:
        404: Collection not found
    """
    try:
        service = get_collection_service()
        return await run_in_threadpool(service.get_by_id, collection_id)
    except Exception as e:
        return handle_error(e)
