"""
Upload API routes.

CSV bulk import in two steps: upload a file, then map its columns to
catalog fields. Nothing is written to the catalog until the mapping is
committed.
"""

from fastapi import APIRouter, UploadFile, File, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from typing import Any
import json
import structlog

from models.upload import UploadIDResponse, UploadResponse, MapUploadResponse
from services.upload_service import get_upload_service
from exceptions import AppError, InvalidMappingError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/uploads", tags=["Uploads"])


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
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


# ===================
# ROUTES
# ===================

@router.post("", response_model=UploadIDResponse)
async def upload_file(file: UploadFile = File(...)):
    """
    Upload a CSV file for import.

    The file is parsed and kept for the mapping step; the catalog is not
    touched.

    Returns:
        id: Upload id to use with GET /api/uploads/{id} and /map

    Raises:
        400: File is empty, not CSV, or malformed
    """
    try:
        content = await file.read()

        service = get_upload_service()
        upload_id = await run_in_threadpool(
            service.create,
            content,
            file.content_type,
            file.filename,
        )

        return UploadIDResponse(id=upload_id)

    except Exception as e:
        return handle_error(e)


@router.get("/{upload_id}", response_model=UploadResponse)
async def get_upload(upload_id: str):
    """
    Get an upload's headers for the mapping UI.

    Raises:
        404: Upload unknown, expired, or already mapped
    """
    try:
        service = get_upload_service()
        return service.find_by_id(upload_id)

    except Exception as e:
        return handle_error(e)


async def _read_mapping(request: Request) -> Any:
    """Decode the mapping body; an empty or non-JSON body is a bad mapping."""
    body = await request.body()
    if not body.strip():
        raise InvalidMappingError(message="Mapping body is required")
    try:
        return json.loads(body)
    except ValueError as e:
        raise InvalidMappingError(
            message="Mapping body is not valid JSON",
            details={"error": str(e)}
        )


@router.post(
    "/{upload_id}/map",
    response_model=MapUploadResponse,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {
                "application/json": {
                    "schema": {
                        "type": "object",
                        "description": "Column index → field name",
                        "additionalProperties": {"type": "string"},
                    },
                    "example": {"0": "institutionName", "1": "collectionName", "2": "latitude", "3": "longitude"},
                }
            },
        }
    },
)
async def map_upload(upload_id: str, request: Request):
    """
    Commit an upload with a confirmed header mapping.

    Rows missing an institution or collection name are skipped and
    reported unless strict mapping is configured. The whole commit is
    applied or nothing is.

    Returns:
        institutions: Institution names touched
        collections: Collection names touched

    Raises:
        400: Mapping missing, not JSON, or malformed (bad column index, unknown or missing field)
        404: Upload unknown, expired, or already mapped
        409: Concurrent import created the same record, retry
    """
    try:
        mapping = await _read_mapping(request)

        service = get_upload_service()
        return await run_in_threadpool(service.map_upload, upload_id, mapping)

    except Exception as e:
        return handle_error(e)
