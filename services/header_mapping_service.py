"""
Header mapping engine.

Applies a user-confirmed column → field mapping to a temporary upload and
produces candidate catalog records in original row order.

Rows are projected by column index only; header text is never used to
guess a field once the user has confirmed the mapping.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional
import structlog

from exceptions import InvalidMappingError
from models.upload import SemanticField, REQUIRED_FIELDS
from services.tmp_upload_service import TmpUpload
from utils.text_utils import clean_name

logger = structlog.get_logger(__name__)

HeaderMapping = dict[int, SemanticField]

MAX_DESCRIPTION_LENGTH = 5000
MAX_URL_LENGTH = 2000


@dataclass(frozen=True)
class Geolocation:
    """Point location of a collection."""
    latitude: float
    longitude: float


@dataclass(frozen=True)
class CandidateRecord:
    """One valid row, projected through the mapping."""
    row: int
    institution_name: str
    collection_name: str
    geolocation: Optional[Geolocation] = None
    description: Optional[str] = None
    url: Optional[str] = None


@dataclass
class RowError:
    """A row that could not be mapped."""
    row: int
    reason: str


@dataclass
class MappingResult:
    """Candidates in row order plus the rows that were skipped."""
    candidates: list[CandidateRecord] = field(default_factory=list)
    skipped: list[RowError] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def parse_header_mapping(raw: Any, header_count: int) -> HeaderMapping:
    """
    Validate a mapping request body against an upload's headers.

    The body is an object of column index → field name, e.g.
    ``{"0": "institutionName", "1": "collectionName"}``. A null or empty
    field name leaves that column unmapped.

    Args:
        raw: Decoded JSON body
        header_count: Number of headers in the upload

    Returns:
        Mapping of column index to SemanticField, ordered by index

    Raises:
        InvalidMappingError: If any entry does not fit the upload
    """
    if not isinstance(raw, dict) or not raw:
        raise InvalidMappingError(
            message="Mapping must be a non-empty object of column index to field"
        )

    mapping: HeaderMapping = {}
    columns_by_field: dict[SemanticField, int] = {}

    for key, value in raw.items():
        index = _parse_column_index(key)

        if index < 0 or index >= header_count:
            raise InvalidMappingError(
                message=f"Column index {index} is out of range",
                details={"column_index": index, "header_count": header_count}
            )

        if value is None or (isinstance(value, str) and not value.strip()):
            continue

        try:
            semantic_field = SemanticField(value.strip() if isinstance(value, str) else value)
        except ValueError:
            raise InvalidMappingError(
                message=f"Unknown field: {value}",
                details={
                    "column_index": index,
                    "field": str(value),
                    "valid": [f.value for f in SemanticField],
                }
            )

        if semantic_field in columns_by_field:
            raise InvalidMappingError(
                message=f"Field {semantic_field.value} is mapped more than once",
                details={
                    "field": semantic_field.value,
                    "columns": [columns_by_field[semantic_field], index],
                }
            )

        columns_by_field[semantic_field] = index
        mapping[index] = semantic_field

    missing = [f.value for f in REQUIRED_FIELDS if f not in columns_by_field]
    if missing:
        raise InvalidMappingError(
            message="Required fields are not mapped",
            details={"missing": missing}
        )

    has_latitude = SemanticField.LATITUDE in columns_by_field
    has_longitude = SemanticField.LONGITUDE in columns_by_field
    if has_latitude != has_longitude:
        raise InvalidMappingError(
            message="Latitude and longitude must be mapped together",
            details={"mapped": SemanticField.LATITUDE.value if has_latitude else SemanticField.LONGITUDE.value}
        )

    return dict(sorted(mapping.items()))


def _parse_column_index(key: Any) -> int:
    """Column indexes arrive as JSON object keys, so as strings."""
    if isinstance(key, bool):
        raise InvalidMappingError(message=f"Invalid column index: {key}")
    if isinstance(key, int):
        return key
    try:
        return int(str(key).strip())
    except ValueError:
        raise InvalidMappingError(
            message=f"Invalid column index: {key}",
            details={"column_index": str(key)}
        )


def map_rows(
    upload: TmpUpload,
    mapping: HeaderMapping,
    strict: bool = False,
) -> MappingResult:
    """
    Project every row of an upload through a validated mapping.

    Args:
        upload: Parsed upload
        mapping: Output of parse_header_mapping()
        strict: Fail on the first invalid row instead of skipping it

    Returns:
        MappingResult with candidates in row order

    Raises:
        InvalidMappingError: In strict mode on an invalid row, or when
            no row is valid
    """
    columns = {semantic_field: index for index, semantic_field in mapping.items()}
    result = MappingResult()

    for number, row in enumerate(upload.rows, start=1):
        candidate, reason = _project_row(number, row, columns)

        if candidate is not None:
            result.candidates.append(candidate)
            continue

        if strict:
            raise InvalidMappingError(
                message=f"Row {number}: {reason}",
                details={"row": number, "reason": reason}
            )
        result.skipped.append(RowError(row=number, reason=reason))

    if result.skipped:
        logger.warning(
            "mapping_rows_skipped",
            upload_id=upload.id,
            skipped=result.skipped_count,
            first_rows=[e.row for e in result.skipped[:10]],
        )

    if not result.candidates:
        raise InvalidMappingError(
            message="No row has both an institution name and a collection name",
            details={"rows": upload.row_count, "skipped": result.skipped_count}
        )

    logger.info(
        "mapping_rows_projected",
        upload_id=upload.id,
        candidates=len(result.candidates),
        skipped=result.skipped_count,
    )
    return result


def _project_row(
    number: int,
    row: tuple[str, ...],
    columns: dict[SemanticField, int],
) -> tuple[Optional[CandidateRecord], str]:
    """Build a candidate from one row, or return the reason it is invalid."""

    def cell(semantic_field: SemanticField) -> str:
        index = columns.get(semantic_field)
        if index is None or index >= len(row):
            return ""
        return row[index].strip()

    institution_name = clean_name(cell(SemanticField.INSTITUTION_NAME))
    if not institution_name:
        return None, "institutionName is empty"

    collection_name = clean_name(cell(SemanticField.COLLECTION_NAME))
    if not collection_name:
        return None, "collectionName is empty"

    geolocation = None
    if SemanticField.LATITUDE in columns:
        geolocation, reason = _parse_geolocation(
            cell(SemanticField.LATITUDE),
            cell(SemanticField.LONGITUDE),
        )
        if reason:
            return None, reason

    url = cell(SemanticField.URL)
    if len(url) > MAX_URL_LENGTH:
        return None, "url is too long"

    return CandidateRecord(
        row=number,
        institution_name=institution_name,
        collection_name=collection_name,
        geolocation=geolocation,
        description=cell(SemanticField.DESCRIPTION)[:MAX_DESCRIPTION_LENGTH] or None,
        url=url or None,
    ), ""


def _parse_geolocation(latitude: str, longitude: str) -> tuple[Optional[Geolocation], str]:
    """Both blank is no location; anything else must be a valid pair."""
    if not latitude and not longitude:
        return None, ""
    if not latitude or not longitude:
        return None, "latitude and longitude must both be set"

    try:
        lat = float(latitude)
        lon = float(longitude)
    except ValueError:
        return None, f"invalid coordinates: {latitude}, {longitude}"

    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None, f"invalid coordinates: {latitude}, {longitude}"
    if not -90 <= lat <= 90:
        return None, f"latitude out of range: {latitude}"
    if not -180 <= lon <= 180:
        return None, f"longitude out of range: {longitude}"

    return Geolocation(latitude=lat, longitude=lon), ""
