"""
CSV parser for catalog uploads.

Turns an uploaded byte stream of unknown column layout into a header list
plus rows of raw strings. Nothing is inferred about what the columns mean;
that is decided later by the header mapping.

Ragged rows: rows shorter than the header are padded with empty strings,
rows longer than the header are truncated to the header width.
"""

import csv
from dataclasses import dataclass
from io import StringIO
from typing import Optional
import structlog

import pandas as pd

from exceptions import InvalidFileError

logger = structlog.get_logger(__name__)


CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "text/plain",
    "text/tab-separated-values",
    "application/vnd.ms-excel",  # what Windows browsers send for .csv
}
GENERIC_CONTENT_TYPES = {"", "application/octet-stream"}
CSV_EXTENSIONS = (".csv", ".tsv", ".txt")

# Tried in order; latin-1 decodes any byte sequence
ENCODINGS = ("utf-8-sig", "latin-1")
DELIMITERS = (",", ";", "\t")


@dataclass(frozen=True)
class CsvParseResult:
    """Parsed CSV: headers in file order and rows aligned to them."""
    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    encoding: str = "utf-8-sig"
    delimiter: str = ","
    padded_rows: int = 0
    truncated_rows: int = 0

    @property
    def row_count(self) -> int:
        return len(self.rows)


def parse_csv(
    content: bytes,
    content_type: Optional[str] = None,
    filename: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> CsvParseResult:
    """
    Parse an uploaded CSV file.

    Args:
        content: Raw file bytes
        content_type: Declared MIME type of the upload
        filename: Original file name, used when the MIME type is generic
        max_bytes: Reject files larger than this

    Returns:
        CsvParseResult with headers and rows

    Raises:
        InvalidFileError: If the file is not CSV, empty, or malformed
    """
    _check_content_type(content_type, filename)

    if max_bytes is not None and len(content) > max_bytes:
        raise InvalidFileError(
            message="File is too large",
            details={"size": len(content), "max_bytes": max_bytes}
        )

    if not content or not content.strip():
        raise InvalidFileError(message="File is empty")

    text, encoding = _decode(content)
    delimiter = _detect_delimiter(text)

    logger.info(
        "parsing_csv",
        filename=filename,
        size=len(content),
        encoding=encoding,
        delimiter=delimiter,
    )

    # The header line fixes the width every other row is held to
    width = _read_frame(text, delimiter, nrows=1).shape[1]
    if width == 0:
        raise InvalidFileError(message="File has no columns")

    truncated = 0

    def _truncate(fields: list[str]) -> list[str]:
        nonlocal truncated
        truncated += 1
        return fields[:width]

    df = _read_frame(text, delimiter, on_bad_lines=_truncate)
    if df.empty:
        raise InvalidFileError(message="File has no columns")

    padded = int(df.iloc[1:, width - 1].isna().sum())
    df = df.fillna("")

    headers = _validate_headers([str(value).strip() for value in df.iloc[0]])
    # Trailing empty header cells were dropped; keep rows aligned
    header_count = len(headers)

    rows = []
    for values in df.iloc[1:].itertuples(index=False, name=None):
        cells = tuple(str(value) for value in values[:header_count])
        if not any(cell.strip() for cell in cells):
            continue
        rows.append(cells)

    if not rows:
        raise InvalidFileError(
            message="File has a header row but no data rows",
            details={"headers": list(headers)}
        )

    if padded or truncated:
        logger.warning(
            "csv_ragged_rows",
            filename=filename,
            padded_rows=padded,
            truncated_rows=truncated,
        )

    logger.info(
        "csv_parsed",
        filename=filename,
        columns=header_count,
        rows=len(rows),
    )

    return CsvParseResult(
        headers=headers,
        rows=tuple(rows),
        encoding=encoding,
        delimiter=delimiter,
        padded_rows=padded,
        truncated_rows=truncated,
    )


def _check_content_type(content_type: Optional[str], filename: Optional[str]) -> None:
    """Accept CSV-like MIME types, or a generic one with a CSV file name."""
    mime = (content_type or "").split(";")[0].strip().lower()

    if mime in CSV_CONTENT_TYPES:
        return

    if mime in GENERIC_CONTENT_TYPES and filename and filename.lower().endswith(CSV_EXTENSIONS):
        return

    raise InvalidFileError(
        message="File must be a CSV file",
        details={"content_type": content_type, "filename": filename}
    )


def _decode(content: bytes) -> tuple[str, str]:
    """Decode bytes with the first encoding that works."""
    for encoding in ENCODINGS:
        try:
            return content.decode(encoding), encoding
        except UnicodeDecodeError:
            continue
    # Unreachable while latin-1 is in ENCODINGS
    raise InvalidFileError(message="Could not decode file")


def _detect_delimiter(text: str) -> str:
    """
    Pick the delimiter that splits the header line into the most fields.

    The line is split with csv.reader, so delimiters inside quoted header
    names are not counted. Ties go to the earlier entry of DELIMITERS.
    """
    first_line = next((line for line in text.splitlines() if line.strip()), "")

    try:
        widths = {
            delimiter: len(next(csv.reader([first_line], delimiter=delimiter), []))
            for delimiter in DELIMITERS
        }
    except csv.Error:
        # Fall back to raw counts
        widths = {delimiter: first_line.count(delimiter) + 1 for delimiter in DELIMITERS}

    best = max(DELIMITERS, key=lambda d: widths[d])
    return best if widths[best] > 1 else ","


def _read_frame(
    text: str,
    delimiter: str,
    nrows: Optional[int] = None,
    on_bad_lines="error",
) -> pd.DataFrame:
    """Read lines (header included) as raw strings, no type inference."""
    try:
        return pd.read_csv(
            StringIO(text),
            sep=delimiter,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
            nrows=nrows,
            on_bad_lines=on_bad_lines,
        )
    except pd.errors.EmptyDataError:
        raise InvalidFileError(message="File has no columns")
    except pd.errors.ParserError as e:
        logger.error("csv_read_failed", error=str(e))
        raise InvalidFileError(
            message="Could not parse CSV file",
            details={"original_error": str(e)}
        )


def _validate_headers(raw_headers: list[str]) -> tuple[str, ...]:
    """
    Check the header row.

    Trailing empty cells (a common spreadsheet export artifact) are dropped.
    An empty header row, an empty cell between named columns, or a repeated
    name (ignoring case) rejects the file.
    """
    headers = list(raw_headers)
    while headers and not headers[-1]:
        headers.pop()

    if not headers:
        raise InvalidFileError(message="Header row is empty")

    empty = [index for index, header in enumerate(headers) if not header]
    if empty:
        raise InvalidFileError(
            message="Header row has empty column names",
            details={"columns": empty}
        )

    seen: dict[str, int] = {}
    duplicates = []
    for index, header in enumerate(headers):
        key = header.casefold()
        if key in seen:
            duplicates.append(header)
        else:
            seen[key] = index
    if duplicates:
        raise InvalidFileError(
            message="Header row has duplicate column names",
            details={"duplicates": duplicates}
        )

    return tuple(headers)
