"""
File parsers module.
"""

from parsers.csv_parser import (
    parse_csv,
    CsvParseResult,
)

__all__ = [
    "parse_csv",
    "CsvParseResult",
]
