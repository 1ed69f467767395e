"""
Text utilities for catalog names.

Used to build the natural keys institutions and collections are
deduplicated on.
"""

import re
import unicodedata
from typing import Optional


def normalize_name_key(name: Optional[str]) -> Optional[str]:
    """
    Normalize a name into its natural key for comparison.

    - "  Smith   College " → "smith college"
    - "SMITH COLLEGE" → "smith college"
    - "Straße" → "strasse"

    Accents are kept: "Museo Nacional" and "Muséo Nacional" are different keys.

    Args:
        name: Original name (may have mixed case and stray whitespace)

    Returns:
        Case-folded, whitespace-collapsed string, or None if input is empty
    """
    if not name:
        return None

    # Compatibility forms (full-width letters, ligatures) compare as their plain form
    normalized = unicodedata.normalize('NFKC', name)

    normalized = re.sub(r'\s+', ' ', normalized).strip()

    if not normalized:
        return None

    return normalized.casefold()


def clean_name(name: Optional[str], max_length: int = 500) -> Optional[str]:
    """
    Clean a name for storage (preserves case and accents).

    - Strips whitespace
    - Collapses internal runs of whitespace
    - Truncates to max length
    - Returns None for empty/whitespace-only strings

    Args:
        name: Raw name from the CSV cell
        max_length: Maximum characters to store

    Returns:
        Cleaned name or None
    """
    if not name:
        return None

    name = re.sub(r'\s+', ' ', name).strip()

    if not name:
        return None

    if len(name) > max_length:
        name = name[:max_length].rstrip()

    return name
