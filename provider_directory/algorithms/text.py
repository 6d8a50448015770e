#!/usr/bin/env python3
"""
Provider Directory — Text Normalisation

Helpers shared by search and ingestion:

    - ASCII folding of place names, matching the upper-case "ascii" column
      of OpenGeoDB gazetteer data ("Düsseldorf" → "DUESSELDORF")
    - Escaping user text so it is matched literally inside a regular
      expression (both Python ``re`` and PostgreSQL ``~*``)
    - Recursive removal of null fields from submitted records
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any


# ---------------------------------------------------------------------------
# ASCII folding
# ---------------------------------------------------------------------------

# Both sharp-s forms: case-insensitive matching does not fold the capital ẞ
_SHARP_S = re.compile(r"ß|ẞ")
_UMLAUTS = [
    (re.compile(r"ä", re.IGNORECASE), "ae"),
    (re.compile(r"ö", re.IGNORECASE), "oe"),
    (re.compile(r"ü", re.IGNORECASE), "ue"),
]
_SANKT = re.compile(r"sankt", re.IGNORECASE)


def convert_to_ascii(value: str) -> str:
    """
    Fold a place name to the gazetteer's ASCII form.

    Steps:
        1. ß / ẞ → ss, ä → ae, ö → oe, ü → ue (any case)
        2. "Sankt" → "ST."
        3. NFD decomposition, combining marks removed
        4. Upper case

    Examples:
        "Düsseldorf"     → "DUESSELDORF"
        "Straße"         → "STRASSE"
        "Sankt Augustin" → "ST. AUGUSTIN"
    """
    text = _SHARP_S.sub("ss", value)
    for pattern, replacement in _UMLAUTS:
        text = pattern.sub(replacement, text)

    text = _SANKT.sub("ST.", text)

    text = unicodedata.normalize("NFD", text)
    text = "".join(c for c in text if not unicodedata.combining(c))

    return text.upper()


# ---------------------------------------------------------------------------
# Literal regex patterns
# ---------------------------------------------------------------------------

# Characters with a meaning in both Python and POSIX ARE regex syntax
_REGEX_META = re.compile(r"[.*+?^${}()|\[\]\\]")


def escape_regex(value: str) -> str:
    """
    Escape every regex metacharacter in user input.

    The result is a valid pattern for Python ``re`` and for PostgreSQL's
    ``~*`` operator, and matches ``value`` literally in both.
    """
    return _REGEX_META.sub(lambda m: "\\" + m.group(0), value)


def literal_regex(value: str, flags: int = re.IGNORECASE) -> re.Pattern[str]:
    """Compile user input into a pattern that only matches it literally."""
    return re.compile(escape_regex(value), flags)


# ---------------------------------------------------------------------------
# Null stripping
# ---------------------------------------------------------------------------


def strip_empty(record: dict[str, Any]) -> dict[str, Any]:
    """
    Return a copy of ``record`` with all None values removed, recursively.

    Dicts and lists left empty afterwards are removed as well, so an
    all-null ``meta`` block disappears instead of becoming ``{}``.
    """
    cleaned: dict[str, Any] = {}
    for key, value in record.items():
        if value is None:
            continue
        if isinstance(value, dict):
            value = strip_empty(value)
        if isinstance(value, (dict, list)) and not value:
            continue
        cleaned[key] = value
    return cleaned
