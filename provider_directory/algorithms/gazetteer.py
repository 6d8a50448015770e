"""
Provider Directory — Gazetteer Place Resolution

Resolves user input to a canonical place from an OpenGeoDB-style gazetteer.
Each gazetteer record looks like::

    {
        "name": "Düsseldorf",
        "ascii": "DUESSELDORF",
        "plz": "40210",
        "level": 6,
        "location": {"type": "Point", "coordinates": [6.78, 51.22]} | None,
        "reference_location": {...} | None,
    }

Text lookup searches the raw input and its ASCII fold together, so both
"Düsseldorf" and "Duesseldorf" find the same record. Results are ordered by
text score, then by administrative level (higher = more specific).

Coordinate lookup returns the nearest record's own name and location, i.e.
a human-readable label for the query point rather than the point itself.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable

from .geo_proximity import GeoPoint, nearest
from .text import convert_to_ascii

MAX_TEXT_RESULTS = 6

_SEARCH_FIELDS = ("name", "plz", "ascii")
_TOKEN = re.compile(r"\w+")


@dataclass(frozen=True)
class GeoPlace:
    """A resolved place: display name plus GeoJSON point."""

    name: str
    location: dict[str, Any]

    @property
    def point(self) -> GeoPoint | None:
        return GeoPoint.from_geojson(self.location)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "location": self.location}


# ---------------------------------------------------------------------------
# Search terms
# ---------------------------------------------------------------------------


def tokenize(value: str | None) -> list[str]:
    if not value:
        return []
    return _TOKEN.findall(str(value).lower())


def search_terms(search: str) -> list[str]:
    """
    Distinct lower-case terms for a place search: the input's own tokens
    followed by the tokens of its ASCII fold.
    """
    text = str(search)
    combined = f"{text} {convert_to_ascii(text)}"
    seen: dict[str, None] = {}
    for token in tokenize(combined):
        seen.setdefault(token, None)
    return list(seen)


def text_score(record: dict[str, Any], terms: Iterable[str]) -> int:
    """Number of (term, field) hits of ``terms`` over the searchable fields."""
    terms = set(terms)
    score = 0
    for key in _SEARCH_FIELDS:
        score += len(terms.intersection(tokenize(record.get(key))))
    return score


def place_location(record: dict[str, Any]) -> dict[str, Any] | None:
    """Precise location if the record has one, else its reference location."""
    return record.get("location") or record.get("reference_location")


# ---------------------------------------------------------------------------
# Resolution over in-memory gazetteer records
# ---------------------------------------------------------------------------


def find_places_by_text(
    records: Iterable[dict[str, Any]],
    search: str,
    limit: int = MAX_TEXT_RESULTS,
) -> list[GeoPlace]:
    """Text lookup. Returns up to ``limit`` places, best first; [] on no match."""
    terms = search_terms(search)
    if not terms:
        return []

    scored: list[tuple[int, int, dict[str, Any]]] = []
    for rec in records:
        score = text_score(rec, terms)
        if score > 0:
            scored.append((score, int(rec.get("level") or 0), rec))

    scored.sort(key=lambda item: (item[0], item[1]), reverse=True)

    places: list[GeoPlace] = []
    for _, _, rec in scored[:limit]:
        location = place_location(rec)
        if location is None:
            continue
        places.append(GeoPlace(name=rec["name"], location=location))
    return places


def find_place_by_point(
    records: Iterable[dict[str, Any]],
    point: GeoPoint,
) -> list[GeoPlace]:
    """Coordinate lookup. Single-element list, or [] for an empty gazetteer."""
    rec = nearest(point, records)
    if rec is None:
        return []
    return [GeoPlace(name=rec["name"], location=rec["location"])]
