"""
Provider Directory — Entry Ranking

Orders and paginates matching entries in one of two modes:

    - geo mode (a pivot point was resolved): ascending great-circle distance,
      each result carrying ``distance`` in km rounded to 2 decimals; entries
      without a location cannot be ranked and are left out
    - recency mode: most recently approved first, then most recently
      submitted, then by id (all descending)

``more`` is true when a page came back full. It is a cheap "maybe a next
page" hint, not an exact count.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .geo_proximity import GeoPoint, distance_km

DEFAULT_PAGE_SIZE = 10


@dataclass
class RankedPage:
    entries: list[dict[str, Any]]
    more: bool

    @classmethod
    def from_page(cls, entries: list[dict[str, Any]], page_size: int) -> "RankedPage":
        return cls(entries=entries, more=len(entries) == page_size)


def page_bounds(page: int, page_size: int = DEFAULT_PAGE_SIZE) -> tuple[int, int]:
    """(skip, limit) for a zero-based page number."""
    return max(page, 0) * page_size, page_size


def timestamp_key(value: Any) -> float:
    """
    Sortable number for a stored timestamp.

    Accepts datetimes, ISO 8601 strings and epoch numbers. Missing values
    sort below every real timestamp.
    """
    if value is None:
        return float("-inf")
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return float("-inf")


def recency_key(entry: dict[str, Any]) -> tuple[float, float, str]:
    return (
        timestamp_key(entry.get("approved_timestamp")),
        timestamp_key(entry.get("submitted_timestamp")),
        str(entry.get("id", "")),
    )


def rank_by_recency(
    entries: list[dict[str, Any]],
    page: int = 0,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> RankedPage:
    """Recency mode ranking over already-filtered entries."""
    ordered = sorted(entries, key=recency_key, reverse=True)
    skip, limit = page_bounds(page, page_size)
    return RankedPage.from_page(ordered[skip : skip + limit], page_size)


def rank_by_distance(
    entries: list[dict[str, Any]],
    pivot: GeoPoint,
    page: int = 0,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> RankedPage:
    """
    Geo mode ranking over already-filtered entries.

    Returned entries are copies with a ``distance`` field added.
    """
    located: list[tuple[float, str, dict[str, Any]]] = []
    for entry in entries:
        point = GeoPoint.from_geojson(entry.get("location"))
        if point is None:
            continue
        located.append((distance_km(pivot, point), str(entry.get("id", "")), entry))

    # id as secondary key keeps equal distances in a stable order across pages
    located.sort(key=lambda item: (item[0], item[1]))

    skip, limit = page_bounds(page, page_size)
    window = located[skip : skip + limit]
    return RankedPage.from_page([{**entry, "distance": dist} for dist, _, entry in window], page_size)
