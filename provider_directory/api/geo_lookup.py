"""
Gazetteer lookups for the API.

Database mode queries the ``geodata`` table (tsvector text search, KNN on
geography); fallback mode runs the same resolution over the in-memory
gazetteer. Both paths return a list of :class:`GeoPlace`, empty on a miss
or on any lookup failure.
"""

from __future__ import annotations

import logging

from ..algorithms.gazetteer import (
    MAX_TEXT_RESULTS,
    GeoPlace,
    find_place_by_point,
    find_places_by_text,
    search_terms,
)
from ..algorithms.entry_query import FilterCriteria
from ..algorithms.geo_proximity import GeoPoint
from . import db
from .db import extras
from .helpers import get_geodata

logger = logging.getLogger(__name__)


def _rows_to_places(rows: list[dict]) -> list[GeoPlace]:
    return [
        GeoPlace(name=row["name"], location=row["location_json"])
        for row in rows
        if row.get("location_json")
    ]


def find_geo_location(search: str | None) -> list[GeoPlace]:
    """Places matching free text, best first (at most 6)."""
    if not search or not search.strip():
        return []

    terms = search_terms(search)
    if not terms:
        return []

    if db.is_available():
        try:
            with db.get_conn() as conn:
                with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                    cur.execute(
                        """
                        SELECT g.name,
                               ST_AsGeoJSON(COALESCE(g.location, g.reference_location))::json AS location_json,
                               ts_rank(g.search, q) AS score,
                               g.level
                        FROM geodata g, to_tsquery('simple', %s) q
                        WHERE g.search @@ q
                        ORDER BY score DESC, g.level DESC
                        LIMIT %s
                        """,
                        (" | ".join(terms), MAX_TEXT_RESULTS),
                    )
                    rows = cur.fetchall()
            return _rows_to_places(rows)
        except Exception as e:
            logger.warning("Gazetteer text search failed for %r: %s", search, e)
            return []

    try:
        return find_places_by_text(get_geodata(), search)
    except Exception as e:
        logger.warning("Gazetteer text search failed for %r: %s", search, e)
        return []


def find_geo_name(point: GeoPoint) -> list[GeoPlace]:
    """The gazetteer place nearest to ``point`` (single-element list) or []."""
    if db.is_available():
        try:
            with db.get_conn() as conn:
                with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                    cur.execute(
                        """
                        SELECT g.name, ST_AsGeoJSON(g.location)::json AS location_json
                        FROM geodata g
                        WHERE g.location IS NOT NULL
                        ORDER BY g.location <-> ST_SetSRID(ST_MakePoint(%s, %s), 4326)::geography
                        LIMIT 1
                        """,
                        (point.longitude, point.latitude),
                    )
                    rows = cur.fetchall()
            return _rows_to_places(rows)
        except Exception as e:
            logger.warning("Gazetteer nearest lookup failed for %s: %s", point, e)
            return []

    try:
        return find_place_by_point(get_geodata(), point)
    except Exception as e:
        logger.warning("Gazetteer nearest lookup failed for %s: %s", point, e)
        return []


def resolve_place(criteria: FilterCriteria) -> GeoPlace | None:
    """
    Pivot place for a filter request.

    Coordinates win over a location name. Returns None when neither is given
    or nothing matched, which puts the caller in recency mode.
    """
    if criteria.has_coordinates:
        places = find_geo_name(GeoPoint(latitude=criteria.lat, longitude=criteria.long))
    elif criteria.location:
        places = find_geo_location(criteria.location)
    else:
        return None
    return places[0] if places else None
