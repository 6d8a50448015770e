#!/usr/bin/env python3
"""
Provider Directory — Geospatial Distance

Great-circle distances between WGS84 points using the Haversine formula,
plus conversion to and from GeoJSON ``Point`` objects as stored on entries
and gazetteer records.

No external geo-libraries required, pure math with stdlib.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate pair."""
    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        """Check whether the coordinates are inside the WGS84 range."""
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0

    def to_geojson(self) -> dict[str, Any]:
        """GeoJSON point — note the [longitude, latitude] order."""
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}

    @classmethod
    def from_geojson(cls, point: dict[str, Any] | None) -> "GeoPoint | None":
        """Parse a GeoJSON point. Returns None for missing or malformed input."""
        if not point or point.get("type") != "Point":
            return None
        coords = point.get("coordinates") or []
        if len(coords) != 2 or coords[0] is None or coords[1] is None:
            return None
        return cls(latitude=float(coords[1]), longitude=float(coords[0]))


# ---------------------------------------------------------------------------
# Core distance calculation
# ---------------------------------------------------------------------------


def haversine_km(point_a: GeoPoint, point_b: GeoPoint) -> float:
    """
    Compute the great-circle distance in kilometres between two WGS84 points
    using the Haversine formula.
    """
    lat1 = math.radians(point_a.latitude)
    lat2 = math.radians(point_b.latitude)
    dlat = math.radians(point_b.latitude - point_a.latitude)
    dlon = math.radians(point_b.longitude - point_a.longitude)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance_km(point_a: GeoPoint, point_b: GeoPoint) -> float:
    """Distance as reported to API clients: kilometres, 2 decimals."""
    return round(haversine_km(point_a, point_b), 2)


# ---------------------------------------------------------------------------
# Nearest-neighbour
# ---------------------------------------------------------------------------


def nearest(
    target: GeoPoint,
    candidates: Iterable[dict[str, Any]],
    *,
    location_key: str = "location",
) -> dict[str, Any] | None:
    """
    Return the candidate record closest to ``target``.

    Candidates without a valid GeoJSON point under ``location_key`` are
    skipped. Returns None when no candidate has a location.
    """
    best: dict[str, Any] | None = None
    best_dist = math.inf

    for rec in candidates:
        point = GeoPoint.from_geojson(rec.get(location_key))
        if point is None:
            continue
        dist = haversine_km(target, point)
        if dist < best_dist:
            best, best_dist = rec, dist

    return best
