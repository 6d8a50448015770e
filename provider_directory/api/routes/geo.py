"""Gazetteer endpoints: place search by text and place name for a coordinate."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from ...algorithms.geo_proximity import GeoPoint
from ..geo_lookup import find_geo_location, find_geo_name

router = APIRouter()


@router.get("/api/geo/location")
async def geo_location(
    search: str = Query(..., min_length=1, max_length=100, description="Place name or postal code"),
) -> list[dict[str, Any]]:
    """Up to 6 matching places, most relevant and most specific first."""
    return [place.to_dict() for place in find_geo_location(search)]


@router.get("/api/geo/name")
async def geo_name(
    lat: float = Query(..., ge=-90, le=90),
    long: float = Query(..., ge=-180, le=180),
) -> list[dict[str, Any]]:
    """Name and location of the gazetteer place nearest to the coordinate."""
    return [place.to_dict() for place in find_geo_name(GeoPoint(latitude=lat, longitude=long))]
