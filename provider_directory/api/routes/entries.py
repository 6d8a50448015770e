"""Entry endpoints: public search and submission, moderation, admin search and backup."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse

from ...algorithms.entry_query import FilterCriteria
from ...algorithms.entry_types import ACCESSIBILITY_VALUES, ALL_ATTRIBUTES, ALL_OFFERS, ENTRY_TYPES
from ...algorithms.filter_compiler import FilterCompilationError
from .. import entry_service
from ..auth import get_auth, require_tier
from ..helpers import check_allowed, parse_list_param
from ..models import EntryEditRequest, EntryRequest, FilterFullRequest
from ..rate_limiter import limit_new_entries

logger = logging.getLogger(__name__)

router = APIRouter()


def _not_found(entry_id: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"error": "not_found", "message": f"Entry {entry_id} not found"},
    )


def _criteria_from_query(
    type: str | None,
    offers: list[str] | None,
    attributes: list[str] | None,
    text: str | None,
    accessible: str | None,
    page: int,
    lat: float | None,
    long: float | None,
    location: str | None,
) -> FilterCriteria:
    """Validate public filter parameters. Raises 400 on anything invalid."""
    offers = parse_list_param(offers)
    attributes = parse_list_param(attributes)

    if type is not None:
        if type not in ENTRY_TYPES:
            raise HTTPException(status_code=400, detail=f"Unknown entry type '{type}'")
        check_allowed(offers, ENTRY_TYPES[type].offers, "offers")
        check_allowed(attributes, ENTRY_TYPES[type].attributes, "attributes")
    else:
        check_allowed(offers, ALL_OFFERS, "offers")
        check_allowed(attributes, ALL_ATTRIBUTES, "attributes")

    if accessible is not None:
        check_allowed([accessible], ACCESSIBILITY_VALUES, "accessible")

    if (lat is None) != (long is None):
        raise HTTPException(status_code=400, detail="'lat' and 'long' must be given together")

    return FilterCriteria(
        type=type,
        offers=offers,
        attributes=attributes,
        text=(text or "").strip() or None,
        accessible=accessible,
        page=page,
        lat=lat,
        long=long,
        location=(location or "").strip() or None,
    )


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


@router.get("/api/entries")
async def list_entries(
    request: Request,
    type: str | None = Query(None, description="Entry type"),
    offers: list[str] | None = Query(None, description="Offer tags (any of)"),
    attributes: list[str] | None = Query(None, description="Attribute tags (any of)"),
    text: str | None = Query(None, max_length=100, description="Name search (case-insensitive)"),
    accessible: str | None = Query(None, description="yes, no or unknown"),
    page: int = Query(0, ge=0),
    lat: float | None = Query(None, ge=-90, le=90),
    long: float | None = Query(None, ge=-180, le=180),
    location: str | None = Query(None, max_length=100, description="Place name or postal code"),
) -> dict[str, Any]:
    """
    Approved entries matching every given filter.

    With ``lat``/``long`` or a resolvable ``location`` the results are
    ordered by distance and carry ``distance`` in km; otherwise the most
    recently approved come first.
    """
    criteria = _criteria_from_query(type, offers, attributes, text, accessible, page, lat, long, location)
    return entry_service.filter_entries(criteria, request.app.state.settings)


@router.post("/api/entries", status_code=201, dependencies=[Depends(limit_new_entries)])
async def create_entry(request: Request, body: EntryRequest) -> dict[str, Any]:
    """Submit a new entry. It stays hidden until a moderator approves it."""
    return entry_service.add_entry(
        body.model_dump(),
        request.app.state.settings,
        request.app.state.geocode_queue,
    )


# ---------------------------------------------------------------------------
# Moderator / admin collections (before /{entry_id})
# ---------------------------------------------------------------------------


@router.get("/api/entries/unapproved", dependencies=[Depends(require_tier("moderator"))])
async def list_unapproved(
    request: Request,
    page: int = Query(0, ge=0),
) -> dict[str, Any]:
    """Entries awaiting moderation, newest first."""
    return entry_service.get_unapproved(page, request.app.state.settings)


@router.post("/api/entries/full", dependencies=[Depends(require_tier("admin"))])
async def filter_full(request: Request, body: FilterFullRequest) -> dict[str, Any]:
    """Admin search over all entries with a filter expression."""
    try:
        return entry_service.filter_full(
            body.filter,
            body.page,
            request.app.state.user_names,
            request.app.state.settings,
        )
    except FilterCompilationError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "compilation_failed", "message": str(e)},
        )


@router.get("/api/entries/backup", dependencies=[Depends(require_tier("admin"))])
async def backup_entries(request: Request):
    """Download a JSON backup of every entry."""
    try:
        path = entry_service.export_entries(request.app.state.settings)
    except Exception as e:
        logger.exception("Entry export failed")
        raise HTTPException(
            status_code=500,
            detail={"error": "backup_failed", "message": str(e)},
        )
    return FileResponse(path, media_type="application/json", filename="entries.json")


# ---------------------------------------------------------------------------
# Single entry
# ---------------------------------------------------------------------------


@router.get("/api/entries/{entry_id}")
async def get_entry(entry_id: str) -> dict[str, Any]:
    """A single approved entry."""
    entry = entry_service.get_public_entry(entry_id)
    if entry is None:
        raise _not_found(entry_id)
    return entry


@router.patch("/api/entries/{entry_id}/approve", dependencies=[Depends(require_tier("moderator"))])
async def approve_entry(request: Request, entry_id: str) -> dict[str, Any]:
    auth = get_auth(request)
    if not entry_service.approve(entry_id, auth.user_id):
        raise _not_found(entry_id)
    logger.info("Entry %s approved by %s", entry_id, auth.username)
    return {"id": entry_id, "approved": True}


@router.patch("/api/entries/{entry_id}/unapprove", dependencies=[Depends(require_tier("moderator"))])
async def unapprove_entry(request: Request, entry_id: str) -> dict[str, Any]:
    if not entry_service.unapprove(entry_id):
        raise _not_found(entry_id)
    logger.info("Entry %s unapproved by %s", entry_id, get_auth(request).username)
    return {"id": entry_id, "approved": False}


@router.patch("/api/entries/{entry_id}/block", dependencies=[Depends(require_tier("moderator"))])
async def block_entry(request: Request, entry_id: str) -> dict[str, Any]:
    if not entry_service.set_blocked(entry_id, True):
        raise _not_found(entry_id)
    logger.info("Entry %s blocked by %s", entry_id, get_auth(request).username)
    return {"id": entry_id, "blocked": True}


@router.patch("/api/entries/{entry_id}/unblock", dependencies=[Depends(require_tier("moderator"))])
async def unblock_entry(request: Request, entry_id: str) -> dict[str, Any]:
    if not entry_service.set_blocked(entry_id, False):
        raise _not_found(entry_id)
    logger.info("Entry %s unblocked by %s", entry_id, get_auth(request).username)
    return {"id": entry_id, "blocked": False}


@router.patch("/api/entries/{entry_id}/edit", dependencies=[Depends(require_tier("admin"))])
async def edit_entry(request: Request, entry_id: str, body: EntryEditRequest) -> dict[str, Any]:
    """Change entry content. Only the fields sent are touched."""
    changes = body.changes()
    if not changes:
        raise HTTPException(status_code=400, detail="No changes given")
    try:
        edited = entry_service.edit_entry(
            entry_id,
            changes,
            request.app.state.settings,
            request.app.state.geocode_queue,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if not edited:
        raise _not_found(entry_id)
    logger.info("Entry %s edited by %s: %s", entry_id, get_auth(request).username, sorted(changes))
    return {"id": entry_id, "updated": sorted(changes)}


@router.patch(
    "/api/entries/{entry_id}/geocode",
    status_code=202,
    dependencies=[Depends(require_tier("admin"))],
)
async def geocode_entry(request: Request, entry_id: str) -> dict[str, Any]:
    """Queue a fresh geocoding pass for the entry's address."""
    geocode_queue = request.app.state.geocode_queue
    if geocode_queue is None:
        raise HTTPException(status_code=409, detail="Geocoding is disabled")
    if not entry_service.retry_geocode(entry_id, geocode_queue):
        raise _not_found(entry_id)
    return {"id": entry_id, "queued": True}


@router.delete("/api/entries/{entry_id}", dependencies=[Depends(require_tier("moderator"))])
async def delete_entry(request: Request, entry_id: str) -> dict[str, Any]:
    if not entry_service.delete_entry(entry_id):
        raise _not_found(entry_id)
    logger.info("Entry %s deleted by %s", entry_id, get_auth(request).username)
    return {"id": entry_id, "deleted": True}
