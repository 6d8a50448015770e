"""Health check and entry type catalogue."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from ...algorithms.entry_types import ENTRY_TYPES
from .. import db
from ..helpers import get_entries, get_geodata, iso

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/health")
async def health(request: Request):
    """Health check: mode, entry count, version, DB latency, geocode backlog. Always open."""
    mode = "database" if db.is_available() else "json_fallback"
    entry_count = 0
    db_ok = False
    db_latency_ms: float | None = None

    if db.is_available():
        try:
            t0 = time.monotonic()
            with db.get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT count(*) FROM entries")
                    entry_count = cur.fetchone()[0]
            db_latency_ms = round((time.monotonic() - t0) * 1000, 1)
            db_ok = True
        except Exception as e:
            logger.warning("Health check query failed: %s", e)
            entry_count = len(get_entries())
            mode = "json_fallback"
    else:
        entry_count = len(get_entries())

    server_started_at = request.app.state.server_started_at
    uptime_seconds = round((datetime.now(timezone.utc) - server_started_at).total_seconds())

    geocode_queue = request.app.state.geocode_queue
    overall_status = "healthy" if db_ok else "degraded"
    http_status = 200 if db_ok else 503

    return JSONResponse(
        status_code=http_status,
        content={
            "status": overall_status,
            "mode": mode,
            "entry_count": entry_count,
            "gazetteer_count": None if db_ok else len(get_geodata()),
            "version": request.app.version,
            "database_connected": db_ok,
            "started_at": iso(server_started_at),
            "uptime_seconds": uptime_seconds,
            "checks": {
                "database": {
                    "status": "up" if db_ok else "down",
                    "latency_ms": db_latency_ms,
                },
                "geocoder": {
                    "enabled": geocode_queue is not None,
                    "pending": geocode_queue.pending() if geocode_queue is not None else 0,
                },
            },
        },
    )


@router.get("/api/entry-types")
async def entry_types() -> list[dict[str, Any]]:
    """Every entry type with the tags and meta fields it accepts."""
    return [
        {
            "name": t.name,
            "label": t.label,
            "attributes": sorted(t.attributes),
            "offers": sorted(t.offers),
            "requires_offers": t.requires_offers,
            "allows_min_age": t.allows_min_age,
            "subjects": sorted(t.subjects),
        }
        for t in ENTRY_TYPES.values()
    ]
