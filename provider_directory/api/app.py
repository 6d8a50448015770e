#!/usr/bin/env python3
"""
Provider Directory — API

Dual-mode FastAPI server:
  • Database mode: reads and writes PostgreSQL/PostGIS when available
  • JSON fallback: serves entries and the gazetteer from JSON files held
    in memory (``data_dir`` in the settings file)

Usage:
    uvicorn provider_directory.api.app:app --reload --port 8000
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from . import db, entry_store
from .auth import auth_middleware
from .config import load_settings
from .geocoder import GeocodeQueue, NominatimGeocoder
from .helpers import load_fallback_data
from .rate_limiter import rate_limit_middleware
from .routes import entries, geo, health
from .user_names import build_user_name_cache

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Provider Directory",
    version=__version__,
    description="Search and moderation API for the provider directory",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Auth must run before rate limiting (the limiter keys on the API key).
# Starlette runs middleware in reverse registration order.
app.middleware("http")(rate_limit_middleware)
app.middleware("http")(auth_middleware)

app.include_router(entries.router)
app.include_router(geo.router)
app.include_router(health.router)

app.state.settings = load_settings()
app.state.user_names = None
app.state.geocode_queue = None
app.state.server_started_at = datetime.now(timezone.utc)


@app.on_event("startup")
async def startup():
    settings = load_settings()
    app.state.settings = settings
    app.state.server_started_at = datetime.now(timezone.utc)

    # Always load JSON (fallback data)
    load_fallback_data(settings.data_dir)

    # Try to connect to DB (best-effort)
    if db.init_pool():
        logger.info("Running in DATABASE mode")
        try:
            db.ensure_schema()
        except Exception as e:
            logger.warning("Could not apply schema: %s", e)
    else:
        logger.info("Running in JSON FALLBACK mode")

    app.state.user_names = build_user_name_cache()

    if settings.geocoding_enabled:
        geocode_queue = GeocodeQueue(
            NominatimGeocoder.from_settings(settings.geocoder),
            entry_store.set_location,
        )
        geocode_queue.start()
        app.state.geocode_queue = geocode_queue
    else:
        logger.info("Geocoding disabled")


@app.on_event("shutdown")
async def shutdown():
    if app.state.geocode_queue is not None:
        app.state.geocode_queue.stop()
    db.close_pool()
