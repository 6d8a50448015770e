"""Shared helpers, output filters, and JSON fallback state for the Provider Directory API."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi import HTTPException

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# JSON fallback state (populated by load_fallback_data)
# ---------------------------------------------------------------------------

_ENTRIES: list[dict[str, Any]] = []
_INDEX: dict[str, dict[str, Any]] = {}
_GEODATA: list[dict[str, Any]] = []
_USERS: list[dict[str, Any]] = []
_COLLECTION_META: dict[str, dict[str, Any]] = {}

# Guards every in-memory mutation (request handlers and the geocode worker)
STATE_LOCK = threading.RLock()


def _read_json_list(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        logger.info("No fallback file at %s", path)
        return []
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        logger.warning("Ignoring %s: expected a JSON list", path)
        return []
    logger.info("Loaded %d records from %s", len(data), path)
    return data


def load_fallback_data(data_dir: Path) -> None:
    """
    Load entries, gazetteer and users from JSON files in ``data_dir``.

    Files: entries.json, geodata.json, users.json. Missing files load as
    empty collections.
    """
    global _ENTRIES, _INDEX, _GEODATA, _USERS  # noqa: PLW0603

    entries = _read_json_list(data_dir / "entries.json")

    # Deduplicate by id (safety net)
    seen: set[str] = set()
    unique: list[dict[str, Any]] = []
    for e in entries:
        eid = e.get("id")
        if eid and eid not in seen:
            seen.add(eid)
            unique.append(e)

    with STATE_LOCK:
        _ENTRIES = unique
        _INDEX = {e["id"]: e for e in _ENTRIES}
        _GEODATA = _read_json_list(data_dir / "geodata.json")
        _USERS = _read_json_list(data_dir / "users.json")

    logger.info("Total unique JSON entries loaded: %d", len(_ENTRIES))


def get_entries() -> list[dict[str, Any]]:
    """Access the JSON fallback entries list."""
    return _ENTRIES


def get_index() -> dict[str, dict[str, Any]]:
    """Access the JSON fallback entry index."""
    return _INDEX


def get_geodata() -> list[dict[str, Any]]:
    """Access the JSON fallback gazetteer."""
    return _GEODATA


def get_users() -> list[dict[str, Any]]:
    """Access the JSON fallback users list."""
    return _USERS


def get_collection_meta() -> dict[str, dict[str, Any]]:
    """Access the JSON fallback collection metadata."""
    return _COLLECTION_META


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def iso(dt) -> str | None:
    """Convert a datetime to ISO string."""
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return dt.isoformat()
    return str(dt)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Output filters
# ---------------------------------------------------------------------------

# Never returned by the public API
MODERATOR_ONLY_FIELDS = (
    "approved_by",
    "approved_timestamp",
    "submitted_timestamp",
    "location",
    "blocked",
)


def filter_entry(entry: dict[str, Any]) -> dict[str, Any]:
    """Remove moderator-only fields from an entry. Modifies in-place and returns."""
    for key in MODERATOR_ONLY_FIELDS:
        entry.pop(key, None)
    return entry


def filter_entries(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    for entry in entries:
        filter_entry(entry)
    return entries


# ---------------------------------------------------------------------------
# Database row converters
# ---------------------------------------------------------------------------


def db_row_to_entry(row: dict) -> dict:
    """Convert a DB row (RealDictRow) to the API's entry dict format."""
    approved_by = row.get("approved_by")
    possible_duplicate = row.get("possible_duplicate")
    entry = {
        "id": str(row["id"]),
        "type": row["type"],
        "name": row["name"],
        "first_name": row.get("first_name"),
        "last_name": row.get("last_name"),
        "email": row.get("email"),
        "website": row.get("website"),
        "telephone": row.get("telephone"),
        "accessible": row.get("accessible"),
        "address": {
            "city": row.get("city"),
            "plz": row.get("plz"),
            "street": row.get("street"),
            "house": row.get("house"),
        },
        "meta": {
            "offers": row.get("offers"),
            "attributes": row.get("attributes"),
            "specials": row.get("specials"),
            "min_age": row.get("min_age"),
            "subject": row.get("subject"),
        },
        "approved": bool(row.get("approved")),
        "blocked": bool(row.get("blocked")),
        "approved_by": str(approved_by) if approved_by is not None else None,
        "approved_timestamp": iso(row.get("approved_timestamp")),
        "submitted_timestamp": iso(row.get("submitted_timestamp")),
        "possible_duplicate": str(possible_duplicate) if possible_duplicate is not None else None,
        "location": row.get("location_json"),
    }
    if row.get("distance") is not None:
        entry["distance"] = float(row["distance"])
    return entry


# ---------------------------------------------------------------------------
# Query parameter parsing
# ---------------------------------------------------------------------------


def parse_list_param(values: list[str] | None) -> list[str] | None:
    """
    Flatten a repeated and/or comma-separated query parameter.

    ``?offers=hrt&offers=medication`` and ``?offers=hrt,medication`` both
    give ``["hrt", "medication"]``. Returns None when nothing was given.
    """
    if not values:
        return None
    items = [item.strip() for value in values for item in value.split(",")]
    items = [item for item in items if item]
    return items or None


def check_allowed(values: list[str] | None, allowed, param_name: str) -> None:
    """Raise 400 if ``values`` contains anything outside ``allowed``."""
    unknown = sorted(set(values or []) - set(allowed))
    if unknown:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid value(s) for '{param_name}': {', '.join(unknown)}",
        )
