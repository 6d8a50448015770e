"""
Entry persistence for both run modes.

Database mode reads and writes the ``entries`` table; JSON fallback mode
works on the in-memory lists in ``helpers``. Reads that fail against the
database are logged and answered from the fallback data instead; writes
propagate their errors to the caller.

All functions take and return entries in the API dict shape (see
``helpers.db_row_to_entry``).
"""

from __future__ import annotations

import copy
import json
import logging
import uuid
from datetime import datetime
from typing import Any

from ..algorithms.entry_query import EntryQuery
from ..algorithms.geo_proximity import GeoPoint
from ..algorithms.ranking import RankedPage, page_bounds, rank_by_distance, rank_by_recency
from . import db
from .db import extras
from .helpers import (
    STATE_LOCK,
    db_row_to_entry,
    get_collection_meta,
    get_entries,
    get_index,
    iso,
    utcnow,
)

logger = logging.getLogger(__name__)

ENTRY_COLUMNS = """
    e.id, e.type, e.name, e.first_name, e.last_name, e.email, e.website,
    e.telephone, e.accessible, e.city, e.plz, e.street, e.house,
    e.offers, e.attributes, e.specials, e.min_age, e.subject,
    e.approved, e.blocked, e.approved_by, e.approved_timestamp,
    e.submitted_timestamp, e.possible_duplicate,
    ST_AsGeoJSON(e.location)::json AS location_json
"""

_PIVOT_SQL = "ST_SetSRID(ST_MakePoint(%s, %s), 4326)::geography"

_TOP_LEVEL_COLUMNS = (
    "type", "name", "first_name", "last_name", "email", "website", "telephone",
    "accessible", "approved", "blocked", "approved_by", "approved_timestamp",
    "submitted_timestamp", "possible_duplicate",
)
_ADDRESS_COLUMNS = ("city", "plz", "street", "house")
_META_COLUMNS = ("offers", "attributes", "specials", "min_age", "subject")


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
        return True
    except ValueError:
        return False


def _flatten(changes: dict[str, Any]) -> dict[str, Any]:
    """API-shaped partial entry → column/value pairs."""
    columns: dict[str, Any] = {}
    for key in _TOP_LEVEL_COLUMNS:
        if key in changes:
            value = changes[key]
            if key.endswith("_timestamp") and isinstance(value, str):
                value = datetime.fromisoformat(value.replace("Z", "+00:00"))
            columns[key] = value
    # points are written through set_location; updates may only clear one
    if "location" in changes and changes["location"] is None:
        columns["location"] = None
    for key in _ADDRESS_COLUMNS:
        if key in (changes.get("address") or {}):
            columns[key] = changes["address"][key]
    for key in _META_COLUMNS:
        if key in (changes.get("meta") or {}):
            columns[key] = changes["meta"][key]
    return columns


def _merge(entry: dict[str, Any], changes: dict[str, Any]) -> None:
    for key, value in changes.items():
        if key in ("address", "meta") and isinstance(value, dict):
            nested = dict(entry.get(key) or {})
            nested.update(value)
            entry[key] = nested
        else:
            entry[key] = value


# ---------------------------------------------------------------------------
# Collection metadata (drives backup export)
# ---------------------------------------------------------------------------


def mark_entries_changed() -> None:
    """Record that the entries collection changed. Call after every write."""
    now = utcnow()
    if db.is_available():
        with db.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO collection_meta (about, last_change_timestamp)
                    VALUES ('entries', %s)
                    ON CONFLICT (about) DO UPDATE SET last_change_timestamp = EXCLUDED.last_change_timestamp
                    """,
                    (now,),
                )
        return

    with STATE_LOCK:
        meta = get_collection_meta().setdefault(
            "entries", {"last_change_timestamp": now, "last_export_timestamp": None}
        )
        meta["last_change_timestamp"] = now


def mark_entries_exported(timestamp: datetime) -> None:
    if db.is_available():
        with db.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO collection_meta (about, last_change_timestamp, last_export_timestamp)
                    VALUES ('entries', %s, %s)
                    ON CONFLICT (about) DO UPDATE SET last_export_timestamp = EXCLUDED.last_export_timestamp
                    """,
                    (timestamp, timestamp),
                )
        return

    with STATE_LOCK:
        meta = get_collection_meta().setdefault(
            "entries", {"last_change_timestamp": timestamp, "last_export_timestamp": None}
        )
        meta["last_export_timestamp"] = timestamp


def get_entries_meta() -> dict[str, Any] | None:
    """{last_change_timestamp, last_export_timestamp} or None if never written."""
    if db.is_available():
        with db.get_conn() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(
                    "SELECT last_change_timestamp, last_export_timestamp FROM collection_meta WHERE about = 'entries'"
                )
                row = cur.fetchone()
        return dict(row) if row else None

    meta = get_collection_meta().get("entries")
    return dict(meta) if meta else None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def _db_query_page(
    query: EntryQuery,
    page: int,
    page_size: int,
    pivot: GeoPoint | None,
    with_usernames: bool,
) -> RankedPage | None:
    """Ordered page from DB. Returns None if DB unavailable or the query failed."""
    if not db.is_available():
        return None

    skip, limit = page_bounds(page, page_size)
    where = query.where_sql()
    select = f"{ENTRY_COLUMNS}, u.username AS approved_by_name"
    source = "entries e LEFT JOIN users u ON u.id = e.approved_by"

    if pivot is not None:
        where = (where + " AND " if where else " WHERE ") + "e.location IS NOT NULL"
        sql = f"""
            SELECT {select},
                   round((ST_Distance(e.location, {_PIVOT_SQL}, false) / 1000)::numeric, 2) AS distance
            FROM {source}
            {where}
            ORDER BY distance, e.id
            LIMIT %s OFFSET %s
        """
        params = [pivot.longitude, pivot.latitude, *query.params, limit, skip]
    else:
        sql = f"""
            SELECT {select}
            FROM {source}
            {where}
            ORDER BY e.approved_timestamp DESC NULLS LAST, e.submitted_timestamp DESC, e.id DESC
            LIMIT %s OFFSET %s
        """
        params = [*query.params, limit, skip]

    try:
        with db.get_conn() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
    except Exception as e:
        logger.warning("DB entry query failed, will fall back to JSON: %s", e)
        return None

    entries = []
    for row in rows:
        entry = db_row_to_entry(row)
        if with_usernames:
            entry["approved_by"] = row.get("approved_by_name") or entry["approved_by"]
        entries.append(entry)
    return RankedPage.from_page(entries, page_size)


def query_page(
    query: EntryQuery,
    page: int,
    page_size: int,
    pivot: GeoPoint | None = None,
    user_names: Any = None,
) -> RankedPage:
    """
    Matching entries, ordered and paginated.

    Geo mode when ``pivot`` is given, recency mode otherwise. With
    ``user_names`` set, ``approved_by`` holds the moderator's display name
    instead of their id (ids with no known user are kept). Returned dicts
    are copies and safe to modify.
    """
    result = _db_query_page(query, page, page_size, pivot, with_usernames=user_names is not None)
    if result is not None:
        return result

    with STATE_LOCK:
        matched = [copy.deepcopy(e) for e in query.filter(get_entries())]

    if pivot is not None:
        result = rank_by_distance(matched, pivot, page, page_size)
    else:
        result = rank_by_recency(matched, page, page_size)

    if user_names is not None:
        for entry in result.entries:
            entry["approved_by"] = user_names.get(entry.get("approved_by"), entry.get("approved_by"))
    return result


def get_entry(entry_id: str) -> dict[str, Any] | None:
    """Single entry (all fields) or None."""
    if db.is_available():
        if not _is_uuid(entry_id):
            return None
        with db.get_conn() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(f"SELECT {ENTRY_COLUMNS} FROM entries e WHERE e.id = %s", (entry_id,))
                row = cur.fetchone()
        return db_row_to_entry(row) if row else None

    with STATE_LOCK:
        entry = get_index().get(entry_id)
        return copy.deepcopy(entry) if entry else None


def list_entries_of_type(entry_type: str) -> list[dict[str, Any]]:
    """Every entry of one type, any moderation state (duplicate candidates)."""
    if db.is_available():
        with db.get_conn() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(f"SELECT {ENTRY_COLUMNS} FROM entries e WHERE e.type = %s", (entry_type,))
                rows = cur.fetchall()
        return [db_row_to_entry(r) for r in rows]

    with STATE_LOCK:
        return [copy.deepcopy(e) for e in get_entries() if e.get("type") == entry_type]


def list_all_entries() -> list[dict[str, Any]]:
    """Every entry with every field (backup export)."""
    if db.is_available():
        with db.get_conn() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(f"SELECT {ENTRY_COLUMNS} FROM entries e ORDER BY e.submitted_timestamp")
                rows = cur.fetchall()
        return [db_row_to_entry(r) for r in rows]

    with STATE_LOCK:
        return copy.deepcopy(get_entries())


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def insert_entry(record: dict[str, Any]) -> str:
    """Persist a new entry. Returns its id."""
    if db.is_available():
        columns = _flatten(record)
        names = list(columns)
        placeholders = ", ".join(["%s"] * len(names))
        with db.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"INSERT INTO entries ({', '.join(names)}) VALUES ({placeholders}) RETURNING id",
                    [columns[n] for n in names],
                )
                entry_id = str(cur.fetchone()[0])
    else:
        entry_id = str(uuid.uuid4())
        entry = copy.deepcopy(record)
        entry["id"] = entry_id
        for key in ("submitted_timestamp", "approved_timestamp"):
            if isinstance(entry.get(key), datetime):
                entry[key] = iso(entry[key])
        with STATE_LOCK:
            get_entries().append(entry)
            get_index()[entry_id] = entry

    mark_entries_changed()
    return entry_id


def update_entry(entry_id: str, changes: dict[str, Any]) -> bool:
    """
    Apply a partial, API-shaped update (nested ``address`` / ``meta`` are
    merged). Returns whether an entry was changed.
    """
    if not changes:
        return False

    if db.is_available():
        if not _is_uuid(entry_id):
            return False
        columns = _flatten(changes)
        if not columns:
            return False
        assignments = ", ".join(f"{name} = %s" for name in columns)
        with db.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE entries SET {assignments} WHERE id = %s",
                    [*columns.values(), entry_id],
                )
                updated = cur.rowcount > 0
    else:
        changes = copy.deepcopy(changes)
        for key in ("submitted_timestamp", "approved_timestamp"):
            if isinstance(changes.get(key), datetime):
                changes[key] = iso(changes[key])
        with STATE_LOCK:
            entry = get_index().get(entry_id)
            updated = entry is not None
            if entry is not None:
                _merge(entry, changes)

    if updated:
        mark_entries_changed()
    return updated


def delete_entry(entry_id: str) -> bool:
    if db.is_available():
        if not _is_uuid(entry_id):
            return False
        with db.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM entries WHERE id = %s", (entry_id,))
                deleted = cur.rowcount > 0
    else:
        with STATE_LOCK:
            entry = get_index().pop(entry_id, None)
            deleted = entry is not None
            if entry is not None:
                get_entries().remove(entry)
                # mirror ON DELETE SET NULL
                for other in get_entries():
                    if other.get("possible_duplicate") == entry_id:
                        other["possible_duplicate"] = None

    if deleted:
        mark_entries_changed()
    return deleted


def set_location(entry_id: str, location: dict[str, Any]) -> bool:
    """
    Store a geocoded GeoJSON point. Returns False when the entry no longer
    exists (deleted while the geocode job was queued).
    """
    point = GeoPoint.from_geojson(location)
    if point is None:
        return False

    if db.is_available():
        if not _is_uuid(entry_id):
            return False
        with db.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE entries SET location = {_PIVOT_SQL} WHERE id = %s",
                    (point.longitude, point.latitude, entry_id),
                )
                stored = cur.rowcount > 0
    else:
        with STATE_LOCK:
            entry = get_index().get(entry_id)
            stored = entry is not None
            if entry is not None:
                entry["location"] = point.to_geojson()

    if stored:
        mark_entries_changed()
    return stored


def dump_entries(entries: list[dict[str, Any]]) -> str:
    """Serialise entries for a backup file."""
    return json.dumps(entries, ensure_ascii=False, indent=2, default=iso)
