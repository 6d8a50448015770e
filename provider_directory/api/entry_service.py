"""
Provider Directory — Entry Operations

The operations behind the entry routes: public filtering, moderation
listings, admin search, submission (with phone normalisation and duplicate
flagging), moderator mutations and backup export. Routes stay thin and
translate the outcomes here into HTTP responses.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any

from ..algorithms.duplicate_scorer import DuplicateConfig
from ..algorithms.duplicate_scorer import find_possible_duplicate as score_possible_duplicate
from ..algorithms.entry_query import FilterCriteria, Visibility, build_entry_query
from ..algorithms.entry_types import EntryType, get_entry_type
from ..algorithms.filter_compiler import compile_filter, location_name
from ..algorithms.phone import normalize_phone
from . import entry_store
from .config import Settings
from .geo_lookup import find_geo_location, resolve_place
from .helpers import filter_entries as output_filter
from .helpers import filter_entry, utcnow

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def filter_entries(criteria: FilterCriteria, settings: Settings) -> dict[str, Any]:
    """
    Public entry search.

    Returns ``{entries, location_name, more}``. ``location_name`` is the
    resolved place label, or None when the search fell back to recency order.
    """
    place = resolve_place(criteria)
    pivot = place.point if place else None

    query = build_entry_query(criteria, Visibility.PUBLIC)
    result = entry_store.query_page(query, criteria.page, settings.items_per_page, pivot=pivot)

    return {
        "entries": output_filter(result.entries),
        "location_name": place.name if place and pivot else None,
        "more": result.more,
    }


def get_unapproved(page: int, settings: Settings) -> dict[str, Any]:
    """Entries awaiting moderation, most recent first. Moderator view, unfiltered."""
    query = build_entry_query(None, Visibility.UNAPPROVED)
    result = entry_store.query_page(query, page, settings.items_per_page)
    return {"entries": result.entries, "more": result.more}


def filter_full(
    expression: dict[str, Any],
    page: int,
    user_names: Any,
    settings: Settings,
) -> dict[str, Any]:
    """
    Admin search over every entry with a compiled filter expression.

    Raises FilterCompilationError for expressions that do not compile.
    ``approved_by`` comes back as the moderator's display name.
    """
    pivot = None
    name = location_name(expression)
    if name:
        places = find_geo_location(name)
        if places:
            pivot = places[0].point

    compiled = compile_filter(expression, user_names, pivot=pivot)
    result = entry_store.query_page(
        compiled.query,
        page,
        settings.items_per_page,
        pivot=compiled.pivot,
        user_names=user_names,
    )
    return {"entries": result.entries, "more": result.more}


def get_public_entry(entry_id: str) -> dict[str, Any] | None:
    """A single approved, unblocked entry with moderator-only fields removed."""
    entry = entry_store.get_entry(entry_id)
    if entry is None or not entry.get("approved") or entry.get("blocked"):
        return None
    return filter_entry(entry)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


def find_possible_duplicate(entry: dict[str, Any], config: DuplicateConfig) -> str | None:
    """
    Id of the likely duplicate of ``entry`` among stored entries, or None.

    Never raises: a failing lookup just means no flag.
    """
    try:
        candidates = entry_store.list_entries_of_type(entry.get("type"))
        return score_possible_duplicate(entry, candidates, config)
    except Exception as e:
        logger.warning("Duplicate check failed for %r: %s", entry.get("name"), e)
        return None


def prepare_entry(raw: dict[str, Any], settings: Settings) -> dict[str, Any]:
    """Normalise a validated submission into a storable, unmoderated record."""
    entry_type = get_entry_type(raw["type"])
    record = copy.deepcopy(raw)
    record.pop("id", None)

    record["telephone"] = normalize_phone(record.get("telephone"), settings.phone_region)
    record["meta"] = entry_type.prune_meta(record.get("meta") or {})
    record.update(
        approved=False,
        blocked=False,
        approved_by=None,
        approved_timestamp=None,
        submitted_timestamp=utcnow(),
        possible_duplicate=None,
        location=None,
    )
    return record


def add_entry(raw: dict[str, Any], settings: Settings, geocode_queue: Any = None) -> dict[str, Any]:
    """
    Store a new submission.

    Returns ``{id, possible_duplicate}``. Geocoding is queued, not awaited.
    """
    record = prepare_entry(raw, settings)
    record["possible_duplicate"] = find_possible_duplicate(record, settings.duplicates)

    entry_id = entry_store.insert_entry(record)
    logger.info(
        "New %s entry %s%s",
        record["type"],
        entry_id,
        f" (possible duplicate of {record['possible_duplicate']})" if record["possible_duplicate"] else "",
    )

    _enqueue_geocode(geocode_queue, entry_id, record.get("address"))
    return {"id": entry_id, "possible_duplicate": record["possible_duplicate"]}


def _enqueue_geocode(geocode_queue: Any, entry_id: str, address: dict[str, Any] | None) -> None:
    if geocode_queue is None or not address:
        return
    geocode_queue.enqueue(entry_id, address)


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------


def approve(entry_id: str, user_id: str | None) -> bool:
    return entry_store.update_entry(
        entry_id,
        {
            "approved": True,
            "approved_by": user_id,
            "approved_timestamp": utcnow(),
            "possible_duplicate": None,
        },
    )


def unapprove(entry_id: str) -> bool:
    return entry_store.update_entry(
        entry_id,
        {"approved": False, "approved_by": None, "approved_timestamp": None},
    )


def set_blocked(entry_id: str, blocked: bool) -> bool:
    return entry_store.update_entry(entry_id, {"blocked": blocked})


def _carried_meta(meta: dict[str, Any], entry_type: EntryType) -> dict[str, Any]:
    """Existing meta with tags the (possibly new) type does not know removed."""
    carried = dict(meta)
    for key, allowed in (("attributes", entry_type.attributes), ("offers", entry_type.offers)):
        kept = [tag for tag in carried.get(key) or [] if tag in allowed]
        carried[key] = kept or None
    return carried


def edit_entry(
    entry_id: str,
    changes: dict[str, Any],
    settings: Settings,
    geocode_queue: Any = None,
) -> bool:
    """
    Admin edit of entry content. Moderation state is not editable here.

    Meta is merged with the stored meta and re-validated against the
    (possibly new) type; ValueError lists what the result is missing. A
    changed address clears the stored location and queues a new geocoding
    pass.
    """
    current = entry_store.get_entry(entry_id)
    if current is None:
        return False

    changes = copy.deepcopy(changes)
    if "telephone" in changes:
        changes["telephone"] = normalize_phone(changes["telephone"], settings.phone_region)

    entry_type = get_entry_type(changes.get("type") or current["type"])
    if "meta" in changes or "type" in changes:
        meta = _carried_meta(current.get("meta") or {}, entry_type)
        meta.update(changes.get("meta") or {})
        meta = entry_type.prune_meta(meta)
        errors = entry_type.validate_meta(meta)
        if errors:
            raise ValueError("; ".join(errors))
        changes["meta"] = meta

    address_changed = False
    if "address" in changes:
        address = dict(current.get("address") or {})
        address.update(changes["address"])
        address_changed = address != current.get("address")
        changes["address"] = address

    if not entry_store.update_entry(entry_id, changes):
        return False

    if address_changed:
        entry_store.update_entry(entry_id, {"location": None})
        _enqueue_geocode(geocode_queue, entry_id, changes["address"])
    return True


def delete_entry(entry_id: str) -> bool:
    return entry_store.delete_entry(entry_id)


def retry_geocode(entry_id: str, geocode_queue: Any) -> bool:
    """Queue a fresh geocoding pass for an existing entry."""
    entry = entry_store.get_entry(entry_id)
    if entry is None:
        return False
    _enqueue_geocode(geocode_queue, entry_id, entry.get("address"))
    return True


# ---------------------------------------------------------------------------
# Backup export
# ---------------------------------------------------------------------------


def export_entries(settings: Settings) -> Path:
    """
    Path of an up-to-date JSON backup of every entry.

    A new file ``<backup_folder>/<timestamp>/entries.json`` is written only
    when entries changed since the last export; otherwise the previous file
    is returned. Errors propagate to the caller.
    """
    meta = entry_store.get_entries_meta() or {}
    last_change = meta.get("last_change_timestamp")
    last_export = meta.get("last_export_timestamp")

    if last_export is not None and last_change is not None and last_change <= last_export:
        previous = _backup_path(settings.backup_folder, last_export)
        if previous.exists():
            logger.info("No changes since last export, reusing %s", previous)
            return previous

    now = utcnow()
    path = _backup_path(settings.backup_folder, now)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(entry_store.dump_entries(entry_store.list_all_entries()), encoding="utf-8")

    entry_store.mark_entries_exported(now)
    logger.info("Exported entries to %s", path)
    return path


def _backup_path(folder: Path, timestamp) -> Path:
    return Path(folder) / timestamp.strftime("%Y%m%dT%H%M%S%fZ") / "entries.json"
