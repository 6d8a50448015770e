"""
Provider Directory — Admin Filter Compiler

Compiles the open-ended filter expressions used by the admin entry search
into an :class:`EntryQuery`. Expressions look like::

    {
        "conditions": [
            {"field": "approved", "op": "eq", "value": false},
            {"field": "name", "op": "contains", "value": "praxis"},
            {"field": "approved_by", "op": "eq", "value": "alice"},
            {"field": "submitted_timestamp", "op": "gte", "value": "2024-01-01T00:00:00Z"}
        ],
        "location": {"location_name": "Berlin", "max_distance_km": 25}
    }

``approved_by`` is matched against the moderator's display name, not the
stored user id. The location name is resolved by the caller and passed in
as ``pivot``; an unresolvable name simply drops the distance condition.

Anything the compiler does not understand raises FilterCompilationError so
callers can tell a bad expression apart from an empty result.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping

from .entry_query import EntryQuery, Predicate
from .geo_proximity import GeoPoint, haversine_km
from .ranking import timestamp_key
from .text import escape_regex, literal_regex


class FilterCompilationError(ValueError):
    """Raised for filter expressions that cannot be compiled."""


@dataclass(frozen=True)
class FieldSpec:
    sql: str
    kind: str  # text | bool | timestamp | list


# SQL expressions assume ``entries e LEFT JOIN users u ON u.id = e.approved_by``
FIELDS: dict[str, FieldSpec] = {
    "id": FieldSpec("e.id::text", "text"),
    "type": FieldSpec("e.type", "text"),
    "name": FieldSpec("e.name", "text"),
    "first_name": FieldSpec("e.first_name", "text"),
    "last_name": FieldSpec("e.last_name", "text"),
    "email": FieldSpec("e.email", "text"),
    "website": FieldSpec("e.website", "text"),
    "telephone": FieldSpec("e.telephone", "text"),
    "accessible": FieldSpec("e.accessible", "text"),
    "city": FieldSpec("e.city", "text"),
    "plz": FieldSpec("e.plz", "text"),
    "street": FieldSpec("e.street", "text"),
    "house": FieldSpec("e.house", "text"),
    "approved_by": FieldSpec("u.username", "text"),
    "possible_duplicate": FieldSpec("e.possible_duplicate::text", "text"),
    "approved": FieldSpec("e.approved", "bool"),
    "blocked": FieldSpec("COALESCE(e.blocked, false)", "bool"),
    "has_location": FieldSpec("(e.location IS NOT NULL)", "bool"),
    "submitted_timestamp": FieldSpec("e.submitted_timestamp", "timestamp"),
    "approved_timestamp": FieldSpec("e.approved_timestamp", "timestamp"),
    "offers": FieldSpec("e.offers", "list"),
    "attributes": FieldSpec("e.attributes", "list"),
}

OPERATORS: dict[str, set[str]] = {
    "text": {"eq", "ne", "in", "contains", "exists"},
    "bool": {"eq", "ne"},
    "timestamp": {"gte", "lte", "exists"},
    "list": {"contains", "in", "exists"},
}


@dataclass
class CompiledFilter:
    query: EntryQuery
    pivot: GeoPoint | None = None


# ---------------------------------------------------------------------------
# Field access for the in-memory predicate
# ---------------------------------------------------------------------------


def _getter(field_name: str, user_names: Mapping[str, str] | Any) -> Callable[[dict[str, Any]], Any]:
    if field_name in ("city", "plz", "street", "house"):
        return lambda e: (e.get("address") or {}).get(field_name)
    if field_name in ("offers", "attributes"):
        return lambda e: (e.get("meta") or {}).get(field_name)
    if field_name == "approved_by":
        return lambda e: user_names.get(e.get("approved_by")) if e.get("approved_by") else None
    if field_name == "has_location":
        return lambda e: e.get("location") is not None
    if field_name == "blocked":
        return lambda e: bool(e.get("blocked"))
    if field_name == "id":
        return lambda e: str(e.get("id")) if e.get("id") is not None else None
    return lambda e: e.get(field_name)


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def _as_text(value: Any, field_name: str) -> str:
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise FilterCompilationError(f"'{field_name}' expects a string value")
    return str(value)


def _as_text_list(value: Any, field_name: str) -> list[str]:
    if not isinstance(value, list) or not value:
        raise FilterCompilationError(f"'{field_name}' expects a non-empty list")
    return [_as_text(v, field_name) for v in value]


def _as_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise FilterCompilationError(f"'{field_name}' expects true or false")
    return value


def _as_timestamp(value: Any, field_name: str) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    raise FilterCompilationError(f"'{field_name}' expects an ISO 8601 timestamp")


# ---------------------------------------------------------------------------
# Condition compilation
# ---------------------------------------------------------------------------


def _compile_condition(
    cond: Any,
    user_names: Mapping[str, str] | Any,
) -> tuple[str, list[Any], Predicate]:
    if not isinstance(cond, dict):
        raise FilterCompilationError("each condition must be an object")

    field_name = cond.get("field")
    op = cond.get("op")
    value = cond.get("value")

    if not isinstance(field_name, str):
        raise FilterCompilationError("condition 'field' must be a string")
    if not isinstance(op, str):
        raise FilterCompilationError(f"condition 'op' for field '{field_name}' must be a string")

    spec = FIELDS.get(field_name)
    if spec is None:
        raise FilterCompilationError(f"unknown field '{field_name}'")
    if op not in OPERATORS[spec.kind]:
        raise FilterCompilationError(f"operator '{op}' not supported for field '{field_name}'")

    get = _getter(field_name, user_names)

    if op == "exists":
        wanted = _as_bool(value, field_name)
        sql = f"{spec.sql} IS {'NOT ' if wanted else ''}NULL"
        return sql, [], lambda e: (get(e) is not None) == wanted

    if spec.kind == "bool":
        flag = _as_bool(value, field_name)
        if op == "eq":
            return f"{spec.sql} = %s", [flag], lambda e: bool(get(e)) == flag
        return f"{spec.sql} <> %s", [flag], lambda e: bool(get(e)) != flag

    if spec.kind == "timestamp":
        ts = _as_timestamp(value, field_name)
        bound = ts.timestamp()
        if op == "gte":
            return f"{spec.sql} >= %s", [ts], lambda e: get(e) is not None and timestamp_key(get(e)) >= bound
        return f"{spec.sql} <= %s", [ts], lambda e: get(e) is not None and timestamp_key(get(e)) <= bound

    if spec.kind == "list":
        if op == "contains":
            item = _as_text(value, field_name)
            return f"%s = ANY({spec.sql})", [item], lambda e: item in (get(e) or [])
        items = _as_text_list(value, field_name)
        return f"{spec.sql} && %s::text[]", [items], lambda e: bool(set(items).intersection(get(e) or []))

    # text
    if op == "in":
        items = _as_text_list(value, field_name)
        return f"{spec.sql} = ANY(%s)", [items], lambda e: get(e) in items
    if op == "contains":
        text = _as_text(value, field_name)
        pattern = literal_regex(text)
        return (
            f"{spec.sql} ~* %s",
            [escape_regex(text)],
            lambda e: get(e) is not None and bool(pattern.search(str(get(e)))),
        )
    text = _as_text(value, field_name)
    if op == "eq":
        return f"{spec.sql} = %s", [text], lambda e: get(e) == text
    return f"{spec.sql} IS DISTINCT FROM %s", [text], lambda e: get(e) != text


def _compile_distance(location: dict[str, Any], pivot: GeoPoint) -> tuple[str, list[Any], Predicate] | None:
    max_km = location.get("max_distance_km")
    if max_km is None:
        return None
    if isinstance(max_km, bool) or not isinstance(max_km, (int, float)) or max_km <= 0:
        raise FilterCompilationError("'max_distance_km' must be a positive number")

    def _within(entry: dict[str, Any]) -> bool:
        point = GeoPoint.from_geojson(entry.get("location"))
        return point is not None and haversine_km(pivot, point) <= max_km

    sql = (
        "ST_Distance(e.location, ST_SetSRID(ST_MakePoint(%s, %s), 4326)::geography, false) "
        "<= %s * 1000"
    )
    return sql, [pivot.longitude, pivot.latitude, float(max_km)], _within


def location_name(expression: Any) -> str | None:
    """The place name an expression asks to search around, if any."""
    if not isinstance(expression, dict):
        return None
    location = expression.get("location")
    if isinstance(location, dict) and location.get("location_name"):
        return str(location["location_name"])
    return None


def compile_filter(
    expression: Any,
    user_names: Mapping[str, str] | Any,
    pivot: GeoPoint | None = None,
) -> CompiledFilter:
    """
    Compile an admin filter expression.

    ``user_names`` maps moderator ids to display names (any object with a
    ``get`` method). ``pivot`` is the resolved point for the expression's
    location name, if one was given and found.
    """
    if not isinstance(expression, dict):
        raise FilterCompilationError("filter must be an object")

    unknown_keys = set(expression) - {"conditions", "location"}
    if unknown_keys:
        raise FilterCompilationError(f"unknown filter keys: {sorted(unknown_keys)}")

    conditions = expression.get("conditions") or []
    if not isinstance(conditions, list):
        raise FilterCompilationError("'conditions' must be a list")

    query = EntryQuery()
    for cond in conditions:
        sql, params, predicate = _compile_condition(cond, user_names)
        query.add(sql, params, predicate)

    location = expression.get("location")
    if location is not None and not isinstance(location, dict):
        raise FilterCompilationError("'location' must be an object")

    if location and pivot is not None:
        distance = _compile_distance(location, pivot)
        if distance is not None:
            query.add(*distance)

    return CompiledFilter(query=query, pivot=pivot if location else None)
