"""
Provider Directory — Entry Query Builder

Turns optional filter criteria into one conjunctive query. A built query
carries two equivalent renderings of the same conditions:

    - a parameterised SQL WHERE fragment over the ``entries`` table
      (alias ``e``), used in database mode
    - an in-memory predicate over entry dicts, used in JSON fallback mode

Tag validity per entry type is enforced by request validation before
criteria reach this module; here tags only need to intersect.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from .text import escape_regex, literal_regex

Predicate = Callable[[dict[str, Any]], bool]


class Visibility(str, Enum):
    """Which moderation states a query may return."""

    PUBLIC = "public"          # approved, not blocked
    UNAPPROVED = "unapproved"  # awaiting moderation, not blocked
    ALL = "all"                # admin: no restriction


@dataclass
class FilterCriteria:
    """Public filter criteria. Every field is optional."""

    type: str | None = None
    offers: list[str] | None = None
    attributes: list[str] | None = None
    text: str | None = None
    accessible: str | None = None
    page: int = 0
    lat: float | None = None
    long: float | None = None
    location: str | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.long is not None


@dataclass
class EntryQuery:
    """A conjunction of conditions, renderable as SQL or as a predicate."""

    conditions: list[str] = field(default_factory=list)
    params: list[Any] = field(default_factory=list)
    predicates: list[Predicate] = field(default_factory=list)

    def add(self, sql: str, params: list[Any], predicate: Predicate) -> "EntryQuery":
        self.conditions.append(sql)
        self.params.extend(params)
        self.predicates.append(predicate)
        return self

    def where_sql(self) -> str:
        """WHERE clause (with leading keyword) or empty string."""
        if not self.conditions:
            return ""
        return " WHERE " + " AND ".join(self.conditions)

    def matches(self, entry: dict[str, Any]) -> bool:
        return all(p(entry) for p in self.predicates)

    def filter(self, entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [e for e in entries if self.matches(e)]


# ---------------------------------------------------------------------------
# Predicate helpers
# ---------------------------------------------------------------------------


def _meta_list(entry: dict[str, Any], key: str) -> list[str]:
    return (entry.get("meta") or {}).get(key) or []


def _intersects(key: str, wanted: list[str]) -> Predicate:
    wanted_set = set(wanted)
    return lambda e: bool(wanted_set.intersection(_meta_list(e, key)))


def _text_matches(text: str) -> Predicate:
    pattern = literal_regex(text)

    def _check(entry: dict[str, Any]) -> bool:
        for key in ("name", "first_name", "last_name"):
            value = entry.get(key)
            if value and pattern.search(value):
                return True
        return False

    return _check


def _not_blocked(entry: dict[str, Any]) -> bool:
    return entry.get("blocked") is not True


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def build_entry_query(
    criteria: FilterCriteria | None = None,
    visibility: Visibility = Visibility.PUBLIC,
) -> EntryQuery:
    """
    Compose the query for ``criteria`` under the given visibility.

    All supplied criteria are ANDed. Free text is matched literally,
    case-insensitively and unanchored against name, first name and last
    name (any one of them).
    """
    query = EntryQuery()

    if visibility is Visibility.PUBLIC:
        query.add("e.approved = true", [], lambda e: e.get("approved") is True)
        query.add("e.blocked IS NOT TRUE", [], _not_blocked)
    elif visibility is Visibility.UNAPPROVED:
        query.add("e.approved = false", [], lambda e: not e.get("approved"))
        query.add("e.blocked IS NOT TRUE", [], _not_blocked)

    if criteria is None:
        return query

    if criteria.type:
        entry_type = criteria.type
        query.add("e.type = %s", [entry_type], lambda e: e.get("type") == entry_type)

    if criteria.offers:
        query.add("e.offers && %s::text[]", [list(criteria.offers)], _intersects("offers", criteria.offers))

    if criteria.attributes:
        query.add(
            "e.attributes && %s::text[]",
            [list(criteria.attributes)],
            _intersects("attributes", criteria.attributes),
        )

    if criteria.text:
        pattern = escape_regex(criteria.text)
        query.add(
            "(e.name ~* %s OR e.first_name ~* %s OR e.last_name ~* %s)",
            [pattern, pattern, pattern],
            _text_matches(criteria.text),
        )

    if criteria.accessible:
        accessible = criteria.accessible
        query.add("e.accessible = %s", [accessible], lambda e: e.get("accessible") == accessible)

    return query
