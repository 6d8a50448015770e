"""
Provider Directory — Entry Types

Every listing is one of a closed set of types. Each type fixes which tags
(attributes, offers) and which type-specific meta fields an entry may carry.
The registry below is the single place those rules live; request validation
and ingestion both look types up here instead of branching on strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class EntryType:
    """Schema variant for one entry type."""

    name: str
    label: str
    attributes: frozenset[str] = field(default_factory=frozenset)
    offers: frozenset[str] = field(default_factory=frozenset)
    allows_min_age: bool = False
    subjects: frozenset[str] = field(default_factory=frozenset)

    @property
    def requires_offers(self) -> bool:
        """Types with an offer catalogue must list at least one offer."""
        return bool(self.offers)

    @property
    def requires_subject(self) -> bool:
        return bool(self.subjects)

    def allowed_meta_fields(self) -> set[str]:
        """Meta sub-fields an entry of this type may populate."""
        allowed = {"attributes", "specials"}
        if self.offers:
            allowed.add("offers")
        if self.allows_min_age:
            allowed.add("min_age")
        if self.subjects:
            allowed.add("subject")
        return allowed

    def validate_meta(self, meta: dict[str, Any]) -> list[str]:
        """
        Check a submitted meta block against this type.

        Returns a list of human-readable error strings. Empty list = valid.
        """
        errors: list[str] = []

        unknown_attrs = set(meta.get("attributes") or []) - self.attributes
        if unknown_attrs:
            errors.append(
                f"attributes not allowed for type '{self.name}': {sorted(unknown_attrs)}"
            )

        offers = meta.get("offers") or []
        if self.requires_offers and not offers:
            errors.append(f"type '{self.name}' requires at least one offer")
        unknown_offers = set(offers) - self.offers
        if unknown_offers:
            errors.append(
                f"offers not allowed for type '{self.name}': {sorted(unknown_offers)}"
            )

        if meta.get("min_age") is not None and not self.allows_min_age:
            errors.append(f"min_age is not allowed for type '{self.name}'")

        subject = meta.get("subject")
        if self.requires_subject:
            if subject not in self.subjects:
                errors.append(
                    f"subject must be one of {sorted(self.subjects)} for type '{self.name}'"
                )
        elif subject is not None:
            errors.append(f"subject is not allowed for type '{self.name}'")

        return errors

    def prune_meta(self, meta: dict[str, Any]) -> dict[str, Any]:
        """Null out every meta sub-field this type does not allow."""
        allowed = self.allowed_meta_fields()
        return {
            key: (meta.get(key) if key in allowed else None)
            for key in ("attributes", "specials", "min_age", "subject", "offers")
        }


_TRANSITION_CARE_OFFERS = frozenset({"hrt", "medication"})
_TRANSITION_CARE_ATTRIBUTES = frozenset({"treatsNB", "transFem", "transMasc", "remote"})

ENTRY_TYPES: dict[str, EntryType] = {
    t.name: t
    for t in (
        EntryType(
            name="group",
            label="Gruppe/Verein",
            attributes=frozenset({"trans", "regularMeetings", "consulting", "activities", "remote"}),
            allows_min_age=True,
        ),
        EntryType(
            name="therapist",
            label="Therapeut*in/Psychiater*in",
            attributes=frozenset({"selfPayedOnly", "youthOnly", "treatsNB", "remote"}),
            offers=frozenset({"indication", "therapy"}),
            subjects=frozenset({"therapist", "psychologist", "naturopath", "other"}),
        ),
        EntryType(
            name="surveyor",
            label="Gutachter*in",
            attributes=frozenset({"enby", "remote"}),
        ),
        EntryType(
            name="endocrinologist",
            label="Endokrinologische Praxis",
            attributes=frozenset({"treatsNB", "remote"}),
        ),
        EntryType(
            name="surgeon",
            label="Operateur*in",
            attributes=frozenset({"selfPayedOnly", "remote"}),
            offers=frozenset({
                "mastectomy", "vaginPI", "vaginCombined", "ffs", "penoid", "breast",
                "hyst", "orch", "clitPI", "bodyfem", "glottoplasty", "fms",
            }),
        ),
        EntryType(
            name="logopedics",
            label="Logopäd*in",
            attributes=frozenset({"remote"}),
        ),
        EntryType(
            name="hairremoval",
            label="Haarentfernung",
            attributes=frozenset({"insurancePay", "transfriendly", "hasDoctor"}),
            offers=frozenset({"laser", "ipl", "electro", "electroAE"}),
        ),
        EntryType(
            name="urologist",
            label="Urologische Praxis",
            attributes=_TRANSITION_CARE_ATTRIBUTES,
            offers=_TRANSITION_CARE_OFFERS,
        ),
        EntryType(
            name="gynecologist",
            label="Gynäkologische Praxis",
            attributes=_TRANSITION_CARE_ATTRIBUTES,
            offers=_TRANSITION_CARE_OFFERS,
        ),
        EntryType(
            name="GP",
            label="Hausärztliche Praxis",
            attributes=frozenset({"treatsNB", "remote"}),
            offers=_TRANSITION_CARE_OFFERS,
        ),
    )
}

ALL_ATTRIBUTES: frozenset[str] = frozenset().union(*(t.attributes for t in ENTRY_TYPES.values()))
ALL_OFFERS: frozenset[str] = frozenset().union(*(t.offers for t in ENTRY_TYPES.values()))

ACCESSIBILITY_VALUES = ("yes", "no", "unknown")


def get_entry_type(name: str) -> EntryType:
    """Look up a type. Raises KeyError for names outside the registry."""
    return ENTRY_TYPES[name]


def type_label(name: str | None) -> str:
    """Human-readable label for an entry type."""
    entry_type = ENTRY_TYPES.get(name or "")
    return entry_type.label if entry_type else (name or "Unknown")
