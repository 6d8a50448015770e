#!/usr/bin/env python3
"""
Provider Directory — Duplicate Submission Scorer

Flags a new submission as a likely duplicate of an existing listing so a
moderator can look at both before approving. The score is a weighted count
of exactly equal fields:

    score = other_score + address_weight × address_score

where ``other_score`` counts equal top-level fields and ``address_score``
counts equal address sub-fields. Fields missing on the submission never
contribute. Only entries of the same type are compared.

The threshold (3) and address weight (0.5) are empirical; both are read
from the ``duplicates`` section of the settings file.

Dependencies:
    pip install pyyaml
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml

from .ranking import timestamp_key
from .text import strip_empty


# ---------------------------------------------------------------------------
# Defaults (overridden by the settings file at runtime)
# ---------------------------------------------------------------------------

DEFAULT_THRESHOLD = 3.0
DEFAULT_ADDRESS_WEIGHT = 0.5

# Top-level fields that describe the listing itself. Bookkeeping fields
# (ids, moderation flags, timestamps, location) are never compared.
COMPARED_FIELDS = (
    "type",
    "name",
    "first_name",
    "last_name",
    "email",
    "website",
    "telephone",
    "accessible",
    "meta",
)

ADDRESS_FIELDS = ("city", "plz", "street", "house")


@dataclass
class DuplicateConfig:
    """Scorer configuration."""

    threshold: float = DEFAULT_THRESHOLD
    address_weight: float = DEFAULT_ADDRESS_WEIGHT
    compared_fields: tuple[str, ...] = field(default=COMPARED_FIELDS)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "DuplicateConfig":
        raw = raw or {}
        return cls(
            threshold=float(raw.get("threshold", DEFAULT_THRESHOLD)),
            address_weight=float(raw.get("address_weight", DEFAULT_ADDRESS_WEIGHT)),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "DuplicateConfig":
        """Load the ``duplicates`` section of a YAML settings file."""
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
        return cls.from_dict(raw.get("duplicates"))


# ---------------------------------------------------------------------------
# Pair scoring
# ---------------------------------------------------------------------------


@dataclass
class DuplicateMatch:
    """Result of comparing a submission with one existing entry."""

    entry_id: str
    other_score: int
    address_score: int
    score: float
    matched_fields: list[str]
    submitted_timestamp: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "other_score": self.other_score,
            "address_score": self.address_score,
            "score": self.score,
            "matched_fields": self.matched_fields,
        }


def score_pair(
    candidate: dict[str, Any],
    existing: dict[str, Any],
    config: DuplicateConfig | None = None,
) -> DuplicateMatch:
    """
    Score ``candidate`` (a new submission) against one ``existing`` entry.

    Only fields present on both sides count. Neither record needs to be
    pre-cleaned; nulls are stripped here.
    """
    if config is None:
        config = DuplicateConfig()

    cand = strip_empty(candidate)
    other = strip_empty(existing)

    matched: list[str] = []

    other_score = 0
    for key in config.compared_fields:
        if key in cand and key in other and cand[key] == other[key]:
            other_score += 1
            matched.append(key)

    address_score = 0
    cand_addr = cand.get("address") or {}
    other_addr = other.get("address") or {}
    for key in ADDRESS_FIELDS:
        if key in cand_addr and key in other_addr and cand_addr[key] == other_addr[key]:
            address_score += 1
            matched.append(f"address.{key}")

    return DuplicateMatch(
        entry_id=str(existing.get("id")),
        other_score=other_score,
        address_score=address_score,
        score=other_score + config.address_weight * address_score,
        matched_fields=matched,
        submitted_timestamp=existing.get("submitted_timestamp"),
    )


# ---------------------------------------------------------------------------
# Candidate search
# ---------------------------------------------------------------------------


def score_candidates(
    candidate: dict[str, Any],
    existing_entries: Iterable[dict[str, Any]],
    config: DuplicateConfig | None = None,
) -> list[DuplicateMatch]:
    """
    Score a submission against every existing entry of the same type.

    Returns matches above the threshold, best first. Among equal scores the
    most recently submitted entry comes first, then the highest id.
    """
    if config is None:
        config = DuplicateConfig()

    entry_type = candidate.get("type")
    candidate_id = candidate.get("id")

    results: list[DuplicateMatch] = []
    for existing in existing_entries:
        if existing.get("type") != entry_type:
            continue
        if candidate_id is not None and existing.get("id") == candidate_id:
            continue
        match = score_pair(candidate, existing, config)
        if match.score > config.threshold:
            results.append(match)

    results.sort(
        key=lambda m: (m.score, timestamp_key(m.submitted_timestamp), m.entry_id),
        reverse=True,
    )
    return results


def find_possible_duplicate(
    candidate: dict[str, Any],
    existing_entries: Iterable[dict[str, Any]],
    config: DuplicateConfig | None = None,
) -> str | None:
    """Id of the best-scoring likely duplicate of ``candidate``, or None."""
    matches = score_candidates(candidate, existing_entries, config)
    return matches[0].entry_id if matches else None
