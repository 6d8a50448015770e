"""Tests for duplicate submission scoring."""

import pytest

from provider_directory.algorithms.duplicate_scorer import (
    DEFAULT_ADDRESS_WEIGHT,
    DEFAULT_THRESHOLD,
    DuplicateConfig,
    find_possible_duplicate,
    score_candidates,
    score_pair,
)


def _submission(**overrides):
    record = {
        "type": "surgeon",
        "name": "Praxis Dr. Weber",
        "first_name": None,
        "last_name": "Weber",
        "email": "praxis@weber.example",
        "website": None,
        "telephone": "+49 30 12345678",
        "accessible": "yes",
        "meta": {"offers": ["breast"]},
        "address": {"city": "Berlin", "plz": "10117", "street": "Friedrichstraße", "house": "100"},
    }
    record.update(overrides)
    return record


def _existing(entry_id, submitted="2024-01-01T00:00:00+00:00", **overrides):
    record = _submission(**overrides)
    record["id"] = entry_id
    record["submitted_timestamp"] = submitted
    return record


# ---- Pair scoring -----------------------------------------------------------


class TestScorePair:
    def test_identical_listing(self):
        """type, name, last_name, email, telephone, accessible, meta + 4 address fields."""
        match = score_pair(_submission(), _existing("a"))
        assert match.other_score == 7
        assert match.address_score == 4
        assert match.score == pytest.approx(7 + 4 * DEFAULT_ADDRESS_WEIGHT)

    def test_none_fields_never_count(self):
        candidate = {"type": "group", "name": "Treff", "email": None}
        existing = {"id": "x", "type": "group", "name": "Treff", "email": None}
        match = score_pair(candidate, existing)
        assert match.other_score == 2
        assert "email" not in match.matched_fields

    def test_all_null_meta_never_counts(self):
        empty_meta = {"attributes": None, "specials": None, "min_age": None, "subject": None, "offers": None}
        match = score_pair({"type": "group", "meta": empty_meta}, {"id": "x", "type": "group", "meta": dict(empty_meta)})
        assert match.matched_fields == ["type"]

    def test_different_listings_at_same_address_not_flagged(self):
        address = {"city": "Köln", "plz": "50667", "street": "Domstraße"}
        candidate = {"type": "group", "name": "Treff A", "email": "a@a.de", "meta": {}, "address": address}
        existing = {
            "id": "x",
            "type": "group",
            "name": "Verein B",
            "email": "b@b.de",
            "meta": {"attributes": None, "min_age": None},
            "address": dict(address),
        }
        match = score_pair(candidate, existing)
        assert "meta" not in match.matched_fields
        assert match.score == pytest.approx(1 + 3 * DEFAULT_ADDRESS_WEIGHT)
        assert find_possible_duplicate(candidate, [existing]) is None

    def test_matched_fields_listed(self):
        candidate = {"type": "group", "address": {"city": "Köln"}}
        existing = {"id": "x", "type": "group", "address": {"city": "Köln", "plz": "50667"}}
        assert score_pair(candidate, existing).matched_fields == ["type", "address.city"]

    def test_meta_compared_as_a_whole(self):
        candidate = _submission(meta={"offers": ["breast", "ffs"]})
        match = score_pair(candidate, _existing("a"))
        assert "meta" not in match.matched_fields

    def test_bookkeeping_fields_ignored(self):
        candidate = {"type": "group", "approved": True, "blocked": False}
        existing = {"id": "x", "type": "group", "approved": True, "blocked": False}
        assert score_pair(candidate, existing).other_score == 1

    def test_custom_address_weight(self):
        candidate = {"type": "group", "name": "Treff", "email": "a@b.de", "address": {"city": "Köln"}}
        existing = {"id": "x", **candidate}
        match = score_pair(candidate, existing, DuplicateConfig(address_weight=1.0))
        assert match.score == 4.0


# ---- Threshold --------------------------------------------------------------


class TestThreshold:
    BASE = {"type": "group", "name": "Treff", "email": "treff@example.org"}

    def test_exactly_threshold_not_flagged(self):
        existing = [{"id": "x", **self.BASE}]
        assert score_pair(self.BASE, existing[0]).score == DEFAULT_THRESHOLD
        assert find_possible_duplicate(self.BASE, existing) is None

    def test_above_threshold_flagged(self):
        candidate = {**self.BASE, "address": {"city": "Köln"}}
        existing = [{"id": "x", **candidate}]
        assert score_pair(candidate, existing[0]).score == 3.5
        assert find_possible_duplicate(candidate, existing) == "x"

    def test_configurable_threshold(self):
        existing = [{"id": "x", **self.BASE}]
        assert find_possible_duplicate(self.BASE, existing, DuplicateConfig(threshold=2.5)) == "x"


# ---- Candidate search -------------------------------------------------------


class TestScoreCandidates:
    def test_other_types_never_compared(self):
        existing = [_existing("a", type="therapist")]
        assert score_candidates(_submission(), existing) == []

    def test_best_first(self):
        existing = [
            _existing("weak", name="Andere Praxis", email="x@y.de", telephone=None),
            _existing("strong"),
        ]
        matches = score_candidates(_submission(), existing)
        assert [m.entry_id for m in matches] == ["strong", "weak"]

    def test_tie_newest_submission_wins(self):
        existing = [
            _existing("older", submitted="2024-01-01T00:00:00+00:00"),
            _existing("newer", submitted="2024-02-01T00:00:00+00:00"),
        ]
        assert find_possible_duplicate(_submission(), existing) == "newer"

    def test_tie_same_submission_time_higher_id_wins(self):
        existing = [_existing("a"), _existing("c"), _existing("b")]
        assert find_possible_duplicate(_submission(), existing) == "c"

    def test_entry_not_compared_with_itself(self):
        candidate = _existing("self")
        assert find_possible_duplicate(candidate, [candidate]) is None

    def test_no_existing_entries(self):
        assert find_possible_duplicate(_submission(), []) is None


# ---- Config -----------------------------------------------------------------


class TestDuplicateConfig:
    def test_defaults(self):
        config = DuplicateConfig()
        assert config.threshold == 3.0
        assert config.address_weight == 0.5

    def test_from_dict(self):
        config = DuplicateConfig.from_dict({"threshold": 4, "address_weight": 1})
        assert config.threshold == 4.0
        assert config.address_weight == 1.0

    def test_from_dict_none(self):
        assert DuplicateConfig.from_dict(None) == DuplicateConfig()

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("duplicates:\n  threshold: 2.5\n  address_weight: 0.25\n")
        config = DuplicateConfig.from_yaml(path)
        assert config.threshold == 2.5
        assert config.address_weight == 0.25

    def test_from_yaml_without_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("server:\n  port: 8000\n")
        assert DuplicateConfig.from_yaml(path) == DuplicateConfig()
