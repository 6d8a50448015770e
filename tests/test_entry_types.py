"""Tests for the entry type registry and per-type meta rules."""

import pytest

from provider_directory.algorithms.entry_types import (
    ALL_ATTRIBUTES,
    ALL_OFFERS,
    ENTRY_TYPES,
    get_entry_type,
    type_label,
)


class TestRegistry:
    def test_all_types_present(self):
        assert set(ENTRY_TYPES) == {
            "group", "therapist", "surveyor", "endocrinologist", "surgeon",
            "logopedics", "hairremoval", "urologist", "gynecologist", "GP",
        }

    def test_every_type_has_label(self):
        for entry_type in ENTRY_TYPES.values():
            assert entry_type.label

    def test_unknown_type_raises(self):
        with pytest.raises(KeyError):
            get_entry_type("dentist")

    def test_type_label_fallback(self):
        assert type_label("surgeon") == ENTRY_TYPES["surgeon"].label
        assert type_label("dentist") == "dentist"
        assert type_label(None) == "Unknown"

    def test_tag_unions(self):
        assert "mastectomy" in ALL_OFFERS
        assert "regularMeetings" in ALL_ATTRIBUTES


class TestAllowedMetaFields:
    def test_group(self):
        assert get_entry_type("group").allowed_meta_fields() == {"attributes", "specials", "min_age"}

    def test_therapist(self):
        assert get_entry_type("therapist").allowed_meta_fields() == {
            "attributes", "specials", "offers", "subject",
        }

    def test_surveyor(self):
        assert get_entry_type("surveyor").allowed_meta_fields() == {"attributes", "specials"}


class TestValidateMeta:
    def test_valid_surgeon(self):
        meta = {"offers": ["mastectomy"], "attributes": ["selfPayedOnly"]}
        assert get_entry_type("surgeon").validate_meta(meta) == []

    def test_surgeon_requires_offer(self):
        errors = get_entry_type("surgeon").validate_meta({"attributes": []})
        assert any("requires at least one offer" in e for e in errors)

    def test_unknown_offer(self):
        errors = get_entry_type("surgeon").validate_meta({"offers": ["laser"]})
        assert any("offers not allowed" in e for e in errors)

    def test_unknown_attribute(self):
        errors = get_entry_type("logopedics").validate_meta({"attributes": ["trans"]})
        assert any("attributes not allowed" in e for e in errors)

    def test_min_age_only_for_groups(self):
        assert get_entry_type("group").validate_meta({"attributes": ["trans"], "min_age": 16}) == []
        errors = get_entry_type("surveyor").validate_meta({"min_age": 16})
        assert any("min_age" in e for e in errors)

    def test_therapist_requires_subject(self):
        errors = get_entry_type("therapist").validate_meta({"offers": ["therapy"]})
        assert any("subject" in e for e in errors)

    def test_therapist_with_subject(self):
        meta = {"offers": ["therapy"], "subject": "psychologist"}
        assert get_entry_type("therapist").validate_meta(meta) == []

    def test_subject_forbidden_elsewhere(self):
        errors = get_entry_type("group").validate_meta({"subject": "therapist"})
        assert any("subject is not allowed" in e for e in errors)


class TestPruneMeta:
    def test_disallowed_fields_nulled(self):
        meta = {"offers": ["breast"], "min_age": 18, "subject": "other", "specials": "x"}
        pruned = get_entry_type("surgeon").prune_meta(meta)
        assert pruned == {
            "attributes": None,
            "specials": "x",
            "min_age": None,
            "subject": None,
            "offers": ["breast"],
        }

    def test_group_keeps_min_age_drops_offers(self):
        pruned = get_entry_type("group").prune_meta({"min_age": 14, "offers": ["hrt"]})
        assert pruned["min_age"] == 14
        assert pruned["offers"] is None

    def test_unknown_keys_dropped(self):
        pruned = get_entry_type("surveyor").prune_meta({"colour": "blue"})
        assert "colour" not in pruned
