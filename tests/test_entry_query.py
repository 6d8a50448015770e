"""Tests for the public entry query builder (SQL fragment + in-memory predicate)."""

from provider_directory.algorithms.entry_query import (
    EntryQuery,
    FilterCriteria,
    Visibility,
    build_entry_query,
)


def _ids(entries):
    return {e["id"] for e in entries}


PUBLIC_IDS = {
    "e-surgeon-mitte",
    "e-surgeon-potsdam",
    "e-surgeon-hamburg",
    "e-surgeon-munich",
    "e-surgeon-nolocation",
    "e-therapist-berlin",
    "e-group-cologne",
}


# ---- Visibility -------------------------------------------------------------


class TestVisibility:
    def test_public_excludes_pending_and_blocked(self, entries):
        query = build_entry_query()
        assert _ids(query.filter(entries)) == PUBLIC_IDS

    def test_public_sql(self):
        query = build_entry_query()
        assert query.conditions == ["e.approved = true", "e.blocked IS NOT TRUE"]
        assert query.params == []

    def test_unapproved_excludes_blocked(self, entries):
        query = build_entry_query(visibility=Visibility.UNAPPROVED)
        assert _ids(query.filter(entries)) == {"e-surgeon-pending", "e-therapist-pending"}

    def test_all_has_no_conditions(self, entries):
        query = build_entry_query(visibility=Visibility.ALL)
        assert query.where_sql() == ""
        assert len(query.filter(entries)) == len(entries)


# ---- Criteria ---------------------------------------------------------------


class TestCriteria:
    def test_type(self, entries):
        query = build_entry_query(FilterCriteria(type="surgeon"))
        assert _ids(query.filter(entries)) == {
            "e-surgeon-mitte",
            "e-surgeon-potsdam",
            "e-surgeon-hamburg",
            "e-surgeon-munich",
            "e-surgeon-nolocation",
        }

    def test_offers_intersect(self, entries):
        query = build_entry_query(FilterCriteria(offers=["mastectomy", "glottoplasty"]))
        assert _ids(query.filter(entries)) == {
            "e-surgeon-mitte",
            "e-surgeon-hamburg",
            "e-surgeon-munich",
        }
        assert "e.offers && %s::text[]" in query.conditions

    def test_attributes_intersect(self, entries):
        query = build_entry_query(FilterCriteria(attributes=["remote"]))
        assert _ids(query.filter(entries)) == {"e-surgeon-munich"}

    def test_accessible(self, entries):
        query = build_entry_query(FilterCriteria(accessible="yes"))
        assert _ids(query.filter(entries)) == {"e-surgeon-mitte"}

    def test_text_matches_name_case_insensitive(self, entries):
        query = build_entry_query(FilterCriteria(text="weber"))
        assert _ids(query.filter(entries)) == {"e-surgeon-mitte"}

    def test_text_matches_last_name(self, entries):
        query = build_entry_query(FilterCriteria(text="becker"))
        assert _ids(query.filter(entries)) == {"e-therapist-berlin"}

    def test_text_matches_first_name(self, entries):
        query = build_entry_query(FilterCriteria(text="Sam"))
        assert _ids(query.filter(entries)) == {"e-therapist-berlin"}

    def test_criteria_are_conjunctive(self, entries):
        criteria = FilterCriteria(type="surgeon", offers=["mastectomy"], text="chirurgie")
        query = build_entry_query(criteria)
        assert _ids(query.filter(entries)) == {"e-surgeon-hamburg", "e-surgeon-munich"}

    def test_conjunction_is_subset_of_each_part(self, entries):
        parts = [
            FilterCriteria(type="surgeon"),
            FilterCriteria(offers=["breast"]),
            FilterCriteria(accessible="yes"),
        ]
        combined = build_entry_query(
            FilterCriteria(type="surgeon", offers=["breast"], accessible="yes")
        ).filter(entries)
        for part in parts:
            assert _ids(combined) <= _ids(build_entry_query(part).filter(entries))


# ---- Free text is matched literally ----------------------------------------


class TestLiteralText:
    def test_wildcard_matches_nothing(self, entries):
        query = build_entry_query(FilterCriteria(text="a.*b"))
        assert query.filter(entries) == []

    def test_escaped_pattern_in_sql_params(self):
        query = build_entry_query(FilterCriteria(text="a.*b"))
        assert query.params == [r"a\.\*b"] * 3

    def test_parentheses_matched_literally(self, entries):
        query = build_entry_query(FilterCriteria(text="(Gruppe)"))
        assert _ids(query.filter(entries)) == {"e-group-cologne"}


class TestEntryQuery:
    def test_where_sql_joins_with_and(self):
        query = EntryQuery()
        query.add("a = %s", [1], lambda e: True)
        query.add("b = %s", [2], lambda e: True)
        assert query.where_sql() == " WHERE a = %s AND b = %s"
        assert query.params == [1, 2]

    def test_has_coordinates(self):
        assert FilterCriteria(lat=52.5, long=13.4).has_coordinates
        assert not FilterCriteria(lat=52.5).has_coordinates
