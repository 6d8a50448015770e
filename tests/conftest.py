"""Shared sample data: a small gazetteer and a set of directory entries."""

from __future__ import annotations

import copy

import pytest


def _point(lon: float, lat: float) -> dict:
    return {"type": "Point", "coordinates": [lon, lat]}


# ---------------------------------------------------------------------------
# Gazetteer (OpenGeoDB-shaped)
# ---------------------------------------------------------------------------

SAMPLE_GEODATA: list[dict] = [
    {"name": "Berlin", "ascii": "BERLIN", "plz": "10115", "level": 6, "location": _point(13.4050, 52.5200)},
    # coarser record for the same name, only a reference location
    {"name": "Berlin", "ascii": "BERLIN", "plz": None, "level": 3, "location": None,
     "reference_location": _point(13.4000, 52.5100)},
    {"name": "Potsdam", "ascii": "POTSDAM", "plz": "14467", "level": 6, "location": _point(13.0645, 52.3906)},
    {"name": "Hamburg", "ascii": "HAMBURG", "plz": "20095", "level": 6, "location": _point(9.9937, 53.5511)},
    {"name": "Düsseldorf", "ascii": "DUESSELDORF", "plz": "40210", "level": 6, "location": _point(6.7735, 51.2277)},
    {"name": "Köln", "ascii": "KOELN", "plz": "50667", "level": 6, "location": _point(6.9603, 50.9375)},
    {"name": "München", "ascii": "MUENCHEN", "plz": "80331", "level": 6, "location": _point(11.5820, 48.1351)},
    {"name": "Sankt Augustin", "ascii": "ST. AUGUSTIN", "plz": "53757", "level": 6,
     "location": _point(7.1867, 50.7756)},
]

BERLIN = SAMPLE_GEODATA[0]


# ---------------------------------------------------------------------------
# Entries (API dict shape, timestamps as ISO strings)
# ---------------------------------------------------------------------------


def _entry(
    entry_id: str,
    entry_type: str,
    name: str,
    city: str,
    location: dict | None,
    *,
    approved: bool = True,
    blocked: bool = False,
    approved_ts: str | None = "2024-03-01T10:00:00+00:00",
    submitted_ts: str = "2024-02-01T10:00:00+00:00",
    offers: list[str] | None = None,
    attributes: list[str] | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    email: str | None = None,
    accessible: str | None = None,
    plz: str | None = None,
    street: str | None = None,
    house: str | None = None,
    approved_by: str | None = "user-alice",
) -> dict:
    return {
        "id": entry_id,
        "type": entry_type,
        "name": name,
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "website": None,
        "telephone": None,
        "accessible": accessible,
        "address": {"city": city, "plz": plz, "street": street, "house": house},
        "meta": {
            "offers": offers,
            "attributes": attributes,
            "specials": None,
            "min_age": None,
            "subject": None,
        },
        "approved": approved,
        "blocked": blocked,
        "approved_by": approved_by if approved else None,
        "approved_timestamp": approved_ts if approved else None,
        "submitted_timestamp": submitted_ts,
        "possible_duplicate": None,
        "location": location,
    }


SAMPLE_ENTRIES: list[dict] = [
    _entry(
        "e-surgeon-mitte", "surgeon", "Praxis Dr. Weber", "Berlin", _point(13.3889, 52.5170),
        offers=["mastectomy", "breast"], attributes=["selfPayedOnly"], last_name="Weber",
        email="praxis@weber.example", accessible="yes", plz="10117", street="Friedrichstraße", house="100",
        approved_ts="2024-03-05T09:00:00+00:00",
    ),
    _entry(
        "e-surgeon-potsdam", "surgeon", "Klinik am Park", "Potsdam", _point(13.0600, 52.4000),
        offers=["vaginPI"], accessible="no", approved_ts="2024-03-04T09:00:00+00:00",
    ),
    _entry(
        "e-surgeon-hamburg", "surgeon", "Chirurgie Hafen", "Hamburg", _point(9.9900, 53.5500),
        offers=["ffs", "mastectomy"], approved_ts="2024-03-03T09:00:00+00:00",
    ),
    _entry(
        "e-surgeon-munich", "surgeon", "Isar Chirurgie", "München", _point(11.5800, 48.1400),
        offers=["mastectomy"], attributes=["remote"], approved_ts="2024-03-02T09:00:00+00:00",
    ),
    _entry(
        "e-surgeon-nolocation", "surgeon", "Praxis ohne Ort", "Berlin", None,
        offers=["breast"], approved_ts="2024-03-06T09:00:00+00:00",
    ),
    _entry(
        "e-therapist-berlin", "therapist", "Psychotherapie Kreuzberg", "Berlin", _point(13.4030, 52.4990),
        offers=["indication"], attributes=["treatsNB"], first_name="Sam", last_name="Becker",
        approved_ts="2024-03-07T09:00:00+00:00",
    ),
    _entry(
        "e-group-cologne", "group", "Trans* Treff Köln (Gruppe)", "Köln", _point(6.9600, 50.9400),
        attributes=["trans", "regularMeetings"], approved_ts="2024-02-20T09:00:00+00:00",
    ),
    _entry(
        "e-group-blocked", "group", "Blocked Group", "Berlin", _point(13.4100, 52.5200),
        attributes=["trans"], blocked=True, approved_ts="2024-03-08T09:00:00+00:00",
    ),
    _entry(
        "e-surgeon-pending", "surgeon", "Neue Praxis", "Berlin", _point(13.4000, 52.5150),
        offers=["hyst"], approved=False, submitted_ts="2024-03-10T09:00:00+00:00",
    ),
    _entry(
        "e-therapist-pending", "therapist", "Beratung Nord", "Hamburg", None,
        offers=["therapy"], approved=False, submitted_ts="2024-03-09T09:00:00+00:00",
    ),
    _entry(
        "e-pending-blocked", "endocrinologist", "Spam Praxis", "Berlin", None,
        approved=False, blocked=True, submitted_ts="2024-03-11T09:00:00+00:00",
    ),
]

SAMPLE_USERS: list[dict] = [
    {"id": "user-alice", "username": "alice"},
    {"id": "user-bob", "username": "bob"},
]


@pytest.fixture()
def geodata() -> list[dict]:
    return copy.deepcopy(SAMPLE_GEODATA)


@pytest.fixture()
def entries() -> list[dict]:
    return copy.deepcopy(SAMPLE_ENTRIES)


@pytest.fixture()
def users() -> list[dict]:
    return copy.deepcopy(SAMPLE_USERS)
