"""Shared fixtures for the API test suite.

All tests run in JSON fallback mode (no database required).
We seed helpers._ENTRIES / _INDEX / _GEODATA / _USERS directly, and patch
db.is_available() → False.

Auth injection: we patch auth._cache_get so that magic test API keys
instantly resolve to the desired AuthContext without DB lookups.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from starlette.testclient import TestClient

from ..conftest import SAMPLE_ENTRIES, SAMPLE_GEODATA, SAMPLE_USERS

MODERATOR_KEY = "dir_test_moderator_00000000000000"
ADMIN_KEY = "dir_test_admin_0000000000000000000"


# ---------------------------------------------------------------------------
# Magic test API keys → AuthContext mapping
# ---------------------------------------------------------------------------


def _test_auth_contexts():
    from provider_directory.api.auth import AuthContext

    return {
        MODERATOR_KEY: AuthContext(
            tier="moderator",
            user_id="user-alice",
            username="alice",
            actor_type="user",
            key_id="test-moderator-key-id",
        ),
        ADMIN_KEY: AuthContext(
            tier="admin",
            user_id="user-bob",
            username="bob",
            actor_type="user",
            key_id="test-admin-key-id",
        ),
    }


def _patched_cache_get(api_key: str):
    """Drop-in replacement for auth._cache_get that recognises test keys."""
    return _test_auth_contexts().get(api_key)


def _noop_rate_limit(client_key, limit, window_seconds=60):
    """Always allow; disables rate limiting in tests."""
    return True, limit, limit - 1, window_seconds


class FakeGeocodeQueue:
    """Records geocode jobs instead of calling Nominatim."""

    def __init__(self):
        self.jobs: list[tuple[str, dict]] = []

    def enqueue(self, entry_id, address):
        self.jobs.append((entry_id, dict(address or {})))

    def pending(self):
        return len(self.jobs)


# ---------------------------------------------------------------------------
# App fixture: seeds JSON fallback, patches DB away
# ---------------------------------------------------------------------------


@pytest.fixture()
def app(tmp_path):
    """FastAPI app running in JSON fallback mode (no DB)."""
    with (
        patch("provider_directory.api.db.is_available", return_value=False),
        patch("provider_directory.api.db.init_pool", return_value=False),
        patch("provider_directory.api.db.close_pool"),
        patch("provider_directory.api.auth._cache_get", side_effect=_patched_cache_get),
        patch("provider_directory.api.auth._validate_key", return_value=None),
        patch("provider_directory.api.rate_limiter.check_rate_limit", side_effect=_noop_rate_limit),
    ):
        from provider_directory.api import helpers
        from provider_directory.api.app import app as _app
        from provider_directory.api.config import Settings
        from provider_directory.api.user_names import UserNameCache

        # Seed JSON fallback data
        helpers._ENTRIES = copy.deepcopy(SAMPLE_ENTRIES)
        helpers._INDEX = {e["id"]: e for e in helpers._ENTRIES}
        helpers._GEODATA = copy.deepcopy(SAMPLE_GEODATA)
        helpers._USERS = copy.deepcopy(SAMPLE_USERS)
        helpers._COLLECTION_META = {}

        # Normally done in the startup event
        _app.state.settings = Settings(backup_folder=tmp_path / "backups", data_dir=tmp_path)
        _app.state.user_names = UserNameCache(SAMPLE_USERS)
        _app.state.geocode_queue = FakeGeocodeQueue()
        _app.state.server_started_at = datetime(2024, 3, 1, 0, 0, 0, tzinfo=timezone.utc)

        yield _app

        # Cleanup
        helpers._ENTRIES = []
        helpers._INDEX = {}
        helpers._GEODATA = []
        helpers._USERS = []
        helpers._COLLECTION_META = {}
        _app.state.geocode_queue = None
        _app.state.user_names = None


@pytest.fixture()
def stored(app):
    """The in-memory entry index the app reads and writes."""
    from provider_directory.api import helpers

    return helpers._INDEX


# ---------------------------------------------------------------------------
# Client fixtures for each auth tier
# ---------------------------------------------------------------------------


@pytest.fixture()
def client(app):
    """Unauthenticated (public tier) TestClient, no API key header."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture()
def moderator_client(app):
    """moderator tier TestClient (user-alice)."""
    return TestClient(
        app,
        raise_server_exceptions=False,
        headers={"X-API-Key": MODERATOR_KEY},
    )


@pytest.fixture()
def admin_client(app):
    """admin tier TestClient (user-bob)."""
    return TestClient(
        app,
        raise_server_exceptions=False,
        headers={"X-API-Key": ADMIN_KEY},
    )
