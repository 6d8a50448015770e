"""Tests for health and catalogue endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from provider_directory import __version__


class TestHealthEndpoint:
    """GET /api/health: always public, no auth required."""

    def test_degraded_in_json_fallback(self, client):
        resp = client.get("/api/health")
        # In fallback mode (DB patched away) health reports degraded / 503
        assert resp.status_code == 503
        data = resp.json()
        assert data["status"] == "degraded"
        assert data["mode"] == "json_fallback"
        assert data["entry_count"] == 11
        assert data["gazetteer_count"] == 8
        assert data["version"] == __version__
        assert data["database_connected"] is False

    def test_healthy_with_database(self, client):
        cur = MagicMock()
        cur.fetchone.return_value = (42,)
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value = cur
        get_conn = MagicMock()
        get_conn.return_value.__enter__.return_value = conn
        with patch("provider_directory.api.db.is_available", return_value=True), patch(
            "provider_directory.api.db.get_conn", get_conn
        ):
            resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["mode"] == "database"
        assert data["entry_count"] == 42
        assert data["checks"]["database"]["status"] == "up"

    def test_contains_uptime(self, client):
        data = client.get("/api/health").json()
        assert isinstance(data["uptime_seconds"], int)
        assert data["uptime_seconds"] >= 0

    def test_checks_block(self, client):
        checks = client.get("/api/health").json()["checks"]
        assert checks["database"]["status"] == "down"
        assert checks["geocoder"] == {"enabled": True, "pending": 0}

    def test_geocoder_backlog(self, client):
        client.post(
            "/api/entries",
            json={"type": "group", "name": "Treff", "address": {"city": "Berlin"}},
        )
        assert client.get("/api/health").json()["checks"]["geocoder"]["pending"] == 1

    def test_geocoder_disabled(self, app, client):
        app.state.geocode_queue = None
        assert client.get("/api/health").json()["checks"]["geocoder"] == {"enabled": False, "pending": 0}


class TestEntryTypes:
    """GET /api/entry-types"""

    def test_all_types(self, client):
        resp = client.get("/api/entry-types")
        assert resp.status_code == 200
        assert len(resp.json()) == 10

    def test_surgeon(self, client):
        surgeon = {t["name"]: t for t in client.get("/api/entry-types").json()}["surgeon"]
        assert surgeon["requires_offers"] is True
        assert "mastectomy" in surgeon["offers"]
        assert surgeon["allows_min_age"] is False

    def test_group_allows_min_age(self, client):
        group = {t["name"]: t for t in client.get("/api/entry-types").json()}["group"]
        assert group["allows_min_age"] is True
        assert group["offers"] == []
