"""Tests for GET /api/entries/backup (admin JSON export)."""

from __future__ import annotations

from unittest.mock import patch


def _export_dirs(app):
    folder = app.state.settings.backup_folder
    return sorted(p for p in folder.iterdir() if p.is_dir()) if folder.exists() else []


class TestBackupAccess:
    def test_requires_auth(self, client):
        assert client.get("/api/entries/backup").status_code == 401

    def test_moderator_forbidden(self, moderator_client):
        assert moderator_client.get("/api/entries/backup").status_code == 403


class TestBackup:
    def test_exports_every_entry(self, app, admin_client):
        resp = admin_client.get("/api/entries/backup")
        assert resp.status_code == 200
        assert "application/json" in resp.headers["content-type"]
        data = resp.json()
        assert len(data) == 11
        assert {e["id"] for e in data} >= {"e-group-blocked", "e-pending-blocked"}

        dirs = _export_dirs(app)
        assert len(dirs) == 1
        assert (dirs[0] / "entries.json").exists()

    def test_unchanged_entries_reuse_export(self, app, admin_client):
        admin_client.get("/api/entries/backup")
        admin_client.get("/api/entries/backup")
        assert len(_export_dirs(app)) == 1

    def test_change_triggers_new_export(self, app, admin_client):
        admin_client.get("/api/entries/backup")
        admin_client.patch("/api/entries/e-surgeon-pending/approve")
        resp = admin_client.get("/api/entries/backup")
        assert len(_export_dirs(app)) == 2
        approved = {e["id"]: e for e in resp.json()}["e-surgeon-pending"]
        assert approved["approved"] is True

    def test_failure(self, admin_client):
        with patch(
            "provider_directory.api.entry_store.list_all_entries",
            side_effect=RuntimeError("disk on fire"),
        ):
            resp = admin_client.get("/api/entries/backup")
        assert resp.status_code == 500
        assert resp.json()["detail"]["error"] == "backup_failed"
