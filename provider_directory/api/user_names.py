"""
Moderator display names.

Built once at startup from the users table (or users.json in fallback mode)
and attached to ``app.state.user_names``. Never invalidated: a renamed or
new moderator shows up after the next restart.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from . import db
from .db import extras
from .helpers import get_users

logger = logging.getLogger(__name__)


class UserNameCache:
    """Thread-safe user id → username map."""

    def __init__(self, users: Iterable[dict[str, Any]] = ()):
        self._lock = threading.Lock()
        self._names: dict[str, str] = {}
        self.load(users)

    def load(self, users: Iterable[dict[str, Any]]) -> None:
        names = {str(u["id"]): u["username"] for u in users if u.get("id") and u.get("username")}
        with self._lock:
            self._names.update(names)

    def get(self, user_id: Any, default: str | None = None) -> str | None:
        if user_id is None:
            return default
        with self._lock:
            return self._names.get(str(user_id), default)

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)


def build_user_name_cache() -> UserNameCache:
    """Read every user once. DB preferred, users.json otherwise."""
    if db.is_available():
        try:
            with db.get_conn() as conn:
                with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                    cur.execute("SELECT id, username FROM users")
                    rows = cur.fetchall()
            cache = UserNameCache(rows)
            logger.info("User name cache built from DB: %d users", len(cache))
            return cache
        except Exception as e:
            logger.warning("Could not read users from DB, using JSON fallback: %s", e)

    cache = UserNameCache(get_users())
    logger.info("User name cache built from JSON: %d users", len(cache))
    return cache
