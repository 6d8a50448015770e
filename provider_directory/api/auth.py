"""
Provider Directory — API Key Authentication

Provides:
    - API key validation via X-API-Key header (bcrypt-hashed keys in PostgreSQL)
    - Tier-based access control (public, moderator, admin)
    - Tier-checking FastAPI dependency
    - In-memory key cache (5 min TTL) to avoid bcrypt on every request

Every key belongs to a user; the user's id is what approvals record as
``approved_by``.

Key format: dir_{env}_{32 alphanumeric}
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import bcrypt
from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import RequestResponseEndpoint

from . import db
from .db import extras

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Auth context, attached to request.state.auth
# ---------------------------------------------------------------------------

TIER_HIERARCHY = {
    "public": 0,
    "moderator": 1,
    "admin": 2,
}


@dataclass
class AuthContext:
    """Resolved authentication context for a request."""

    tier: str = "public"
    user_id: str | None = None
    username: str | None = None
    actor_type: str = "anonymous"
    key_id: str | None = None


ANONYMOUS = AuthContext()


def get_auth(request: Request) -> AuthContext:
    return getattr(request.state, "auth", ANONYMOUS)


# ---------------------------------------------------------------------------
# Key cache (avoids bcrypt verification on every request)
# ---------------------------------------------------------------------------

_KEY_CACHE: dict[str, tuple[AuthContext, float]] = {}
_CACHE_TTL = 300  # 5 minutes


def _cache_get(api_key: str) -> AuthContext | None:
    """Return cached AuthContext if still valid, else None."""
    entry = _KEY_CACHE.get(api_key)
    if entry is None:
        return None
    ctx, cached_at = entry
    if time.time() - cached_at > _CACHE_TTL:
        del _KEY_CACHE[api_key]
        return None
    return ctx


def _cache_set(api_key: str, ctx: AuthContext) -> None:
    _KEY_CACHE[api_key] = (ctx, time.time())


def clear_cache() -> None:
    """Clear the entire key cache (after revoking a key)."""
    _KEY_CACHE.clear()


# ---------------------------------------------------------------------------
# Key validation
# ---------------------------------------------------------------------------


def hash_key(api_key: str) -> str:
    """bcrypt hash for storing a newly issued key."""
    return bcrypt.hashpw(api_key.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def key_prefix(api_key: str) -> str:
    return api_key[:16] if len(api_key) >= 16 else api_key


def _validate_key(api_key: str) -> AuthContext | None:
    """
    Validate an API key against the database.

    Returns AuthContext on success, None if key is invalid/expired/inactive.
    """
    if not db.is_available():
        logger.warning("Auth: DB unavailable, cannot validate API key")
        return None

    prefix = key_prefix(api_key)

    try:
        with db.get_conn() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT k.id, k.key_hash, k.tier, k.expires_at, u.id AS user_id, u.username
                    FROM api_keys k
                    JOIN users u ON u.id = k.user_id
                    WHERE k.key_prefix = %s AND k.is_active = true
                    """,
                    (prefix,),
                )
                rows = cur.fetchall()
    except Exception as e:
        logger.error("Auth: Key validation error: %s", e)
        return None

    key_bytes = api_key.encode("utf-8")
    for row in rows:
        try:
            if not bcrypt.checkpw(key_bytes, row["key_hash"].encode("utf-8")):
                continue
        except ValueError as e:
            logger.debug("Auth: bcrypt check failed for key %s: %s", row["id"], e)
            continue

        if row["expires_at"] is not None and row["expires_at"] < datetime.now(timezone.utc):
            logger.info("Auth: Key %s... expired", prefix[:8])
            return None

        _touch_key(row["id"])
        return AuthContext(
            tier=row["tier"],
            user_id=str(row["user_id"]),
            username=row["username"],
            actor_type="user",
            key_id=str(row["id"]),
        )

    return None


def _touch_key(key_id) -> None:
    """Record key usage. Failure only costs the timestamp."""
    try:
        with db.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("UPDATE api_keys SET last_used_at = now() WHERE id = %s", (key_id,))
    except Exception as e:
        logger.debug("Auth: could not update last_used_at for %s: %s", key_id, e)


# ---------------------------------------------------------------------------
# FastAPI middleware
# ---------------------------------------------------------------------------


async def auth_middleware(request: Request, call_next: RequestResponseEndpoint) -> Response:
    """
    Resolve the caller's identity from X-API-Key header.

    - No header / empty header -> public (anonymous) tier
    - Valid key -> moderator or admin tier
    - Invalid key -> 401
    """
    api_key = request.headers.get("X-API-Key", "").strip()

    if not api_key:
        request.state.auth = ANONYMOUS
        return await call_next(request)

    ctx = _cache_get(api_key)
    if ctx is not None:
        request.state.auth = ctx
        return await call_next(request)

    ctx = _validate_key(api_key)
    if ctx is None:
        return JSONResponse(
            status_code=401,
            content={"detail": "Invalid or expired API key"},
            headers={"WWW-Authenticate": "ApiKey"},
        )

    _cache_set(api_key, ctx)
    request.state.auth = ctx
    return await call_next(request)


# ---------------------------------------------------------------------------
# Tier-checking dependency
# ---------------------------------------------------------------------------


def require_tier(min_tier: str) -> Callable:
    """
    FastAPI dependency that checks the caller meets the minimum tier.

    Usage:
        @router.patch("/api/entries/{entry_id}/approve", dependencies=[Depends(require_tier("moderator"))])
    """
    min_level = TIER_HIERARCHY.get(min_tier, 0)

    async def _check(request: Request):
        auth = get_auth(request)
        caller_level = TIER_HIERARCHY.get(auth.tier, 0)
        if caller_level < min_level:
            if auth.actor_type == "anonymous":
                raise HTTPException(
                    status_code=401,
                    detail="Authentication required. Provide an API key via the X-API-Key header.",
                )
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient permissions. Required tier: {min_tier}, your tier: {auth.tier}",
            )

    return _check
