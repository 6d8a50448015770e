"""
Provider Directory — In-Memory Sliding Window Rate Limiter

Per-tier rate limits (requests per minute):
    public:     60
    moderator: 300
    admin:     600

New entry submissions have a separate, stricter bucket (3 per 5 minutes by
default, see ``rate_limits.new_entries`` in the settings file).

Keys: API key ID for authenticated users, client IP for anonymous.

Response headers on every response:
    X-RateLimit-Limit     max requests per window
    X-RateLimit-Remaining requests left
    X-RateLimit-Reset     seconds until window resets

Returns 429 Too Many Requests with Retry-After header when exceeded.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import RequestResponseEndpoint

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Tier-based limits (requests per 60-second window)
# ---------------------------------------------------------------------------

TIER_LIMITS: dict[str, int] = {
    "public": 60,
    "moderator": 300,
    "admin": 600,
}

DEFAULT_LIMIT = 60
WINDOW_SECONDS = 60

# ---------------------------------------------------------------------------
# Sliding window store
# ---------------------------------------------------------------------------

_lock = threading.Lock()
_store: dict[str, list[float]] = {}  # key -> request timestamps
_windows: dict[str, int] = {}  # key -> window length in seconds
_last_cleanup = time.time()
_CLEANUP_INTERVAL = 60  # seconds between cleanups


def _get_client_key(request: Request) -> str:
    """Derive rate-limit key from request (API key ID or IP)."""
    auth = getattr(request.state, "auth", None)
    if auth and auth.key_id:
        return f"key:{auth.key_id}"

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    client = request.client
    return f"ip:{client.host}" if client else "ip:unknown"


def _get_limit(request: Request) -> int:
    auth = getattr(request.state, "auth", None)
    if not auth:
        return DEFAULT_LIMIT
    return TIER_LIMITS.get(auth.tier, DEFAULT_LIMIT)


def _cleanup_expired() -> None:
    """Drop keys whose timestamps have all left their window. Caller holds _lock."""
    global _last_cleanup
    now = time.time()
    if now - _last_cleanup < _CLEANUP_INTERVAL:
        return
    _last_cleanup = now

    expired_keys = []
    for key, timestamps in _store.items():
        cutoff = now - _windows.get(key, WINDOW_SECONDS)
        _store[key] = [t for t in timestamps if t > cutoff]
        if not _store[key]:
            expired_keys.append(key)

    for key in expired_keys:
        del _store[key]
        _windows.pop(key, None)

    if expired_keys:
        logger.debug("Rate limiter: cleaned up %d expired keys", len(expired_keys))


def check_rate_limit(
    client_key: str,
    limit: int,
    window_seconds: int = WINDOW_SECONDS,
) -> tuple[bool, int, int, int]:
    """
    Check if a request is allowed, recording it if so.

    Returns:
        (allowed, limit, remaining, reset_seconds)
    """
    now = time.time()
    cutoff = now - window_seconds

    with _lock:
        _cleanup_expired()

        timestamps = [t for t in _store.get(client_key, []) if t > cutoff]
        _windows[client_key] = window_seconds
        reset_seconds = int(window_seconds - (now - timestamps[0])) if timestamps else window_seconds

        if len(timestamps) >= limit:
            _store[client_key] = timestamps
            return False, limit, 0, reset_seconds

        timestamps.append(now)
        _store[client_key] = timestamps
        remaining = max(0, limit - len(timestamps))

        return True, limit, remaining, reset_seconds


# ---------------------------------------------------------------------------
# FastAPI middleware
# ---------------------------------------------------------------------------


async def rate_limit_middleware(
    request: Request, call_next: RequestResponseEndpoint
) -> Response:
    """
    Sliding window rate limiter middleware.

    Runs after auth middleware (needs request.state.auth).
    """
    client_key = _get_client_key(request)
    limit = _get_limit(request)

    allowed, max_limit, remaining, reset_seconds = check_rate_limit(client_key, limit)

    if not allowed:
        return JSONResponse(
            status_code=429,
            content={
                "detail": "Rate limit exceeded. Please slow down.",
                "retry_after": reset_seconds,
            },
            headers={
                "X-RateLimit-Limit": str(max_limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(reset_seconds),
                "Retry-After": str(reset_seconds),
            },
        )

    response = await call_next(request)

    response.headers["X-RateLimit-Limit"] = str(max_limit)
    response.headers["X-RateLimit-Remaining"] = str(remaining)
    response.headers["X-RateLimit-Reset"] = str(reset_seconds)

    return response


# ---------------------------------------------------------------------------
# Submission limit
# ---------------------------------------------------------------------------


async def limit_new_entries(request: Request) -> None:
    """FastAPI dependency guarding entry submission."""
    settings = request.app.state.settings
    window = settings.new_entry_limit["window_seconds"]
    limit = settings.new_entry_limit["max_requests"]

    client_key = f"new_entries:{_get_client_key(request)}"
    allowed, _, _, reset_seconds = check_rate_limit(client_key, limit, window)
    if not allowed:
        logger.info("Submission limit reached for %s", client_key)
        raise HTTPException(
            status_code=429,
            detail="Too many new entries. Please try again later.",
            headers={"Retry-After": str(reset_seconds)},
        )


# ---------------------------------------------------------------------------
# Admin helpers
# ---------------------------------------------------------------------------


def get_rate_limit_stats() -> dict[str, Any]:
    """Current rate limiter state (for the health endpoint)."""
    with _lock:
        now = time.time()
        active = {}
        for key, timestamps in _store.items():
            cutoff = now - _windows.get(key, WINDOW_SECONDS)
            recent = [t for t in timestamps if t > cutoff]
            if recent:
                active[key] = len(recent)
        return {
            "active_keys": len(active),
            "entries": active,
        }


def reset_rate_limits() -> None:
    """Clear all rate limit state."""
    with _lock:
        _store.clear()
        _windows.clear()
    logger.info("Rate limiter: all limits reset")
