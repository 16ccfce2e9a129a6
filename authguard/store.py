"""
Ephemeral store access (Redis).

The client is created once by the process bootstrap (see ``authguard.main``)
and handed to every security component.  Nothing in this package keeps a
module-level connection.

Key layout::

    security:login:{id}            failed-login counter
    security:login:lock:{id}       login lock
    security:reset:{id}            failed password-reset counter
    security:reset:lock:{id}       reset lock
    security:reset:token:{id}      hashed reset token
    security:otp:data:{id}         OTP record (JSON)
    security:otp:lock:{id}         OTP lock
    security:otp:cooldown:{id}     OTP re-issue cooldown
    security:otp:requests:{id}     OTP request counter
    security:suspicious:{id}       suspicious score
    security:suspicious:flag:{id}  suspicious flag
    security:suspicious:log:{id}   recent activity (list)
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from authguard.security.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

KEY_ROOT = "security"

# Redis TTL sentinels
TTL_MISSING = -2
TTL_PERSISTENT = -1


# ── Lifecycle ─────────────────────────────────────────────────────────────


def create_redis(url: str) -> Redis:
    """Build a client for *url*.  Connections are opened lazily."""
    return Redis.from_url(url, encoding="utf-8", decode_responses=True)


async def close_redis(client: Redis) -> None:
    """Close the client and its connection pool."""
    await client.aclose()
    logger.info("Store connection closed")


# ── Error translation ─────────────────────────────────────────────────────


def store_call(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Re-raise Redis failures inside *func* as ``StoreUnavailableError``."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await func(*args, **kwargs)
        except RedisError as exc:
            logger.error("Store call %s failed: %s", func.__qualname__, exc)
            raise StoreUnavailableError(str(exc)) from exc

    return wrapper


# ── Keys ──────────────────────────────────────────────────────────────────


def counter_key(domain: str, identifier: str) -> str:
    return f"{KEY_ROOT}:{domain}:{identifier}"


def lock_key(domain: str, identifier: str) -> str:
    return f"{KEY_ROOT}:{domain}:lock:{identifier}"


def domain_key(domain: str, kind: str, identifier: str) -> str:
    return f"{KEY_ROOT}:{domain}:{kind}:{identifier}"


# ── Value helpers ─────────────────────────────────────────────────────────


def as_int(raw: str | bytes | None) -> int:
    """Parse a stored counter; absent or garbage reads as zero."""
    if raw is None:
        return 0
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed counter value %r", raw)
        return 0


def remaining_seconds(ttl: int, fallback: int) -> int:
    """Turn a TTL reply into a positive retry hint."""
    if ttl == TTL_PERSISTENT:
        return fallback
    return max(ttl, 1)
