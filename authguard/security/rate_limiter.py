"""
Point-budget rate limiting on top of Redis.

Each (key_prefix, key) pair owns one counter.  Within ``duration`` seconds at
most ``points`` points may be consumed; the request that first goes over the
budget stretches the counter's expiry to ``block_duration``, and every
consumption until then fails with the remaining block time.

This limiter bounds raw call frequency per identifier.  It sits in front of
the attempt tracker and the OTP manager, which only react to *wrong*
credentials.

Usage::

    limiter = RateLimiter(redis)
    result = await limiter.consume(LOGIN_LIMITER, "user@example.com")
    if not result.success:
        ...
    # or raise RateLimitedError instead of inspecting the result
    await limiter.enforce(OTP_LIMITER, "user@example.com")
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass
from enum import Enum

from redis.asyncio import Redis

from authguard.security.errors import RateLimitedError
from authguard.store import TTL_MISSING, as_int, store_call

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """
    points:          budget of points per window
    duration:        window length in seconds, starting at the first consumption
    block_duration:  penalty in seconds once the budget is exceeded (0 = none,
                     the key just waits out its window)
    key_prefix:      namespace of the counters in the store
    """

    points: int
    duration: int
    block_duration: int = 0
    key_prefix: str = "rl"

    @classmethod
    def from_preset(
        cls,
        preset: RateLimitPreset,
        key_prefix: str | None = None,
        **overrides: int,
    ) -> RateLimitConfig:
        config = dataclasses.replace(preset.value, **overrides)
        if key_prefix is not None:
            config = dataclasses.replace(config, key_prefix=key_prefix)
        return config

    def storage_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"


class RateLimitPreset(Enum):
    """
    Named defaults as (points, duration, block_duration, key_prefix),
    overridable through ``RateLimitConfig.from_preset``.
    """

    # Highly sensitive operations
    STRICT = RateLimitConfig(3, 60 * 60, 60 * 60, "rl_strict")
    # Authentication endpoints in general
    AUTH = RateLimitConfig(5, 15 * 60, 15 * 60, "rl_auth")
    # Ordinary API endpoints
    GENERAL = RateLimitConfig(20, 60, 5 * 60, "rl_general")
    # Public, unauthenticated endpoints
    PUBLIC = RateLimitConfig(100, 60, 60, "rl_public")
    OTP = RateLimitConfig(3, 10 * 60, 30 * 60, "rl_otp")
    LOGIN = RateLimitConfig(5, 15 * 60, 15 * 60, "rl_login")
    PASSWORD_RESET = RateLimitConfig(3, 60 * 60, 60 * 60, "rl_password_reset")
    EMAIL = RateLimitConfig(5, 60 * 60, 60 * 60, "rl_email")


# ── Named limiters ────────────────────────────────────────────────────────

LOGIN_LIMITER = RateLimitConfig.from_preset(RateLimitPreset.LOGIN)
OTP_LIMITER = RateLimitConfig.from_preset(RateLimitPreset.OTP)
OTP_VERIFY_LIMITER = RateLimitConfig.from_preset(RateLimitPreset.AUTH, "rl_otp_verify", points=10)
REFRESH_LIMITER = RateLimitConfig.from_preset(RateLimitPreset.AUTH, "rl_refresh")
PASSWORD_RESET_LIMITER = RateLimitConfig.from_preset(RateLimitPreset.PASSWORD_RESET)
EMAIL_LIMITER = RateLimitConfig.from_preset(RateLimitPreset.EMAIL)
REGISTRATION_LIMITER = RateLimitConfig.from_preset(RateLimitPreset.AUTH, "rl_registration")
SENSITIVE_LIMITER = RateLimitConfig.from_preset(RateLimitPreset.STRICT, "rl_sensitive")
GENERAL_API_LIMITER = RateLimitConfig.from_preset(RateLimitPreset.GENERAL, "rl_api")
PUBLIC_LIMITER = RateLimitConfig.from_preset(RateLimitPreset.PUBLIC)


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    consumed_points: int
    remaining_points: int
    ms_before_next: int

    @property
    def retry_after(self) -> int:
        """Whole seconds until the budget resets or the block lifts."""
        return max(1, math.ceil(self.ms_before_next / 1000))


class RateLimiter:
    """Consumes points from per-key budgets stored in Redis."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    @store_call
    async def consume(
        self,
        limiter: RateLimitConfig,
        key: str,
        points: int = 1,
    ) -> RateLimitResult:
        if points < 1:
            raise ValueError(f"points must be at least 1, got {points}")
        storage_key = limiter.storage_key(key)

        # SET NX opens the window with its expiry in the same transaction
        # as the increment, so a counter never lives without a TTL.
        async with self._redis.pipeline(transaction=True) as pipe:
            _, consumed, ms_left = await (
                pipe.set(storage_key, 0, ex=limiter.duration, nx=True)
                .incrby(storage_key, points)
                .pttl(storage_key)
                .execute()
            )

        if ms_left < 0:
            # Only reachable if someone rewrote the key without an expiry.
            await self._redis.expire(storage_key, limiter.duration)
            ms_left = limiter.duration * 1000

        if consumed <= limiter.points:
            return RateLimitResult(
                success=True,
                consumed_points=consumed,
                remaining_points=limiter.points - consumed,
                ms_before_next=ms_left,
            )

        crossed_now = consumed - points <= limiter.points
        if crossed_now and limiter.block_duration > 0:
            await self._redis.expire(storage_key, limiter.block_duration)
            ms_left = limiter.block_duration * 1000
            logger.warning(
                "Rate limit %s exhausted for %s, blocked for %ds",
                limiter.key_prefix,
                key,
                limiter.block_duration,
            )

        return RateLimitResult(
            success=False,
            consumed_points=consumed,
            remaining_points=0,
            ms_before_next=ms_left,
        )

    async def enforce(
        self,
        limiter: RateLimitConfig,
        key: str,
        points: int = 1,
    ) -> RateLimitResult:
        """Like ``consume`` but raises ``RateLimitedError`` when over budget."""
        result = await self.consume(limiter, key, points)
        if not result.success:
            logger.warning("Rate limit exceeded for %s:%s", limiter.key_prefix, key)
            raise RateLimitedError(result.retry_after, limit=limiter.points)
        return result

    @store_call
    async def get(self, limiter: RateLimitConfig, key: str) -> RateLimitResult | None:
        """Current state of *key*, or None if it has no live window."""
        storage_key = limiter.storage_key(key)
        async with self._redis.pipeline(transaction=True) as pipe:
            raw, ms_left = await pipe.get(storage_key).pttl(storage_key).execute()

        if raw is None or ms_left == TTL_MISSING:
            return None

        consumed = as_int(raw)
        return RateLimitResult(
            success=consumed <= limiter.points,
            consumed_points=consumed,
            remaining_points=max(limiter.points - consumed, 0),
            ms_before_next=max(ms_left, 0),
        )

    @store_call
    async def reset(self, limiter: RateLimitConfig, key: str) -> None:
        await self._redis.delete(limiter.storage_key(key))
        logger.info("Rate limit reset for %s", limiter.storage_key(key))
