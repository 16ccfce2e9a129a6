"""
Failed-attempt tracking with timed lockout.

One tracker instance guards one domain (``login`` or ``reset``).  Failures
are counted in a rolling window that starts with the first failure; reaching
the maximum swaps the counter for a lock and reports the identifier to the
suspicious-activity scorer.

A lock is only ever lifted by its own expiry: ``clear()`` resets the counter
after a successful authentication and leaves any lock in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from redis.asyncio import Redis

from authguard.security.errors import LockedError
from authguard.security.suspicious import SuspiciousActivityScorer
from authguard.store import (
    TTL_MISSING,
    as_int,
    counter_key,
    lock_key,
    remaining_seconds,
    store_call,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptPolicy:
    max_attempts: int
    window_seconds: int
    lock_seconds: int


@dataclass(frozen=True)
class AttemptResult:
    attempts_left: int
    attempts: int


@dataclass(frozen=True)
class LockStatus:
    locked: bool
    remaining_seconds: int | None = None


class AttemptTracker:
    """Counts failures for one domain and escalates to a timed lock."""

    def __init__(
        self,
        redis: Redis,
        domain: str,
        policy: AttemptPolicy,
        scorer: SuspiciousActivityScorer,
        *,
        lock_event: str,
    ) -> None:
        self._redis = redis
        self._domain = domain
        self._policy = policy
        self._scorer = scorer
        self._lock_event = lock_event

    @property
    def domain(self) -> str:
        return self._domain

    @property
    def policy(self) -> AttemptPolicy:
        return self._policy

    def counter_key(self, identifier: str) -> str:
        return counter_key(self._domain, identifier)

    def lock_key(self, identifier: str) -> str:
        return lock_key(self._domain, identifier)

    # ── Gate ───────────────────────────────────────────────────────────

    @store_call
    async def check_lock(self, identifier: str) -> LockStatus:
        ttl = await self._redis.ttl(self.lock_key(identifier))
        if ttl == TTL_MISSING:
            return LockStatus(locked=False)
        return LockStatus(
            locked=True,
            remaining_seconds=remaining_seconds(ttl, self._policy.lock_seconds),
        )

    async def ensure_unlocked(self, identifier: str) -> None:
        status = await self.check_lock(identifier)
        if status.locked:
            raise LockedError(status.remaining_seconds or 1, domain=self._domain)

    # ── Failures ───────────────────────────────────────────────────────

    @store_call
    async def record_failure(self, identifier: str) -> AttemptResult:
        """Count one failure; raise ``LockedError`` if locked or newly locked."""
        # An existing lock short-circuits without touching the counter.
        await self.ensure_unlocked(identifier)

        key = self.counter_key(identifier)
        attempts = await self._redis.incr(key)
        if attempts == 1:
            await self._redis.expire(key, self._policy.window_seconds)

        logger.warning(
            "Failed %s attempt %d/%d for %s",
            self._domain,
            attempts,
            self._policy.max_attempts,
            identifier,
        )

        if attempts >= self._policy.max_attempts:
            retry_after = await self._lock(identifier)
            raise LockedError(retry_after, domain=self._domain)

        return AttemptResult(
            attempts_left=self._policy.max_attempts - attempts,
            attempts=attempts,
        )

    async def _lock(self, identifier: str) -> int:
        lock = self.lock_key(identifier)
        # NX keeps a lock created by a concurrent request untouched.
        await self._redis.set(lock, "1", ex=self._policy.lock_seconds, nx=True)
        await self._redis.delete(self.counter_key(identifier))
        await self._scorer.record(identifier, self._lock_event)
        logger.error("%s locked for %s", self._domain.capitalize(), identifier)

        ttl = await self._redis.ttl(lock)
        return remaining_seconds(ttl, self._policy.lock_seconds)

    # ── Success / reads ────────────────────────────────────────────────

    @store_call
    async def clear(self, identifier: str) -> None:
        """Forget recorded failures.  Never lifts an active lock."""
        await self._redis.delete(self.counter_key(identifier))
        logger.info("Cleared %s attempts for %s", self._domain, identifier)

    @store_call
    async def attempts(self, identifier: str) -> int:
        return as_int(await self._redis.get(self.counter_key(identifier)))

    def keys_for(self, identifier: str) -> list[str]:
        return [self.counter_key(identifier), self.lock_key(identifier)]
