"""
Suspicious activity scoring.

Every tracker that hits its own lockout reports here, and so can any other
caller (e.g. a bad password-reset token).  Events accumulate in a 24-hour
score; once the score reaches the threshold a flag is set that every auth
flow treats as a hard circuit breaker until it expires.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from redis.asyncio import Redis

from authguard import config
from authguard.security.errors import FlaggedError
from authguard.store import as_int, counter_key, domain_key, store_call

logger = logging.getLogger(__name__)

DOMAIN = "suspicious"


@dataclass(frozen=True)
class SuspicionPolicy:
    threshold: int = config.SUSPICIOUS_THRESHOLD
    window_seconds: int = config.SUSPICIOUS_WINDOW_SECONDS
    log_limit: int = config.SUSPICIOUS_LOG_LIMIT


@dataclass(frozen=True)
class Suspicion:
    flagged: bool
    count: int


@dataclass(frozen=True)
class ActivityEntry:
    type: str
    timestamp: datetime
    count: int


class SuspiciousActivityScorer:
    """Accumulates abuse signals per identifier."""

    def __init__(self, redis: Redis, policy: SuspicionPolicy | None = None) -> None:
        self._redis = redis
        self._policy = policy or SuspicionPolicy()

    @property
    def policy(self) -> SuspicionPolicy:
        return self._policy

    # ── Keys ───────────────────────────────────────────────────────────

    @staticmethod
    def score_key(identifier: str) -> str:
        return counter_key(DOMAIN, identifier)

    @staticmethod
    def flag_key(identifier: str) -> str:
        return domain_key(DOMAIN, "flag", identifier)

    @staticmethod
    def log_key(identifier: str) -> str:
        return domain_key(DOMAIN, "log", identifier)

    # ── Write ──────────────────────────────────────────────────────────

    @store_call
    async def record(self, identifier: str, event_type: str) -> Suspicion:
        """Count one suspicious event and flag the identifier at the threshold."""
        window = self._policy.window_seconds
        score_key = self.score_key(identifier)

        count = await self._redis.incr(score_key)
        if count == 1:
            await self._redis.expire(score_key, window)

        entry = json.dumps(
            {
                "type": event_type,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "count": count,
            }
        )
        log_key = self.log_key(identifier)
        async with self._redis.pipeline(transaction=False) as pipe:
            await (
                pipe.lpush(log_key, entry)
                .ltrim(log_key, 0, self._policy.log_limit - 1)
                .expire(log_key, window)
                .execute()
            )

        logger.warning(
            "Suspicious activity for %s: %s (count: %d)", identifier, event_type, count
        )

        if count >= self._policy.threshold:
            # NX: a flag that is already set keeps its original expiry
            await self._redis.set(self.flag_key(identifier), "1", ex=window, nx=True)
            logger.error("Identifier flagged as highly suspicious: %s", identifier)
            return Suspicion(flagged=True, count=count)

        return Suspicion(flagged=False, count=count)

    # ── Read ───────────────────────────────────────────────────────────

    @store_call
    async def is_flagged(self, identifier: str) -> Suspicion:
        flag, score = await self._redis.mget(
            self.flag_key(identifier), self.score_key(identifier)
        )
        return Suspicion(flagged=flag is not None, count=as_int(score))

    async def ensure_not_flagged(self, identifier: str) -> None:
        """Raise ``FlaggedError`` when the identifier carries a flag."""
        suspicion = await self.is_flagged(identifier)
        if suspicion.flagged:
            raise FlaggedError()

    @store_call
    async def activity_log(self, identifier: str) -> list[ActivityEntry]:
        """Return the recent activity, newest first."""
        raw_entries = await self._redis.lrange(self.log_key(identifier), 0, -1)
        entries: list[ActivityEntry] = []
        for raw in raw_entries:
            try:
                data = json.loads(raw)
                entries.append(
                    ActivityEntry(
                        type=str(data["type"]),
                        timestamp=datetime.fromisoformat(data["timestamp"]),
                        count=int(data["count"]),
                    )
                )
            except (ValueError, KeyError, TypeError):
                logger.warning("Skipping malformed activity entry for %s", identifier)
        return entries

    # Keys cleared by the administrative reset.
    def keys_for(self, identifier: str) -> list[str]:
        return [
            self.score_key(identifier),
            self.flag_key(identifier),
            self.log_key(identifier),
        ]
