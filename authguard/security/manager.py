"""
Composition root for the security components.

Everything shares the one Redis client passed in by the process bootstrap::

    security = SecurityManager(redis)
    await security.login.record_failure("user@example.com")
    await security.clear_flags("user@example.com")   # admin
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from redis.asyncio import Redis

from authguard import config
from authguard.security.attempts import AttemptPolicy, AttemptTracker
from authguard.security.errors import StoreUnavailableError
from authguard.security.otp import OtpManager, OtpPolicy
from authguard.security.rate_limiter import RateLimiter
from authguard.security.status import SecurityStatusAggregator
from authguard.security.suspicious import SuspicionPolicy, SuspiciousActivityScorer
from authguard.store import domain_key, store_call

logger = logging.getLogger(__name__)

LOGIN_POLICY = AttemptPolicy(
    max_attempts=config.LOGIN_MAX_ATTEMPTS,
    window_seconds=config.LOGIN_ATTEMPT_WINDOW_SECONDS,
    lock_seconds=config.LOGIN_LOCK_SECONDS,
)

RESET_POLICY = AttemptPolicy(
    max_attempts=config.RESET_MAX_ATTEMPTS,
    window_seconds=config.RESET_ATTEMPT_WINDOW_SECONDS,
    lock_seconds=config.RESET_LOCK_SECONDS,
)


def reset_token_key(identifier: str) -> str:
    return domain_key("reset", "token", identifier)


@dataclass(frozen=True)
class ClearResult:
    cleared: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


class SecurityManager:
    """Builds and holds every security component around one store client."""

    def __init__(
        self,
        redis: Redis,
        *,
        login_policy: AttemptPolicy = LOGIN_POLICY,
        reset_policy: AttemptPolicy = RESET_POLICY,
        otp_policy: OtpPolicy | None = None,
        suspicion_policy: SuspicionPolicy | None = None,
    ) -> None:
        self._redis = redis
        self.scorer = SuspiciousActivityScorer(redis, suspicion_policy)
        self.login = AttemptTracker(
            redis, "login", login_policy, self.scorer, lock_event="multiple_failed_logins"
        )
        self.reset = AttemptTracker(
            redis, "reset", reset_policy, self.scorer, lock_event="multiple_failed_resets"
        )
        self.otp = OtpManager(redis, self.scorer, otp_policy)
        self.limiter = RateLimiter(redis)
        self.status = SecurityStatusAggregator(self.login, self.reset, self.otp, self.scorer)

    @property
    def redis(self) -> Redis:
        return self._redis

    @store_call
    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    def keys_for(self, identifier: str) -> list[str]:
        return [
            *self.login.keys_for(identifier),
            *self.reset.keys_for(identifier),
            reset_token_key(identifier),
            *self.otp.keys_for(identifier),
            *self.scorer.keys_for(identifier),
        ]

    async def clear_flags(self, identifier: str) -> ClearResult:
        """
        Administrative reset: delete every security key of *identifier*.

        Deletes run concurrently and independently.  A failed delete is
        logged and reported without stopping the others; only when every
        delete fails is the store considered unavailable.
        """
        keys = self.keys_for(identifier)
        outcomes = await asyncio.gather(
            *(self._redis.delete(key) for key in keys),
            return_exceptions=True,
        )

        cleared: list[str] = []
        failed: list[str] = []
        for key, outcome in zip(keys, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Failed to clear %s: %s", key, outcome)
                failed.append(key)
            else:
                cleared.append(key)

        if not cleared:
            raise StoreUnavailableError(f"could not clear security state for {identifier}")

        logger.info("Cleared all security flags for %s", identifier)
        return ClearResult(cleared=cleared, failed=failed)
