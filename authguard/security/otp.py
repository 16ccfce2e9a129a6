"""
One-time password lifecycle.

Per identifier::

    NONE ──request──▶ ISSUED ──verify(ok)──────▶ VERIFIED  (record deleted)
                        │
                        ├──verify(bad) × max──▶ EXHAUSTED (record → lock)
                        └──ttl elapses─────────▶ EXPIRED

Two independent brakes apply:

* **Issuance** – each request starts a cooldown whose length grows with the
  number of requests in the last few hours (``escalate``).  This caps how
  many emails/SMS one identifier can trigger.
* **Guessing** – each record carries a bounded attempt budget.  Exhausting it
  replaces the record with a lock and reports ``multiple_failed_otps``.

Only a hash of the code is stored.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
from collections.abc import Sequence
from dataclasses import dataclass, field

from redis.asyncio import Redis

from authguard import config
from authguard.security.attempts import LockStatus
from authguard.security.errors import (
    CodeExpiredError,
    CooldownActiveError,
    InvalidCodeError,
    LockedError,
)
from authguard.security.suspicious import SuspiciousActivityScorer
from authguard.store import TTL_MISSING, domain_key, lock_key, remaining_seconds, store_call

logger = logging.getLogger(__name__)

DOMAIN = "otp"
LOCK_EVENT = "multiple_failed_otps"

# (minimum requests in window, cooldown seconds), ascending by threshold.
DEFAULT_COOLDOWN_STEPS: tuple[tuple[int, int], ...] = (
    (0, 60),
    (3, 30 * 60),
)


def escalate(
    request_count: int,
    steps: Sequence[tuple[int, int]] = DEFAULT_COOLDOWN_STEPS,
) -> int:
    """Return the cooldown for the *request_count*-th request in the window."""
    cooldown = steps[0][1]
    for threshold, seconds in steps:
        if request_count >= threshold:
            cooldown = seconds
    return cooldown


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def generate_code(digits: int = 6) -> str:
    return f"{secrets.randbelow(10 ** digits):0{digits}d}"


@dataclass(frozen=True)
class OtpPolicy:
    ttl_seconds: int = config.OTP_TTL_SECONDS
    max_attempts: int = config.OTP_MAX_ATTEMPTS
    lock_seconds: int = config.OTP_LOCK_SECONDS
    request_window_seconds: int = config.OTP_REQUEST_WINDOW_SECONDS
    cooldown_steps: tuple[tuple[int, int], ...] = field(default=DEFAULT_COOLDOWN_STEPS)
    fixed_expiry: bool = config.OTP_FIXED_EXPIRY
    digits: int = 6


@dataclass(frozen=True)
class IssuedOtp:
    code: str
    expires_in: int
    cooldown_seconds: int


class OtpManager:
    """Issues and verifies OTPs for any flow that needs one."""

    def __init__(
        self,
        redis: Redis,
        scorer: SuspiciousActivityScorer,
        policy: OtpPolicy | None = None,
    ) -> None:
        self._redis = redis
        self._scorer = scorer
        self._policy = policy or OtpPolicy()

    @property
    def policy(self) -> OtpPolicy:
        return self._policy

    # ── Keys ───────────────────────────────────────────────────────────

    @staticmethod
    def record_key(identifier: str) -> str:
        return domain_key(DOMAIN, "data", identifier)

    @staticmethod
    def lock_key(identifier: str) -> str:
        return lock_key(DOMAIN, identifier)

    @staticmethod
    def cooldown_key(identifier: str) -> str:
        return domain_key(DOMAIN, "cooldown", identifier)

    @staticmethod
    def requests_key(identifier: str) -> str:
        return domain_key(DOMAIN, "requests", identifier)

    def keys_for(self, identifier: str) -> list[str]:
        return [
            self.record_key(identifier),
            self.lock_key(identifier),
            self.cooldown_key(identifier),
            self.requests_key(identifier),
        ]

    # ── Lock ───────────────────────────────────────────────────────────

    @store_call
    async def check_lock(self, identifier: str) -> LockStatus:
        ttl = await self._redis.ttl(self.lock_key(identifier))
        if ttl == TTL_MISSING:
            return LockStatus(locked=False)
        return LockStatus(
            locked=True,
            remaining_seconds=remaining_seconds(ttl, self._policy.lock_seconds),
        )

    async def _ensure_unlocked(self, identifier: str) -> None:
        status = await self.check_lock(identifier)
        if status.locked:
            raise LockedError(status.remaining_seconds or 1, domain=DOMAIN)

    # ── Issue ──────────────────────────────────────────────────────────

    async def _start_cooldown(self, identifier: str) -> tuple[int, int]:
        """Check and arm the re-issue cooldown; return (request count, cooldown)."""
        cooldown_ttl = await self._redis.ttl(self.cooldown_key(identifier))
        if cooldown_ttl != TTL_MISSING:
            logger.warning("OTP requested during cooldown for %s", identifier)
            raise CooldownActiveError(remaining_seconds(cooldown_ttl, 1))

        requests_key = self.requests_key(identifier)
        count = await self._redis.incr(requests_key)
        if count == 1:
            await self._redis.expire(requests_key, self._policy.request_window_seconds)

        cooldown = escalate(count, self._policy.cooldown_steps)
        await self._redis.set(self.cooldown_key(identifier), "1", ex=cooldown)
        return count, cooldown

    @store_call
    async def request(self, identifier: str) -> IssuedOtp:
        """Issue a fresh code.  The caller is responsible for delivering it."""
        await self._ensure_unlocked(identifier)
        count, cooldown = await self._start_cooldown(identifier)

        code = generate_code(self._policy.digits)
        ttl = self._policy.ttl_seconds
        record = {"hash": hash_code(code), "attempts": 0}
        await self._redis.set(self.record_key(identifier), json.dumps(record), ex=ttl)

        logger.info(
            "OTP issued for %s (request %d in window, next in %ds)",
            identifier,
            count,
            cooldown,
        )
        return IssuedOtp(code=code, expires_in=ttl, cooldown_seconds=cooldown)

    @store_call
    async def throttle(self, identifier: str) -> int:
        """
        Run the issuance gates of ``request`` without creating a code.

        Used where a request must look the same whether or not a code is
        sent.  Returns the cooldown that was started.
        """
        await self._ensure_unlocked(identifier)
        _, cooldown = await self._start_cooldown(identifier)
        return cooldown

    # ── Verify ─────────────────────────────────────────────────────────

    @store_call
    async def verify(self, identifier: str, candidate: str) -> None:
        """Consume the code on a match; raise on anything else."""
        await self._ensure_unlocked(identifier)

        key = self.record_key(identifier)
        raw = await self._redis.get(key)
        if raw is None:
            raise CodeExpiredError()

        try:
            record = json.loads(raw)
            stored_hash = str(record["hash"])
            attempts = int(record.get("attempts", 0))
        except (ValueError, KeyError, TypeError):
            logger.error("Discarding malformed OTP record for %s", identifier)
            await self._redis.delete(key)
            raise CodeExpiredError() from None

        if hmac.compare_digest(hash_code(candidate), stored_hash):
            await self._discard(identifier)
            logger.info("OTP verified for %s", identifier)
            return

        attempts += 1
        logger.warning(
            "Failed OTP attempt %d/%d for %s",
            attempts,
            self._policy.max_attempts,
            identifier,
        )

        if attempts >= self._policy.max_attempts:
            await self._discard(identifier)
            lock = self.lock_key(identifier)
            await self._redis.set(lock, "1", ex=self._policy.lock_seconds, nx=True)
            await self._scorer.record(identifier, LOCK_EVENT)
            logger.error("OTP verification locked for %s", identifier)
            ttl = await self._redis.ttl(lock)
            raise LockedError(remaining_seconds(ttl, self._policy.lock_seconds), domain=DOMAIN)

        record["attempts"] = attempts
        # XX: never resurrect a record that was consumed or expired meanwhile.
        if self._policy.fixed_expiry:
            await self._redis.set(key, json.dumps(record), keepttl=True, xx=True)
        else:
            await self._redis.set(key, json.dumps(record), ex=self._policy.ttl_seconds, xx=True)

        raise InvalidCodeError(self._policy.max_attempts - attempts)

    async def _discard(self, identifier: str) -> None:
        await self._redis.delete(
            self.record_key(identifier),
            self.cooldown_key(identifier),
            self.requests_key(identifier),
        )

    # ── Reads ──────────────────────────────────────────────────────────

    @store_call
    async def attempts(self, identifier: str) -> int:
        """Wrong guesses against the live record (0 when there is none)."""
        raw = await self._redis.get(self.record_key(identifier))
        if raw is None:
            return 0
        try:
            return int(json.loads(raw).get("attempts", 0))
        except (ValueError, TypeError, AttributeError):
            logger.warning("Ignoring malformed OTP record for %s", identifier)
            return 0
