"""
Authentication flows wired through the security gates.

Every flow runs its gates in the same order before any business logic:

1.  Rate limiter        – raw call frequency per identifier (or client key)
2.  Suspicious flag     – hard circuit breaker shared by all flows
3.  Domain lock         – login / reset / OTP lockout
4.  Business logic      – injected by the caller (password check, user update)
5.  Clear on success

Business logic is passed in as coroutines so the flows stay independent of
user storage.  Any gate failure raises before the injected coroutine runs.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from authguard import config
from authguard.security.errors import CodeExpiredError, InvalidCodeError
from authguard.security.manager import SecurityManager, reset_token_key
from authguard.security.otp import IssuedOtp
from authguard.security.rate_limiter import (
    LOGIN_LIMITER,
    OTP_LIMITER,
    OTP_VERIFY_LIMITER,
    PASSWORD_RESET_LIMITER,
    RateLimitConfig,
)
from authguard.store import store_call

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    authenticated: bool
    attempts_left: int | None = None


@dataclass(frozen=True)
class ResetToken:
    token: str
    expires_in: int


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthFlows:
    def __init__(
        self,
        security: SecurityManager,
        *,
        reset_token_ttl: int = config.RESET_TOKEN_TTL_SECONDS,
    ) -> None:
        self._security = security
        self._reset_token_ttl = reset_token_ttl

    async def _gate(
        self,
        limiter: RateLimitConfig,
        identifier: str,
        client_key: str | None,
    ) -> None:
        await self._security.limiter.enforce(limiter, client_key or identifier)
        await self._security.scorer.ensure_not_flagged(identifier)

    # ── Login ──────────────────────────────────────────────────────────

    async def login(
        self,
        identifier: str,
        check_credentials: Callable[[], Awaitable[bool]],
        client_key: str | None = None,
    ) -> LoginResult:
        """
        Run a password login.  ``check_credentials`` returns False for an
        unknown user as well as for a wrong password, so the two look alike.
        """
        await self._gate(LOGIN_LIMITER, identifier, client_key)
        await self._security.login.ensure_unlocked(identifier)

        if not await check_credentials():
            result = await self._security.login.record_failure(identifier)
            return LoginResult(authenticated=False, attempts_left=result.attempts_left)

        await self._security.login.clear(identifier)
        logger.info("Login successful: %s", identifier)
        return LoginResult(authenticated=True)

    # ── OTP ────────────────────────────────────────────────────────────

    async def request_otp(self, identifier: str, client_key: str | None = None) -> IssuedOtp:
        await self._gate(OTP_LIMITER, identifier, client_key)
        return await self._security.otp.request(identifier)

    async def verify_otp(
        self,
        identifier: str,
        code: str,
        client_key: str | None = None,
    ) -> None:
        await self._gate(OTP_VERIFY_LIMITER, identifier, client_key)
        await self._security.otp.verify(identifier, code)

    # ── Password reset ─────────────────────────────────────────────────

    async def request_password_reset(
        self,
        identifier: str,
        user_exists: bool,
        client_key: str | None = None,
    ) -> IssuedOtp | None:
        """
        Issue a reset code for a known user.  Unknown users get ``None`` and
        callers answer both cases with the same message.

        Unknown users pass the same lock and cooldown gates, so a repeated
        request is refused the same way whether or not the account exists.
        """
        await self._gate(PASSWORD_RESET_LIMITER, identifier, client_key)
        await self._security.reset.ensure_unlocked(identifier)
        if not user_exists:
            await self._security.otp.throttle(identifier)
            return None
        return await self._security.otp.request(identifier)

    @store_call
    async def verify_password_reset(
        self,
        identifier: str,
        code: str,
        client_key: str | None = None,
    ) -> ResetToken:
        """Trade a valid reset code for a short-lived single-use reset token."""
        await self._gate(OTP_VERIFY_LIMITER, identifier, client_key)
        await self._security.reset.ensure_unlocked(identifier)
        await self._security.otp.verify(identifier, code)

        token = secrets.token_hex(32)
        await self._security.redis.set(
            reset_token_key(identifier), _hash_token(token), ex=self._reset_token_ttl
        )
        logger.info("Password reset code verified for %s", identifier)
        return ResetToken(token=token, expires_in=self._reset_token_ttl)

    @store_call
    async def reset_password(
        self,
        identifier: str,
        token: str,
        apply_new_password: Callable[[], Awaitable[None]],
        client_key: str | None = None,
    ) -> None:
        """Check the reset token and run ``apply_new_password`` on a match."""
        await self._gate(PASSWORD_RESET_LIMITER, identifier, client_key)
        await self._security.reset.ensure_unlocked(identifier)

        key = reset_token_key(identifier)
        stored = await self._security.redis.get(key)
        if stored is None:
            await self._security.scorer.record(identifier, "expired_reset_token")
            await self._security.reset.record_failure(identifier)
            raise CodeExpiredError()

        if not hmac.compare_digest(_hash_token(token), stored):
            await self._security.scorer.record(identifier, "invalid_reset_token")
            result = await self._security.reset.record_failure(identifier)
            raise InvalidCodeError(result.attempts_left)

        await apply_new_password()
        await self._security.redis.delete(key)
        await self._security.reset.clear(identifier)
        logger.info("Password reset successful for %s", identifier)
