"""Tests for the gated authentication flows."""

import pytest

from authguard.security.errors import (
    CodeExpiredError,
    CooldownActiveError,
    FlaggedError,
    InvalidCodeError,
    LockedError,
    RateLimitedError,
)
from authguard.security.manager import reset_token_key
from authguard.security.rate_limiter import LOGIN_LIMITER, OTP_LIMITER

ID = "user@example.com"


def _credentials(valid: bool):
    async def _check() -> bool:
        return valid

    return _check


async def _noop() -> None:
    return None


class TestLogin:
    async def test_success_clears_failures(self, flows, security):
        await flows.login(ID, _credentials(False))
        await flows.login(ID, _credentials(False))

        result = await flows.login(ID, _credentials(True))

        assert result.authenticated
        assert await security.login.attempts(ID) == 0

    async def test_failure_reports_attempts_left(self, flows):
        result = await flows.login(ID, _credentials(False))
        assert not result.authenticated
        assert result.attempts_left == 4

    async def test_locked_account_skips_credential_check(self, flows, security, redis):
        await redis.set(security.login.lock_key(ID), "1", ex=600)
        called = False

        async def _check() -> bool:
            nonlocal called
            called = True
            return True

        with pytest.raises(LockedError):
            await flows.login(ID, _check)
        assert not called

    async def test_rate_limited_before_lockout(self, flows, security):
        for _ in range(LOGIN_LIMITER.points):
            await security.limiter.consume(LOGIN_LIMITER, ID)

        with pytest.raises(RateLimitedError):
            await flows.login(ID, _credentials(True))

    async def test_client_key_scopes_rate_limit(self, flows, security):
        for _ in range(LOGIN_LIMITER.points):
            await security.limiter.consume(LOGIN_LIMITER, "10.0.0.1")

        result = await flows.login(ID, _credentials(True), client_key="10.0.0.2")
        assert result.authenticated


class TestFlagged:
    @pytest.fixture()
    async def flagged(self, security, redis):
        await redis.set(security.scorer.flag_key(ID), "1", ex=86400)

    @pytest.mark.parametrize(
        "run",
        [
            lambda f: f.login(ID, _credentials(True)),
            lambda f: f.request_otp(ID),
            lambda f: f.verify_otp(ID, "123456"),
            lambda f: f.request_password_reset(ID, user_exists=True),
            lambda f: f.verify_password_reset(ID, "123456"),
            lambda f: f.reset_password(ID, "token", _noop),
        ],
    )
    async def test_flag_blocks_every_flow(self, flows, flagged, run):
        with pytest.raises(FlaggedError):
            await run(flows)


class TestOtpFlow:
    async def test_request_then_verify(self, flows, security):
        issued = await flows.request_otp(ID)
        await flows.verify_otp(ID, issued.code)
        assert await security.otp.attempts(ID) == 0

    async def test_request_budget(self, flows, security):
        for _ in range(OTP_LIMITER.points):
            await security.limiter.consume(OTP_LIMITER, ID)

        with pytest.raises(RateLimitedError) as exc_info:
            await flows.request_otp(ID)

        assert exc_info.value.limit == OTP_LIMITER.points


class TestPasswordReset:
    async def test_unknown_user_gets_nothing(self, flows, security):
        assert await flows.request_password_reset(ID, user_exists=False) is None
        assert await security.otp.attempts(ID) == 0

    async def test_full_reset(self, flows, security, redis):
        issued = await flows.request_password_reset(ID, user_exists=True)
        token = await flows.verify_password_reset(ID, issued.code)

        assert token.expires_in == 900
        stored = await redis.get(reset_token_key(ID))
        assert stored is not None and stored != token.token

        applied = []

        async def _apply() -> None:
            applied.append(True)

        await flows.reset_password(ID, token.token, _apply)

        assert applied == [True]
        assert await redis.exists(reset_token_key(ID)) == 0
        assert await security.reset.attempts(ID) == 0

    async def test_token_is_single_use(self, flows):
        issued = await flows.request_password_reset(ID, user_exists=True)
        token = await flows.verify_password_reset(ID, issued.code)
        await flows.reset_password(ID, token.token, _noop)

        with pytest.raises(CodeExpiredError):
            await flows.reset_password(ID, token.token, _noop)

    async def test_wrong_token(self, flows, security):
        issued = await flows.request_password_reset(ID, user_exists=True)
        await flows.verify_password_reset(ID, issued.code)

        with pytest.raises(InvalidCodeError) as exc_info:
            await flows.reset_password(ID, "f" * 64, _noop)

        assert exc_info.value.attempts_left == 2
        entries = await security.scorer.activity_log(ID)
        assert entries[0].type == "invalid_reset_token"

    async def test_missing_token_counts_as_failure(self, flows, security):
        with pytest.raises(CodeExpiredError):
            await flows.reset_password(ID, "token", _noop)

        assert await security.reset.attempts(ID) == 1
        entries = await security.scorer.activity_log(ID)
        assert entries[0].type == "expired_reset_token"

    async def test_repeated_bad_tokens_lock_reset(self, flows, security):
        for _ in range(2):
            with pytest.raises(CodeExpiredError):
                await flows.reset_password(ID, "token", _noop)

        with pytest.raises(LockedError) as exc_info:
            await flows.reset_password(ID, "token", _noop)
        assert exc_info.value.domain == "reset"

        # Separate client key: the per-identifier reset budget is spent.
        with pytest.raises(LockedError):
            await flows.request_password_reset(ID, user_exists=True, client_key="10.0.0.9")

    async def test_wrong_password_not_applied(self, flows):
        issued = await flows.request_password_reset(ID, user_exists=True)
        await flows.verify_password_reset(ID, issued.code)
        applied = []

        async def _apply() -> None:
            applied.append(True)

        with pytest.raises(InvalidCodeError):
            await flows.reset_password(ID, "bad", _apply)
        assert applied == []

    async def test_repeat_request_same_for_known_and_unknown(self, flows):
        outcomes = {}
        for label, exists in (("known", True), ("unknown", False)):
            identifier = f"{label}@example.com"
            await flows.request_password_reset(identifier, user_exists=exists)
            with pytest.raises(CooldownActiveError) as exc_info:
                await flows.request_password_reset(identifier, user_exists=exists)
            outcomes[label] = exc_info.value.retry_after

        assert 0 < outcomes["known"] <= 60
        assert 0 < outcomes["unknown"] <= 60

    async def test_unknown_user_creates_no_code(self, flows, security, redis):
        assert await flows.request_password_reset(ID, user_exists=False) is None
        assert await redis.exists(security.otp.record_key(ID)) == 0

    async def test_reset_lock_applies_to_unknown_user(self, flows, security, redis):
        await redis.set(security.reset.lock_key(ID), "1", ex=600)

        with pytest.raises(LockedError) as exc_info:
            await flows.request_password_reset(ID, user_exists=False)

        assert exc_info.value.domain == "reset"
