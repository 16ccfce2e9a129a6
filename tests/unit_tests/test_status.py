"""Tests for the security status snapshot."""

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from authguard.security.errors import LockedError, StoreUnavailableError
from authguard.security.manager import SecurityManager

ID = "user@example.com"


class TestStatus:
    async def test_clean_identifier(self, security):
        status = await security.status.status(ID)

        assert status.identifier == ID
        assert not status.login_locked
        assert not status.otp_locked
        assert not status.reset_locked
        assert not status.suspicious
        assert status.login_attempts == 0
        assert status.otp_attempts == 0
        assert status.suspicious_count == 0
        assert status.timestamp.tzinfo is not None

    async def test_reflects_failures_and_locks(self, security, redis):
        for _ in range(2):
            await security.login.record_failure(ID)
        for _ in range(2):
            await security.reset.record_failure(ID)
        with pytest.raises(LockedError):
            await security.reset.record_failure(ID)
        await redis.set(
            security.otp.record_key(ID), json.dumps({"hash": "x", "attempts": 4}), ex=600
        )

        status = await security.status.status(ID)

        assert status.login_attempts == 2
        assert not status.login_locked
        assert status.reset_locked
        assert status.otp_attempts == 4
        assert status.suspicious_count == 1
        assert not status.suspicious

    async def test_malformed_values_read_as_zero(self, security, redis):
        await redis.set(security.login.counter_key(ID), "nope")
        await redis.set(security.otp.record_key(ID), "[]")
        await redis.set(security.scorer.score_key(ID), "??")

        status = await security.status.status(ID)

        assert status.login_attempts == 0
        assert status.otp_attempts == 0
        assert status.suspicious_count == 0

    async def test_store_outage_propagates(self):
        broken = AsyncMock()
        broken.ttl.side_effect = RedisConnectionError("down")
        broken.get.side_effect = RedisConnectionError("down")
        broken.mget.side_effect = RedisConnectionError("down")

        with pytest.raises(StoreUnavailableError):
            await SecurityManager(broken).status.status(ID)
