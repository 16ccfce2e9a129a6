"""
Shared test fixtures.

Provides:
  • an in-memory Redis (fakeredis) for the security components
  • a ``SecurityManager`` / ``AuthFlows`` pair built on it, with small
    policies so lockouts are reached in a handful of calls
  • a FastAPI TestClient whose lifespan connects to the same fake server

The ``client`` fixture runs the full lifespan so the app builds its own
``SecurityManager``; tests seed or inspect the store through ``store``, a
synchronous client on the same fake server.
"""

from __future__ import annotations

import fakeredis
import pytest
from fakeredis import FakeAsyncRedis
from fastapi.testclient import TestClient

from authguard.dependencies import create_jwt
from authguard.main import app
from authguard.security.attempts import AttemptPolicy
from authguard.security.manager import SecurityManager
from authguard.security.otp import OtpPolicy
from authguard.security.suspicious import SuspicionPolicy
from authguard.services.auth_flows import AuthFlows
from tests.mocks.users import ADMIN_EMAIL, USER_EMAIL


# ── Policies ───────────────────────────────────────────────────────────────

LOGIN_TEST_POLICY = AttemptPolicy(max_attempts=5, window_seconds=900, lock_seconds=3600)
RESET_TEST_POLICY = AttemptPolicy(max_attempts=3, window_seconds=900, lock_seconds=1800)
OTP_TEST_POLICY = OtpPolicy(
    ttl_seconds=600,
    max_attempts=6,
    lock_seconds=3600,
    request_window_seconds=6 * 3600,
    fixed_expiry=False,
)
SUSPICION_TEST_POLICY = SuspicionPolicy(threshold=10, window_seconds=86400, log_limit=100)


# ── Store ──────────────────────────────────────────────────────────────────


@pytest.fixture()
def fake_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture()
async def redis(fake_server):
    client = FakeAsyncRedis(server=fake_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture()
def store(fake_server) -> fakeredis.FakeRedis:
    """Synchronous view of the fake store for seeding and assertions."""
    return fakeredis.FakeRedis(server=fake_server, decode_responses=True)


# ── Security components ────────────────────────────────────────────────────


@pytest.fixture()
def security(redis) -> SecurityManager:
    return SecurityManager(
        redis,
        login_policy=LOGIN_TEST_POLICY,
        reset_policy=RESET_TEST_POLICY,
        otp_policy=OTP_TEST_POLICY,
        suspicion_policy=SUSPICION_TEST_POLICY,
    )


@pytest.fixture()
def flows(security) -> AuthFlows:
    return AuthFlows(security, reset_token_ttl=900)


# ── HTTP ───────────────────────────────────────────────────────────────────


@pytest.fixture()
def _test_env(monkeypatch, fake_server):
    """
    Point the app lifespan at the fake store, capture outgoing codes
    instead of emailing them, and disable per-IP rate limiting.
    """
    monkeypatch.setattr(
        "authguard.main.create_redis",
        lambda url: FakeAsyncRedis(server=fake_server, decode_responses=True),
    )

    outbox: list[tuple[str, str]] = []

    async def _capture_email(to_email: str, code: str, expires_in: int) -> None:
        outbox.append((to_email, code))

    monkeypatch.setattr("authguard.routers.auth.send_otp_email", _capture_email)
    monkeypatch.setattr("authguard.dependencies.ADMIN_EMAILS", frozenset({ADMIN_EMAIL}))

    # ── Disable rate limiting in tests ────────────────────────────────
    from authguard.rate_limit import limiter as _limiter
    monkeypatch.setattr(_limiter, "enabled", False)

    return outbox


@pytest.fixture()
def outbox(_test_env) -> list[tuple[str, str]]:
    """(recipient, code) pairs the app tried to email, oldest first."""
    return _test_env


@pytest.fixture()
def client(_test_env) -> TestClient:
    """TestClient with the lifespan running against the fake store."""
    app.dependency_overrides.clear()

    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc

    app.dependency_overrides.clear()


@pytest.fixture()
def user_client(client) -> TestClient:
    """``client`` carrying a session cookie for an ordinary user."""
    client.cookies.set("session", create_jwt(USER_EMAIL))
    return client


@pytest.fixture()
def admin_client(client) -> TestClient:
    """``client`` carrying a session cookie for an administrator."""
    client.cookies.set("session", create_jwt(ADMIN_EMAIL))
    return client
