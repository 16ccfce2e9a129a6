"""Tests for per-IP rate limiting (slowapi)."""

import pytest
from fastapi.testclient import TestClient

from authguard.main import app
from authguard.security.otp import OtpManager


class TestRateLimiting:
    """Verify that the per-IP limits kick in for the OTP endpoints."""

    @pytest.fixture()
    def limited_client(self, _test_env):
        """
        TestClient with rate limiting **enabled** (unlike the default
        `client` fixture which disables it for convenience).
        """
        from authguard.rate_limit import limiter

        limiter.enabled = True
        # Reset in-memory state so previous tests don't pollute counts
        limiter.reset()

        with TestClient(app, raise_server_exceptions=False) as tc:
            yield tc

        limiter.enabled = False

    def test_otp_request_rate_limit(self, limited_client):
        """POST /api/auth/request-otp is limited to 5 requests/minute per IP."""
        # Distinct emails so the per-email gates stay out of the way.
        for i in range(5):
            resp = limited_client.post(
                "/api/auth/request-otp",
                json={"email": f"user{i}@example.com"},
            )
            assert resp.status_code == 200, f"Request {i + 1} should succeed"

        resp = limited_client.post(
            "/api/auth/request-otp",
            json={"email": "user99@example.com"},
        )
        assert resp.status_code == 429
        assert "Rate limit exceeded" in resp.json()["detail"]

    def test_otp_verify_rate_limit(self, limited_client, store):
        """POST /api/auth/verify-otp is limited to 10 requests/minute per IP."""
        for i in range(10):
            resp = limited_client.post(
                "/api/auth/verify-otp",
                json={"email": f"user{i}@example.com", "otp_code": "000000"},
            )
            assert resp.status_code == 400, f"Request {i + 1} should reach the handler"

        resp = limited_client.post(
            "/api/auth/verify-otp",
            json={"email": "user99@example.com", "otp_code": "000000"},
        )
        assert resp.status_code == 429
        assert "Rate limit exceeded" in resp.json()["detail"]
        assert not store.exists(OtpManager.lock_key("user99@example.com"))
