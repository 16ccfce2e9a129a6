"""
Application configuration from environment variables.

All settings have sensible defaults for local development.
A .env file in the project root is loaded automatically (if present).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file before reading any env vars
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ── Environment ───────────────────────────────────────────────────────────

ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
APP_VERSION: str = "0.1.0"

# ── Store ─────────────────────────────────────────────────────────────────

REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# ── JWT ───────────────────────────────────────────────────────────────────

JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-secret-change-me-in-production")
JWT_ALGORITHM: str = "HS256"
JWT_EXPIRY_DAYS: int = int(os.getenv("JWT_EXPIRY_DAYS", "7"))

# Comma-separated list of session emails allowed to use /api/security.
ADMIN_EMAILS: frozenset[str] = frozenset(
    e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()
)

# ── SMTP ──────────────────────────────────────────────────────────────────

SMTP_HOST: str = os.getenv("SMTP_HOST", "")
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL: str = os.getenv("SMTP_FROM_EMAIL", "noreply@authguard.local")
SMTP_USE_TLS: bool = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

# Set to "false" to force console-only mode even when SMTP credentials are present.
_SMTP_ENABLED_OVERRIDE: str = os.getenv("SMTP_ENABLED", "auto")


def smtp_enabled() -> bool:
    """True when SMTP should actually send emails.

    Controlled by SMTP_ENABLED env var:
      • "auto" (default): send if credentials are configured
      • "true":  always send (will fail if credentials are missing)
      • "false": never send, print to console instead
    """
    if _SMTP_ENABLED_OVERRIDE.lower() == "false":
        return False
    if _SMTP_ENABLED_OVERRIDE.lower() == "true":
        return True
    return bool(SMTP_HOST and SMTP_USERNAME and SMTP_PASSWORD)


# ── Login lockout ─────────────────────────────────────────────────────────

LOGIN_MAX_ATTEMPTS: int = int(os.getenv("LOGIN_MAX_ATTEMPTS", "5"))
LOGIN_ATTEMPT_WINDOW_SECONDS: int = int(os.getenv("LOGIN_ATTEMPT_WINDOW_SECONDS", str(15 * 60)))
LOGIN_LOCK_SECONDS: int = int(os.getenv("LOGIN_LOCK_SECONDS", str(60 * 60)))

# ── Password reset ────────────────────────────────────────────────────────

RESET_MAX_ATTEMPTS: int = int(os.getenv("RESET_MAX_ATTEMPTS", "3"))
RESET_ATTEMPT_WINDOW_SECONDS: int = int(os.getenv("RESET_ATTEMPT_WINDOW_SECONDS", str(15 * 60)))
RESET_LOCK_SECONDS: int = int(os.getenv("RESET_LOCK_SECONDS", str(30 * 60)))
RESET_TOKEN_TTL_SECONDS: int = int(os.getenv("RESET_TOKEN_TTL_SECONDS", str(15 * 60)))

# ── OTP ───────────────────────────────────────────────────────────────────

OTP_TTL_SECONDS: int = int(os.getenv("OTP_TTL_SECONDS", "600"))
OTP_MAX_ATTEMPTS: int = int(os.getenv("OTP_MAX_ATTEMPTS", "6"))
OTP_LOCK_SECONDS: int = int(os.getenv("OTP_LOCK_SECONDS", str(60 * 60)))
OTP_REQUEST_WINDOW_SECONDS: int = int(os.getenv("OTP_REQUEST_WINDOW_SECONDS", str(6 * 60 * 60)))

# When "true", a wrong guess no longer pushes the OTP expiry back to a full
# window; the code dies OTP_TTL_SECONDS after it was issued.
OTP_FIXED_EXPIRY: bool = os.getenv("OTP_FIXED_EXPIRY", "false").lower() == "true"

# ── Suspicious activity ───────────────────────────────────────────────────

SUSPICIOUS_THRESHOLD: int = int(os.getenv("SUSPICIOUS_THRESHOLD", "10"))
SUSPICIOUS_WINDOW_SECONDS: int = int(os.getenv("SUSPICIOUS_WINDOW_SECONDS", str(24 * 60 * 60)))
SUSPICIOUS_LOG_LIMIT: int = int(os.getenv("SUSPICIOUS_LOG_LIMIT", "100"))

# ── Per-IP rate limiting (slowapi) ────────────────────────────────────────

# "memory://" keeps counters in-process; point at Redis for multi-replica setups.
RATE_LIMIT_STORAGE_URI: str = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
IP_RATE_LIMIT_DEFAULT: str = os.getenv("IP_RATE_LIMIT_DEFAULT", "100 per 15 minutes")
IP_RATE_LIMIT_STRICT: str = os.getenv("IP_RATE_LIMIT_STRICT", "5/minute")
IP_RATE_LIMIT_AUTH: str = os.getenv("IP_RATE_LIMIT_AUTH", "10/minute")
