"""
Email service: delivers one-time codes via SMTP.

In development (no SMTP configured), emails are printed to the console
so you can see what *would* be sent without configuring a mail server.
"""

from __future__ import annotations

import logging
from email.mime.text import MIMEText

from authguard.config import (
    SMTP_FROM_EMAIL,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USE_TLS,
    SMTP_USERNAME,
    smtp_enabled,
)

logger = logging.getLogger(__name__)


def _build_body(code: str, expires_in: int) -> str:
    minutes = max(1, expires_in // 60)
    return (
        f"Your verification code is {code}.\n\n"
        f"It expires in {minutes} minutes. If you did not ask for it, "
        "you can ignore this email."
    )


async def send_otp_email(to_email: str, code: str, expires_in: int) -> None:
    """
    Send (or log) an email carrying a one-time code.

    If SMTP is not configured, falls back to console output.
    """
    subject = "Your verification code"

    # ── Console fallback (dev mode) ───────────────────────────────────
    if not smtp_enabled():
        logger.info(
            "📧 [DEV] Would send email to %s:\n  Subject: %s\n  Code: %s",
            to_email,
            subject,
            code,
        )
        return

    # ── Real SMTP send ────────────────────────────────────────────────
    import aiosmtplib

    msg = MIMEText(_build_body(code, expires_in), "plain")
    msg["Subject"] = subject
    msg["From"] = SMTP_FROM_EMAIL
    msg["To"] = to_email

    try:
        await aiosmtplib.send(
            msg,
            hostname=SMTP_HOST,
            port=SMTP_PORT,
            username=SMTP_USERNAME,
            password=SMTP_PASSWORD,
            start_tls=SMTP_USE_TLS,
        )
        logger.info("OTP email sent to %s", to_email)
    except Exception:
        logger.exception("Failed to send OTP email to %s", to_email)
        raise
