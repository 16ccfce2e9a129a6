"""
Error taxonomy for the abuse-mitigation gates.

Every ``SecurityError`` is a recoverable, caller-facing decision: the caller
decides how to render it.  Messages only ever mention remaining attempts or
time, never whether an identifier exists or what triggered a flag.

``StoreUnavailableError`` is not a ``SecurityError``.  It signals an
infrastructure failure; security-critical callers treat it as "deny".
"""

from __future__ import annotations

import math

CONTACT_SUPPORT_MESSAGE = "Account flagged for suspicious activity. Please contact support."


def _minutes(seconds: int) -> int:
    return max(1, math.ceil(seconds / 60))


class SecurityError(Exception):
    """Base class for gate decisions that block an operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class LockedError(SecurityError):
    """The identifier is under an active lockout for *domain*."""

    def __init__(self, retry_after: int, domain: str = "login") -> None:
        self.retry_after = max(int(retry_after), 1)
        self.domain = domain
        super().__init__(
            f"Too many failed attempts. Try again in {_minutes(self.retry_after)} minutes."
        )


class CooldownActiveError(SecurityError):
    """A new OTP was requested before the cooldown elapsed."""

    def __init__(self, retry_after: int) -> None:
        self.retry_after = max(int(retry_after), 1)
        super().__init__(
            f"Please wait {self.retry_after} seconds before requesting another code."
        )


class InvalidCodeError(SecurityError):
    """The submitted code or token did not match; attempts remain."""

    def __init__(self, attempts_left: int) -> None:
        self.attempts_left = attempts_left
        super().__init__(f"Invalid code. {attempts_left} attempts remaining.")


class CodeExpiredError(SecurityError):
    """There is no live code or token to check against."""

    def __init__(self) -> None:
        super().__init__("Code expired or invalid. Please request a new one.")


class RateLimitedError(SecurityError):
    """The rate-limit budget for this key is exhausted."""

    def __init__(self, retry_after: int, limit: int) -> None:
        self.retry_after = max(int(retry_after), 1)
        self.limit = limit
        super().__init__("Too many requests. Please try again later.")


class FlaggedError(SecurityError):
    """The identifier carries a suspicious-activity flag."""

    def __init__(self) -> None:
        super().__init__(CONTACT_SUPPORT_MESSAGE)


class StoreUnavailableError(Exception):
    """The shared store could not be reached or answered with an error."""
