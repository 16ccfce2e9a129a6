"""
Read-only security snapshot for operators.

Combines the lock, counter and flag state of one identifier.  Absent keys
read as zero / unlocked; nothing here writes to the store.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone

from authguard.security.attempts import AttemptTracker
from authguard.security.otp import OtpManager
from authguard.security.suspicious import SuspiciousActivityScorer


@dataclass(frozen=True)
class SecurityStatus:
    identifier: str
    login_locked: bool
    login_attempts: int
    otp_attempts: int
    suspicious: bool
    suspicious_count: int
    otp_locked: bool
    reset_locked: bool
    timestamp: datetime


class SecurityStatusAggregator:
    def __init__(
        self,
        login: AttemptTracker,
        reset: AttemptTracker,
        otp: OtpManager,
        scorer: SuspiciousActivityScorer,
    ) -> None:
        self._login = login
        self._reset = reset
        self._otp = otp
        self._scorer = scorer

    async def status(self, identifier: str) -> SecurityStatus:
        (
            login_lock,
            login_attempts,
            otp_lock,
            otp_attempts,
            reset_lock,
            suspicion,
        ) = await asyncio.gather(
            self._login.check_lock(identifier),
            self._login.attempts(identifier),
            self._otp.check_lock(identifier),
            self._otp.attempts(identifier),
            self._reset.check_lock(identifier),
            self._scorer.is_flagged(identifier),
        )
        return SecurityStatus(
            identifier=identifier,
            login_locked=login_lock.locked,
            login_attempts=login_attempts,
            otp_attempts=otp_attempts,
            suspicious=suspicion.flagged,
            suspicious_count=suspicion.count,
            otp_locked=otp_lock.locked,
            reset_locked=reset_lock.locked,
            timestamp=datetime.now(timezone.utc),
        )
