"""
Per-IP rate limiting using slowapi.

This is the coarse outer layer: it keys on the client IP and knows nothing
about identifiers.  The per-identifier budgets live in
``authguard.security.rate_limiter`` and run inside the auth flows.

Three tiers:
  • strict  – OTP request endpoints (prevents email spam)
  • auth    – OTP verify endpoints (prevents brute-force)
  • default – everything else
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from authguard.config import (
    IP_RATE_LIMIT_AUTH,
    IP_RATE_LIMIT_DEFAULT,
    IP_RATE_LIMIT_STRICT,
    RATE_LIMIT_STORAGE_URI,
)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[IP_RATE_LIMIT_DEFAULT],
    storage_uri=RATE_LIMIT_STORAGE_URI,
)

# Named rate strings for use in @limiter.limit() decorators
STRICT = IP_RATE_LIMIT_STRICT
AUTH = IP_RATE_LIMIT_AUTH
