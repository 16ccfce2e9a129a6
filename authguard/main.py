"""
FastAPI application for authguard.

The lifespan owns the single Redis client; every security component gets it
through ``SecurityManager``.  Gate decisions raised by the security layer are
mapped to HTTP responses by the exception handlers below.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from authguard.config import APP_VERSION, REDIS_URL
from authguard.models import ErrorResponse
from authguard.rate_limit import limiter
from authguard.routers import auth, health, security
from authguard.security.errors import (
    CodeExpiredError,
    CooldownActiveError,
    FlaggedError,
    InvalidCodeError,
    LockedError,
    RateLimitedError,
    StoreUnavailableError,
)
from authguard.security.manager import SecurityManager
from authguard.services.auth_flows import AuthFlows
from authguard.store import close_redis, create_redis

logger = logging.getLogger(__name__)


# ── Lifespan ──────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    redis = create_redis(REDIS_URL)
    app.state.security = SecurityManager(redis)
    app.state.auth_flows = AuthFlows(app.state.security)
    logger.info("authguard %s started (store: %s)", APP_VERSION, REDIS_URL)

    yield

    await close_redis(redis)


app = FastAPI(
    title="authguard",
    description="Abuse-mitigation gates for email OTP authentication",
    version=APP_VERSION,
    lifespan=lifespan,
)

# ── Per-IP rate limiting ──────────────────────────────────────────────────

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(RateLimitExceeded)
async def ip_rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    client = request.client.host if request.client else "unknown"
    logger.warning("IP rate limit hit: %s %s", client, exc.detail)
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )


# ── Security gate errors ──────────────────────────────────────────────────


def _error(
    status_code: int,
    body: ErrorResponse,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(LockedError)
async def locked_handler(request: Request, exc: LockedError) -> JSONResponse:
    return _error(
        429,
        ErrorResponse(detail=exc.message, retry_after=exc.retry_after),
        headers={"Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(CooldownActiveError)
async def cooldown_handler(request: Request, exc: CooldownActiveError) -> JSONResponse:
    return _error(
        429,
        ErrorResponse(detail=exc.message, retry_after=exc.retry_after),
        headers={"Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(RateLimitedError)
async def rate_limited_handler(request: Request, exc: RateLimitedError) -> JSONResponse:
    return _error(
        429,
        ErrorResponse(detail=exc.message, retry_after=exc.retry_after, limit=exc.limit),
        headers={
            "Retry-After": str(exc.retry_after),
            "X-RateLimit-Limit": str(exc.limit),
            "X-RateLimit-Remaining": "0",
        },
    )


@app.exception_handler(InvalidCodeError)
async def invalid_code_handler(request: Request, exc: InvalidCodeError) -> JSONResponse:
    return _error(400, ErrorResponse(detail=exc.message, attempts_left=exc.attempts_left))


@app.exception_handler(CodeExpiredError)
async def code_expired_handler(request: Request, exc: CodeExpiredError) -> JSONResponse:
    return _error(400, ErrorResponse(detail=exc.message))


@app.exception_handler(FlaggedError)
async def flagged_handler(request: Request, exc: FlaggedError) -> JSONResponse:
    return _error(403, ErrorResponse(detail=exc.message))


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    # Deny rather than let a request through unchecked.
    logger.error("Denying %s %s: store unavailable", request.method, request.url.path)
    return _error(
        503,
        ErrorResponse(detail="Service temporarily unavailable. Please try again later."),
    )


# ── Routers ───────────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(security.router)
