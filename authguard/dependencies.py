import logging
from datetime import UTC, datetime, timedelta
from typing import Annotated

import jwt
from fastapi import Cookie, Depends, HTTPException, Request, Response, status

from authguard.config import ADMIN_EMAILS, ENVIRONMENT, JWT_ALGORITHM, JWT_EXPIRY_DAYS, JWT_SECRET
from authguard.models import UserInfo
from authguard.security.manager import SecurityManager
from authguard.services.auth_flows import AuthFlows

logger = logging.getLogger(__name__)


# ── Security components ────────────────────────────────────────────────────


def get_security(request: Request) -> SecurityManager:
    """The SecurityManager built by the app lifespan."""
    return request.app.state.security


def get_auth_flows(request: Request) -> AuthFlows:
    return request.app.state.auth_flows


SecurityDep = Annotated[SecurityManager, Depends(get_security)]
AuthFlowsDep = Annotated[AuthFlows, Depends(get_auth_flows)]


# ── JWT / Session ──────────────────────────────────────────────────────────


def create_jwt(email: str) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": email,
        "iat": now,
        "exp": now + timedelta(days=JWT_EXPIRY_DAYS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_session_cookie(response: Response, email: str) -> None:
    token = create_jwt(email)
    response.set_cookie(
        key="session",
        value=token,
        httponly=True,
        samesite="lax",
        secure=ENVIRONMENT == "production",
        max_age=JWT_EXPIRY_DAYS * 86400,
    )


async def get_current_user(
    session: Annotated[str | None, Cookie()] = None,
) -> UserInfo:
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Please log in via /api/auth/verify-otp",
        )

    try:
        payload = jwt.decode(session, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please log in again.",
        ) from None
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session. Please log in again.",
        ) from None

    email: str | None = payload.get("sub")
    if not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload.",
        )

    return UserInfo(
        email=email,
        created_at=datetime.fromtimestamp(payload.get("iat", 0), tz=UTC),
    )


CurrentUser = Annotated[UserInfo, Depends(get_current_user)]


async def get_admin_user(current_user: CurrentUser) -> UserInfo:
    if current_user.email.lower() not in ADMIN_EMAILS:
        logger.warning("Non-admin %s tried to reach the security API", current_user.email)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required.",
        )
    return current_user


AdminUser = Annotated[UserInfo, Depends(get_admin_user)]
