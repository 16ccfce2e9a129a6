"""
Authentication endpoints – email OTP flow with JWT session cookies.

Both OTP endpoints sit behind two limiters: slowapi per client IP, then the
per-email budget and lockout gates inside ``AuthFlows``.  Gate failures are
turned into HTTP responses by the handlers in ``authguard.main``.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response

from authguard.dependencies import AuthFlowsDep, CurrentUser, create_session_cookie
from authguard.models import (
    AuthResponse,
    ErrorResponse,
    MessageResponse,
    OtpRequest,
    OtpRequestResponse,
    OtpVerifyRequest,
    UserInfo,
)
from authguard.rate_limit import AUTH, STRICT, limiter
from authguard.services.email import send_otp_email

router = APIRouter(prefix="/api/auth", tags=["auth"])

# Bodies built by the security error handlers in authguard.main
GATE_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid or expired code"},
    403: {"model": ErrorResponse, "description": "Identifier flagged"},
    429: {"model": ErrorResponse, "description": "Locked, cooling down or rate limited"},
    503: {"model": ErrorResponse, "description": "Store unavailable"},
}


@router.post(
    "/request-otp",
    response_model=OtpRequestResponse,
    operation_id="requestOtp",
    responses=GATE_RESPONSES,
    summary="Request a one-time password sent to the given email",
)
@limiter.limit(STRICT)
async def request_otp(
    request: Request, body: OtpRequest, flows: AuthFlowsDep
) -> OtpRequestResponse:
    """
    Generate a 6-digit OTP and send it via email.
    In dev mode (no SMTP configured), the OTP is printed to the console.
    """
    issued = await flows.request_otp(body.email)
    await send_otp_email(body.email, issued.code, issued.expires_in)

    return OtpRequestResponse(
        message=f"OTP sent to {body.email}",
        expires_in_seconds=issued.expires_in,
        cooldown_seconds=issued.cooldown_seconds,
    )


@router.post(
    "/verify-otp",
    response_model=AuthResponse,
    operation_id="verifyOtp",
    responses=GATE_RESPONSES,
    summary="Verify OTP and receive a JWT session cookie",
)
@limiter.limit(AUTH)
async def verify_otp(
    request: Request, body: OtpVerifyRequest, response: Response, flows: AuthFlowsDep
) -> AuthResponse:
    """
    Validate the OTP.  On success, set a signed JWT as an HTTP-only cookie
    and return the user info.
    """
    await flows.verify_otp(body.email, body.otp_code)
    create_session_cookie(response, body.email)

    user = UserInfo(
        email=body.email,
        created_at=datetime.now(timezone.utc),
    )
    return AuthResponse(
        message="Authenticated successfully",
        user=user,
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    operation_id="logout",
    summary="Clear the session cookie",
)
async def logout(current_user: CurrentUser, response: Response) -> MessageResponse:
    response.delete_cookie("session")
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/me",
    response_model=UserInfo,
    operation_id="getMe",
    summary="Get current authenticated user info",
)
async def get_me(current_user: CurrentUser) -> UserInfo:
    return current_user
