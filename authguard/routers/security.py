"""
Security administration endpoints (admin session required).
"""

from fastapi import APIRouter

from authguard.dependencies import AdminUser, SecurityDep
from authguard.models import (
    ActivityEntryResponse,
    ActivityLogResponse,
    ClearResponse,
    SecurityStatusResponse,
)

router = APIRouter(prefix="/api/security", tags=["security"])


@router.get(
    "/{identifier}/status",
    response_model=SecurityStatusResponse,
    operation_id="getSecurityStatus",
    summary="Lock, attempt and suspicious-activity state for an identifier",
)
async def get_status(
    identifier: str, admin: AdminUser, security: SecurityDep
) -> SecurityStatusResponse:
    status = await security.status.status(identifier)
    return SecurityStatusResponse(
        identifier=status.identifier,
        login_locked=status.login_locked,
        login_attempts=status.login_attempts,
        otp_attempts=status.otp_attempts,
        otp_locked=status.otp_locked,
        reset_locked=status.reset_locked,
        suspicious=status.suspicious,
        suspicious_count=status.suspicious_count,
        timestamp=status.timestamp,
    )


@router.get(
    "/{identifier}/activity",
    response_model=ActivityLogResponse,
    operation_id="getSuspiciousActivity",
    summary="Recent suspicious activity for an identifier, newest first",
)
async def get_activity(
    identifier: str, admin: AdminUser, security: SecurityDep
) -> ActivityLogResponse:
    entries = await security.scorer.activity_log(identifier)
    return ActivityLogResponse(
        identifier=identifier,
        items=[
            ActivityEntryResponse(type=e.type, timestamp=e.timestamp, count=e.count)
            for e in entries
        ],
    )


@router.delete(
    "/{identifier}",
    response_model=ClearResponse,
    operation_id="clearSecurityFlags",
    summary="Clear every lock, counter and flag for an identifier",
)
async def clear_flags(
    identifier: str, admin: AdminUser, security: SecurityDep
) -> ClearResponse:
    result = await security.clear_flags(identifier)
    message = "Security flags cleared" if result.success else "Security flags partially cleared"
    return ClearResponse(
        message=message,
        cleared=len(result.cleared),
        failed=len(result.failed),
    )
