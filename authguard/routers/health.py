"""
Health check endpoint.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from authguard.config import APP_VERSION
from authguard.dependencies import SecurityDep
from authguard.models import HealthResponse
from authguard.security.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    operation_id="getHealth",
    summary="Health check",
)
async def get_health(security: SecurityDep) -> HealthResponse:
    try:
        store = "ok" if await security.ping() else "unavailable"
    except StoreUnavailableError:
        logger.warning("Health check: store unavailable")
        store = "unavailable"

    return HealthResponse(
        status="ok" if store == "ok" else "degraded",
        version=APP_VERSION,
        store=store,
        timestamp=datetime.now(timezone.utc),
    )
