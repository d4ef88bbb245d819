"""Health check endpoints for container orchestration."""

from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from src.config import settings
from src.core.migrations import check_migrations_current
from src.database import check_database_connection
from src.services import sms_channel

router = APIRouter(tags=["Health"])


def _channel_status() -> dict[str, str]:
    return {
        "email": "configured" if settings.resend_api_key else "unconfigured",
        "sms": "configured" if sms_channel.is_available() else "disabled",
    }


@router.get("/health", response_model=None)
async def health_check() -> JSONResponse:
    """
    Health check with database and delivery channel status.

    The service is only healthy when the contact store is reachable; a
    missing SMS configuration is reported but is not a failure.
    """
    db_connected = await check_database_connection()

    return JSONResponse(
        status_code=status.HTTP_200_OK if db_connected else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if db_connected else "degraded",
            "database": "connected" if db_connected else "disconnected",
            "channels": _channel_status(),
        },
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """Liveness probe. Does not touch external dependencies."""
    return {"status": "alive"}


@router.get("/health/ready", response_model=None)
async def readiness_probe() -> JSONResponse:
    """Readiness probe. Ready once the contact store answers and is migrated."""
    db_connected = await check_database_connection()
    migrated = db_connected and await check_migrations_current()

    return JSONResponse(
        status_code=status.HTTP_200_OK if migrated else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if migrated else "not_ready",
            "database": "connected" if db_connected else "disconnected",
            "migrations": "current" if migrated else "pending",
        },
    )
