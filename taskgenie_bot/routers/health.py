"""
Health check endpoints.
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from ..core.context import AppContext
from ..schemas.health import HealthStatus, LivenessResponse, ReadinessResponse
from .deps import get_app_context

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthStatus, tags=["health"])
async def health_check(app_context: AppContext = Depends(get_app_context)) -> HealthStatus:
    """Static status payload for load balancers and uptime checks."""
    settings = app_context.settings
    return HealthStatus(
        status="ok",
        service=settings.app_name,
        version=settings.app_version,
        mode="webhook" if settings.use_webhook else "polling",
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/health/live", response_model=LivenessResponse, tags=["health"])
async def liveness_probe() -> LivenessResponse:
    return LivenessResponse()


@router.get("/health/ready", response_model=ReadinessResponse, tags=["health"])
async def readiness_probe(app_context: AppContext = Depends(get_app_context)) -> ReadinessResponse:
    """
    Returns 200 once the Telegram application is initialized and able to
    process updates.
    """
    application = app_context.application
    if application is None or not application.running:
        logger.warning("Readiness check failed", application_built=application is not None)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not ready"
        )
    return ReadinessResponse()
