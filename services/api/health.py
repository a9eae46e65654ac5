"""
Health check endpoint.

Provides:
    GET /api/health - Service and store health
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Response model for the health endpoint."""

    status: str
    store: str
    store_healthy: bool
    uptime_seconds: float
    timestamp: datetime


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health",
)
async def get_health(request: Request) -> HealthResponse:
    store = getattr(request.app.state, "store", None)
    healthy = False
    if store is not None:
        try:
            healthy = await store.ping()
        except Exception as e:
            logger.warning("health_check_store_error", error=str(e))

    now = datetime.now(timezone.utc)
    started = getattr(request.app.state, "start_time", now)
    return HealthResponse(
        status="ok" if healthy else "degraded",
        store=type(store).__name__ if store is not None else "none",
        store_healthy=healthy,
        uptime_seconds=round((now - started).total_seconds(), 3),
        timestamp=now,
    )
