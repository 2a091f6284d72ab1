"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from catalog_sync import __version__
from catalog_sync.config import get_settings
from catalog_sync.infrastructure.database.connection import get_session_factory
from catalog_sync.infrastructure.redis import RedisKeyValueStore, get_redis_client
from catalog_sync.middleware.timing import get_route_timings

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    dependencies: dict[str, Any]


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status and version information.
    This endpoint is used by load balancers and orchestrators
    to determine if the service is running.
    """
    settings = get_settings()

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        dependencies={
            "postgres": "configured",
            "redis": "configured",
            "catalog_api": settings.catalog_api_base_url,
        },
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check() -> ReadinessResponse:
    """
    Readiness check endpoint.

    Verifies that PostgreSQL and Redis are reachable.
    This endpoint is used by Kubernetes readiness probes.
    """
    checks: dict[str, bool] = {}

    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        checks["postgres"] = True
    except Exception as e:
        logger.warning("PostgreSQL readiness check failed", error=str(e))
        checks["postgres"] = False

    checks["redis"] = await RedisKeyValueStore(get_redis_client()).ping()

    return ReadinessResponse(
        ready=all(checks.values()),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.

    Simple endpoint that returns 200 if the service is running.
    This endpoint is used by Kubernetes liveness probes.
    """
    return {"status": "alive"}


@router.get("/health/timings")
async def request_timings() -> dict[str, dict]:
    """Rolling per-route latency summary collected by the timing middleware."""
    return get_route_timings()
