"""
Health Check Endpoints

Liveness and readiness probes. Readiness covers the scheduling database
and the Redis flow store.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from agenda import __version__
from agenda.config import settings
from agenda.infra.database import check_db_health
from agenda.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Set application start time. Called once on startup."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    """Get application uptime in seconds."""
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: datetime
    version: str
    environment: str
    uptime_seconds: Optional[float] = None


class ReadyResponse(BaseModel):
    """Readiness check response with dependency status."""
    status: str
    timestamp: datetime
    checks: dict[str, str]


async def _check(name: str, probe) -> str:
    try:
        ok = await probe()
    except Exception as e:
        logger.error(f"Readiness check: {name} error - {e}")
        return "error"
    if not ok:
        logger.warning(f"Readiness check: {name} unhealthy")
    return "ok" if ok else "failed"


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the application is running. Does not check dependencies.",
)
async def health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        environment=settings.app_env,
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness probe",
    description="Checks database and Redis connectivity. Returns 503 if any dependency is unavailable.",
    responses={
        200: {"description": "All dependencies are ready"},
        503: {"description": "One or more dependencies are unavailable"},
    },
)
async def ready():
    """
    Readiness probe for load balancers.

    Redis being down is reported but the flow store keeps working from
    its in-memory fallback, so only the database decides readiness.
    """
    checks = {
        "database": await _check("database", check_db_health),
        "redis": await _check("redis", check_redis_health),
    }
    is_ready = checks["database"] == "ok"

    response = ReadyResponse(
        status="ready" if is_ready else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )
    if not is_ready:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )
    return response


@router.get(
    "/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
)
async def live() -> dict:
    """Always 200 while the process is running."""
    return {"status": "alive", "uptime_seconds": get_uptime_seconds()}
