"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready). Both skip tenant
resolution so load balancers can probe any hostname.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.tenancy.api.deps import get_services
from src.tenancy.core.monitoring import get_metrics_response
from src.tenancy.core.redis import get_redis_pool
from src.tenancy.services.container import TenancyServices

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(services: TenancyServices = Depends(get_services)):
    """Basic liveness check. No external dependencies are checked."""
    return {"status": "ok", "environment": services.settings.ENVIRONMENT.value}


async def _check_dependencies(services: TenancyServices) -> dict:
    """Check database and (when used) Redis connectivity."""
    checks: dict = {"database": "ok", "redis": "unused", "purge_scheduler": "stopped"}

    try:
        async with services.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = type(e).__name__

    if services.settings.RESOLVER_CACHE_BACKEND == "redis":
        try:
            pong = await get_redis_pool().ping()
            checks["redis"] = "ok" if pong else "error"
        except Exception as e:
            checks["redis"] = "error"
            checks["redis_error"] = type(e).__name__

    if services.purge_scheduler.running:
        checks["purge_scheduler"] = "running"
    return checks


@router.get("/health/ready")
async def readiness_check(services: TenancyServices = Depends(get_services)):
    """Readiness check: 200 if the database (and Redis, when used) respond, else 503."""
    checks = await _check_dependencies(services)
    all_healthy = checks["database"] == "ok" and checks["redis"] in ("ok", "unused")

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
        },
    )


@router.get("/metrics", include_in_schema=False)
async def metrics():
    return get_metrics_response()
