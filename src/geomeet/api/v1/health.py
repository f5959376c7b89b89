"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks.
"""

from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.geomeet.config import LockBackend, get_settings
from src.geomeet.core.database import get_engine
from src.geomeet.core.redis import ping_lock_store

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check.

    No external dependencies are checked -- just that the server is running.
    """
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies() -> dict:
    """Check database and Redis connectivity. Returns check results dict."""
    checks: dict = {"database": "ok", "redis": "ok"}

    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    # Redis only backs the bucket locks
    if get_settings().LOCK_BACKEND != LockBackend.redis:
        checks["redis"] = "unused"
        return checks

    redis_error = await ping_lock_store()
    if redis_error is not None:
        checks["redis"] = "error"
        checks["redis_error"] = redis_error

    return checks


@router.get("/health/ready")
async def readiness_check():
    """Readiness check: verifies DB and Redis connectivity.

    Returns 200 if all pass, 503 if any critical dependency fails.
    """
    checks = await _check_dependencies()
    all_healthy = checks.get("database") == "ok" and checks.get("redis") in ("ok", "unused")

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
        },
    )
