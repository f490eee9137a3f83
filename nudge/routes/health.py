# nudge/routes/health.py
"""
Liveness and readiness endpoints.
"""

import time

from fastapi import APIRouter

from nudge.config import settings
from nudge.db.pool import db_health_check
from nudge.infrastructure.observability.logging import log_health_check
from nudge.services.infrastructure.redis_client import fast_redis

router = APIRouter(tags=["health"])


@router.get("/")
async def root():
    """Bare liveness probe used by the extension."""
    return {"status": "ok"}


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "security-nudge"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check covering the database pool, the optional Redis cache
    and the collaborator configuration.
    """
    checks = {}
    overall_ok = True

    # 1) Database pool
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)
        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
        overall_ok = overall_ok and is_healthy
    except Exception as e:
        checks["database"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False
    log_health_check("database", checks["database"]["ok"], checks["database"].get("latency_ms", 0))

    # 2) Redis cache (optional, never fails readiness when disabled)
    if fast_redis.configured:
        t0 = time.time()
        redis_ok = await fast_redis.ping()
        checks["redis"] = {"ok": redis_ok, "latency_ms": round((time.time() - t0) * 1000, 1)}
        overall_ok = overall_ok and redis_ok
    else:
        checks["redis"] = {"ok": True, "enabled": False}

    # 3) Configuration
    config_issues = []
    if not settings.ENCRYPTION_KEY:
        config_issues.append("ENCRYPTION_KEY not set")
    if not settings.HIBP_API_KEY:
        config_issues.append("HIBP_API_KEY not set")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and not config_issues

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
