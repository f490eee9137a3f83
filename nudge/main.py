# nudge/main.py
"""
Security nudge API: application factory, lifespan and middleware.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from nudge.config import settings
from nudge.db.pool import db_pool
from nudge.infrastructure.observability.logging import get_logger, log_request, setup_logging
from nudge.middleware import CORSMiddleware, RequestContextMiddleware, route_path
from nudge.repositories.user_repository import user_repository
from nudge.routes import extension, health, instructions
from nudge.services.infrastructure.encryption_service import validate_encryption_config
from nudge.services.infrastructure.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        await db_pool.initialize()
        await user_repository.ensure_schema()
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        await db_pool.close()
        raise

    # Without a key polls answer 204 and writes 400, so only warn
    if not validate_encryption_config():
        logger.warning("ENCRYPTION_KEY missing or invalid, task storage will fail")

    # The breach cache is optional; run without it rather than refuse to start
    try:
        await fast_redis.initialize()
    except RuntimeError as e:
        logger.warning("Redis unavailable, breach cache disabled", error=str(e))

    logger.info("All services initialized successfully")

    yield

    logger.info("Application shutting down")

    try:
        await fast_redis.close()
    except Exception as e:
        logger.error("Error closing Redis", error=str(e))

    try:
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))


app = FastAPI(
    title="Security Nudge",
    description="Nudges users to rotate breached passwords and enable 2FA",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)
app.add_middleware(CORSMiddleware, allowed_origins=settings.CORS_ALLOWED_ORIGINS)

app.include_router(health.router)
app.include_router(extension.router)
app.include_router(instructions.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed client input is a plain bad request."""
    logger.warning(
        "Request validation failed",
        path=route_path(request),
        fields=[".".join(str(part) for part in error["loc"]) for error in exc.errors()],
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request body"},
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=route_path(request),
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
        request_id=getattr(request.state, "request_id", None),
    )
    return response


def run() -> None:
    import uvicorn

    uvicorn.run("nudge.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
