"""
RequestContext Middleware - Adds request tracking to all requests.

Adds to request.state:
- request_id: Unique ID for request tracing
- ip_address: Client IP address
- user_agent: Client user agent string

The request id is also bound into the structlog context so every log line
emitted while handling the request carries it.
"""

import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from nudge.config import settings
from nudge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Add request context to all incoming requests.

    Also adds X-Request-ID header to responses for client-side tracing.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.ip_address = self._extract_client_ip(request)
        request.state.user_agent = request.headers.get("user-agent")

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.debug("Request started", method=request.method, ip_address=request.state.ip_address)

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers["X-Request-ID"] = request_id
        return response

    def _extract_client_ip(self, request: Request) -> str | None:
        """
        Extract client IP address, only trusting X-Forwarded-For when the
        direct peer is a configured proxy.
        """
        if not settings.TRUST_X_FORWARDED_FOR:
            return request.client.host if request.client else None

        if request.client and request.client.host in settings.TRUSTED_PROXY_IPS:
            forwarded_for = request.headers.get("x-forwarded-for")
            if forwarded_for:
                # First IP is the original client
                return forwarded_for.split(",")[0].strip()

        return request.client.host if request.client else None


def route_path(request: Request) -> str:
    """
    Route template for logging, e.g. "/instructions/{task_type}/{domain}".

    Concrete paths carry user domains, so they are never logged. Requests that
    matched no route are reported as "unmatched".
    """
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"
