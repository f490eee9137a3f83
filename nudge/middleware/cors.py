"""
CORS Middleware - Cross-Origin Resource Sharing configuration.

The extension's content scripts call the API from arbitrary pages, so the
default is to allow any origin ("*"). Deployments can lock this down to the
extension origins (e.g. "chrome-extension://<id>").

Headers added:
- Access-Control-Allow-Origin: Which origin is allowed
- Access-Control-Allow-Methods: Which HTTP methods allowed
- Access-Control-Allow-Headers: Which headers allowed
- Access-Control-Max-Age: How long to cache preflight responses
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from nudge.infrastructure.observability.logging import get_logger
from nudge.middleware.request_context import route_path

logger = get_logger(__name__)


class CORSMiddleware(BaseHTTPMiddleware):
    """
    CORS (Cross-Origin Resource Sharing) middleware.

    Handles preflight OPTIONS requests and adds CORS headers to responses.
    """

    def __init__(
        self,
        app,
        allowed_origins: list[str] | None = None,
        allow_methods: list[str] | None = None,
        allow_headers: list[str] | None = None,
        max_age: int = 600,
    ):
        super().__init__(app)
        self.allowed_origins = allowed_origins or []
        self.allow_any = "*" in self.allowed_origins
        self.allow_methods = allow_methods or ["GET", "POST", "OPTIONS"]
        self.allow_headers = allow_headers or [
            "Accept",
            "Content-Type",
            "X-Request-ID",
            "X-Requested-With",
        ]
        self.max_age = max_age

        logger.info("CORS middleware initialized", allowed_origins=self.allowed_origins)

    def _is_allowed(self, origin: str | None) -> bool:
        if not origin:
            return False
        return self.allow_any or origin in self.allowed_origins

    async def dispatch(self, request, call_next):
        origin = request.headers.get("origin")
        is_allowed_origin = self._is_allowed(origin)

        if request.method == "OPTIONS" and request.headers.get("access-control-request-method"):
            if is_allowed_origin:
                return self._preflight_response(origin)

            logger.warning("CORS preflight rejected - origin not allowed", origin=origin)
            return Response(status_code=403, content="Origin not allowed")

        response = await call_next(request)

        if is_allowed_origin:
            response.headers["Access-Control-Allow-Origin"] = "*" if self.allow_any else origin
            if not self.allow_any:
                response.headers["Vary"] = "Origin"
        elif origin:
            logger.warning(
                "CORS request from disallowed origin",
                origin=origin,
                path=route_path(request),
            )

        return response

    def _preflight_response(self, origin: str) -> Response:
        headers = {
            "Access-Control-Allow-Origin": "*" if self.allow_any else origin,
            "Access-Control-Allow-Methods": ", ".join(self.allow_methods),
            "Access-Control-Allow-Headers": ", ".join(self.allow_headers),
            "Access-Control-Max-Age": str(self.max_age),
            "X-Content-Type-Options": "nosniff",
        }
        return Response(status_code=204, headers=headers)
