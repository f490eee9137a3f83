"""
Middleware components for request processing.

This package contains middleware for:
- Request context (request ID, IP address, user agent)
- CORS for the browser extension
"""

from nudge.middleware.cors import CORSMiddleware
from nudge.middleware.request_context import RequestContextMiddleware, route_path

__all__ = [
    "RequestContextMiddleware",
    "CORSMiddleware",
    "route_path",
]
