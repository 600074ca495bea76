"""Middleware package."""

from gatehouse.api.middleware.request_id import RequestIdMiddleware
from gatehouse.api.middleware.logging import LoggingMiddleware
from gatehouse.api.middleware.rate_limit import RateLimitMiddleware
from gatehouse.api.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "RequestIdMiddleware",
    "LoggingMiddleware",
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
]
