"""
Security headers middleware.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from gatehouse.core.config import SecuritySettings, settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add hardening headers to every response."""

    def __init__(self, app, config: SecuritySettings | None = None, hsts: bool | None = None):
        super().__init__(app)
        self.config = config or settings.security
        # HSTS only makes sense behind TLS
        self.hsts = self.config.hsts_enabled and (
            settings.is_production if hsts is None else hsts
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        if not self.config.headers_enabled:
            return response

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = self.config.x_frame_options
        response.headers["Referrer-Policy"] = self.config.referrer_policy
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        response.headers["Cache-Control"] = "no-store"

        if self.hsts:
            value = f"max-age={self.config.hsts_max_age}"
            if self.config.hsts_include_subdomains:
                value += "; includeSubDomains"
            if self.config.hsts_preload:
                value += "; preload"
            response.headers["Strict-Transport-Security"] = value

        return response
