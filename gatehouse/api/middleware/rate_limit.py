"""
Rate limiting middleware using Redis sliding window.
"""

import time
from typing import Callable

import structlog
import redis.asyncio as redis
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse

from gatehouse.core.config import settings
from gatehouse.core.errors import RateLimited
from gatehouse.schemas.common import ErrorBody, ErrorEnvelope

logger = structlog.get_logger(__name__)

# Requests per window for credential endpoints, keyed by path suffix
ROUTE_LIMITS: dict[str, int] = {
    "/auth/login": 5,
    "/auth/register": 3,
    "/auth/refresh": 10,
}


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting middleware using Redis sliding window algorithm.

    Limits requests per client IP and route bucket. Credential endpoints
    get their own, tighter buckets; everything else shares the default.
    Configurable via settings:
        - rate_limit_enabled: Enable/disable rate limiting
        - rate_limit_requests: Default max requests per window
        - rate_limit_window: Window size in seconds
        - rate_limit_trusted_proxies: Peers allowed to set X-Forwarded-For

    If Redis is unreachable the request is let through with a warning.
    """

    def __init__(
        self,
        app,
        redis_client: redis.Redis | None = None,
        enabled: bool | None = None,
        route_limits: dict[str, int] | None = None,
        trusted_proxies: list[str] | None = None,
    ):
        super().__init__(app)
        self.redis_client = redis_client
        self.enabled = settings.rate_limit_enabled if enabled is None else enabled
        self.max_requests = settings.rate_limit_requests
        self.window_seconds = settings.rate_limit_window
        self.route_limits = ROUTE_LIMITS if route_limits is None else route_limits
        self.trusted_proxies = set(
            settings.rate_limit_trusted_proxies if trusted_proxies is None else trusted_proxies
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled or not self.redis_client:
            return await call_next(request)

        # Skip rate limiting for certain paths
        if self._should_skip(request.url.path):
            return await call_next(request)

        bucket, limit = self._bucket_for(request.url.path)
        identifier = f"{self._get_identifier(request)}:{bucket}"

        try:
            is_allowed, remaining, reset_time = await self._check_rate_limit(identifier, limit)
        except RedisError as exc:
            logger.warning("Rate limiter unavailable, allowing request", error=str(exc))
            return await call_next(request)

        if not is_allowed:
            logger.warning("Rate limit exceeded", bucket=bucket)
            error = RateLimited()
            body = ErrorEnvelope(error=ErrorBody(code=error.code, message=error.message))
            return JSONResponse(
                status_code=error.status_code,
                content=body.model_dump(exclude_none=True),
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset_time),
                    "Retry-After": str(reset_time),
                },
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset_time)

        return response

    def _should_skip(self, path: str) -> bool:
        """Paths to skip rate limiting."""
        skip_paths = ["/health", "/docs", "/openapi.json", "/redoc"]
        return any(path.startswith(p) for p in skip_paths)

    def _bucket_for(self, path: str) -> tuple[str, int]:
        for suffix, limit in self.route_limits.items():
            if path.rstrip("/").endswith(suffix):
                return suffix, limit
        return "default", self.max_requests

    def _get_identifier(self, request: Request) -> str:
        """Get rate limit identifier from request."""
        ip = request.client.host if request.client else "unknown"

        # Forwarded headers are client-controlled unless a known proxy set them
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded and ip in self.trusted_proxies:
            ip = forwarded.split(",")[0].strip() or ip

        return f"ip:{ip}"

    async def _check_rate_limit(
        self, identifier: str, limit: int
    ) -> tuple[bool, int, int]:
        """
        Check rate limit using sliding window algorithm.

        Returns:
            (is_allowed, remaining_requests, seconds_until_reset)
        """
        now = time.time()
        window_start = now - self.window_seconds
        key = f"rate_limit:{identifier}"

        pipe = self.redis_client.pipeline()

        # Remove old entries
        pipe.zremrangebyscore(key, 0, window_start)
        # Add current request
        pipe.zadd(key, {str(now): now})
        # Count requests in window
        pipe.zcard(key)
        # Set expiry
        pipe.expire(key, self.window_seconds)

        results = await pipe.execute()
        request_count = results[2]

        remaining = max(0, limit - request_count)
        is_allowed = request_count <= limit

        return is_allowed, remaining, self.window_seconds
