"""
Request ID middleware for request tracing.
"""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Add unique request ID to each request.

    The id is kept on request.state for audit provenance and bound into
    structlog's context so every log line of the request carries it.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        # Check for incoming request ID header
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "client_ip")
