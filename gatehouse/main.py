"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import redis.asyncio as redis
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gatehouse.core.config import settings
from gatehouse.core.errors import GatehouseError, INTERNAL_ERROR, VALIDATION_FAILED
from gatehouse.core.logging import configure_logging
from gatehouse.api.routes import router as api_router
from gatehouse.api.middleware import (
    LoggingMiddleware,
    RateLimitMiddleware,
    RequestIdMiddleware,
    SecurityHeadersMiddleware,
)
from gatehouse.schemas.common import ErrorBody, ErrorEnvelope

logger = structlog.get_logger(__name__)

HTTP_STATUS_CODES = {
    401: "UNAUTHENTICATED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def error_response(
    status_code: int,
    code: str,
    message: str,
    details=None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorEnvelope(error=ErrorBody(code=code, message=message, details=details))
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    from gatehouse.models.database import async_session_factory, close_db, init_db
    from gatehouse.services.rbac import RBACService

    # Startup
    configure_logging(settings.log_level, settings.log_format)

    if settings.is_development:
        await init_db()

    if settings.auth.seed_roles:
        async with async_session_factory() as session:
            created = await RBACService(session).seed_defaults()
            await session.commit()
        if created:
            logger.info("Seeded roles", roles=[r.name for r in created])

    logger.info("Application started", environment=settings.environment)

    yield

    # Shutdown
    await close_db()


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure into the error envelope."""

    @app.exception_handler(GatehouseError)
    async def gatehouse_error_handler(request: Request, exc: GatehouseError):
        logger.info(
            "Request failed",
            code=exc.code,
            status_code=exc.status_code,
            path=request.url.path,
        )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return error_response(exc.status_code, exc.code, exc.message, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        return error_response(422, VALIDATION_FAILED, "The given data was invalid.", details)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
        return error_response(exc.status_code, code, str(exc.detail), headers=exc.headers)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.exception("Unhandled error", path=request.url.path)
        message = str(exc) if settings.debug else "An unexpected error occurred."
        return error_response(500, INTERNAL_ERROR, message)


def create_app(redis_client: redis.Redis | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    if redis_client is None and settings.rate_limit_enabled:
        redis_client = redis.from_url(
            settings.redis.url,
            max_connections=settings.redis.max_connections,
        )

    # Middleware (last added is outermost)
    app.add_middleware(RateLimitMiddleware, redis_client=redis_client)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(api_router, prefix=settings.api_prefix)

    register_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        """Quick health check endpoint (for load balancers)."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "gatehouse.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        workers=settings.workers,
    )
