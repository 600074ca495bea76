"""
Authentication dependencies.

The bearer token is read from the Authorization header, falling back to
the HTTP-only cookie. Each request resolves it afresh and builds a new
Principal; routes receive it explicitly.

Usage:
    @router.get("/me")
    async def me(session: CurrentSession):
        ...
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gatehouse.core.auth import Principal
from gatehouse.core.config import settings
from gatehouse.core.errors import Unauthenticated
from gatehouse.models.token import AccessToken
from gatehouse.models.user import User
from gatehouse.services.audit import RequestContext
from gatehouse.services.tokens import TokenService
from .services import get_token_service

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthSession:
    """Resolved credentials of the current request."""
    principal: Principal
    user: User
    token: AccessToken


def extract_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.auth.cookie_name)


async def get_auth_session(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> AuthSession:
    """
    Resolve the presented token.

    Raises:
        Unauthenticated: no token, or one that is unknown, revoked or expired
    """
    resolved = await tokens.resolve(extract_token(request, credentials))
    if resolved is None:
        raise Unauthenticated()

    user, token = resolved
    return AuthSession(principal=Principal.from_user(user), user=user, token=token)


async def get_current_principal(
    session: AuthSession = Depends(get_auth_session),
) -> Principal:
    return session.principal


def get_request_context(request: Request) -> RequestContext:
    """Provenance recorded with audit events."""
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
        request_id=getattr(request.state, "request_id", None),
    )


# Type aliases for cleaner route signatures
CurrentSession = Annotated[AuthSession, Depends(get_auth_session)]
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
RequestCtx = Annotated[RequestContext, Depends(get_request_context)]
