"""
Authentication routes.
"""

from fastapi import APIRouter, Depends, Response, status

from gatehouse.api.dependencies.auth import CurrentSession, RequestCtx
from gatehouse.api.dependencies.services import get_auth_service
from gatehouse.core.config import settings
from gatehouse.core.errors import Conflict, NotFound, RegistrationFailed
from gatehouse.schemas.auth import (
    ChangePasswordRequest,
    LoginData,
    LoginRequest,
    RegisterData,
    RegisterRequest,
    TokenData,
)
from gatehouse.schemas.common import Envelope, MessageData
from gatehouse.schemas.user import UserResponse
from gatehouse.services.auth import AuthService
from gatehouse.services.tokens import IssuedToken

router = APIRouter()


def token_data(issued: IssuedToken) -> TokenData:
    return TokenData(
        token=issued.plain_text,
        expires_in=settings.auth.token_expire_minutes,
        expires_at=issued.expires_at,
    )


def set_token_cookie(response: Response, issued: IssuedToken) -> None:
    """HTTP-only, same-site cookie; never readable from script."""
    response.set_cookie(
        key=settings.auth.cookie_name,
        value=issued.plain_text,
        max_age=settings.auth.token_expire_minutes * 60,
        path=settings.auth.cookie_path,
        domain=settings.auth.cookie_domain,
        secure=settings.is_production,
        httponly=True,
        samesite="strict",
    )


def clear_token_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.auth.cookie_name,
        path=settings.auth.cookie_path,
        domain=settings.auth.cookie_domain,
        secure=settings.is_production,
        httponly=True,
        samesite="strict",
    )


@router.post("/login", response_model=Envelope[LoginData])
async def login(
    data: LoginRequest,
    response: Response,
    ctx: RequestCtx,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Login with email and password."""
    user, issued = await auth_service.login(data.email, data.password, ctx)
    set_token_cookie(response, issued)
    return Envelope(
        data=LoginData(user=UserResponse.model_validate(user), token=token_data(issued)),
        message="Login successful",
    )


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[RegisterData],
)
async def register(
    data: RegisterRequest,
    ctx: RequestCtx,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Register a new user. Does not log in."""
    try:
        user = await auth_service.register(data.name, data.email, data.password, ctx)
    except (Conflict, NotFound):
        # Same outcome whether or not the email is taken
        raise RegistrationFailed()

    return Envelope(
        data=RegisterData(
            user=UserResponse.model_validate(user),
            message="Registration successful. Please log in.",
        ),
    )


@router.post("/refresh", response_model=Envelope[TokenData])
async def refresh_token(
    session: CurrentSession,
    response: Response,
    ctx: RequestCtx,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Exchange the presented token for a new one."""
    issued = await auth_service.refresh(session.user, session.token, ctx)
    set_token_cookie(response, issued)
    return Envelope(data=token_data(issued))


@router.post("/logout", response_model=Envelope[MessageData])
async def logout(
    session: CurrentSession,
    response: Response,
    ctx: RequestCtx,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Logout everywhere (revoke every token of the user)."""
    await auth_service.logout(session.user, ctx)
    clear_token_cookie(response)
    return Envelope(data=MessageData(message="Logged out successfully"))


@router.get("/me", response_model=Envelope[UserResponse])
async def get_me(session: CurrentSession):
    """Get current user profile."""
    return Envelope(data=UserResponse.model_validate(session.user))


@router.post("/password", response_model=Envelope[MessageData])
async def change_password(
    data: ChangePasswordRequest,
    session: CurrentSession,
    response: Response,
    ctx: RequestCtx,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Change password. Every session, this one included, is ended."""
    await auth_service.change_password(
        session.user,
        data.current_password,
        data.password,
        ctx,
    )
    clear_token_cookie(response)
    return Envelope(data=MessageData(message="Password changed. Please log in again."))


@router.post("/verify-email", response_model=Envelope[UserResponse])
async def verify_email(
    session: CurrentSession,
    ctx: RequestCtx,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Mark the current user's email as verified."""
    user = await auth_service.verify_email(session.user, ctx)
    return Envelope(data=UserResponse.model_validate(user))
