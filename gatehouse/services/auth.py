"""
Authentication service.

Credentials flow: login, register, logout, password change, email
verification and token refresh. Every operation ends with its audit
record, which commits the unit of work.
"""

from functools import lru_cache
from typing import NoReturn

import structlog
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.core.config import AuthSettings, settings
from gatehouse.core.errors import Conflict, InvalidCredentials, NotFound
from gatehouse.models.token import AccessToken
from gatehouse.models.user import User
from gatehouse.services.audit import AuditAction, AuditSink, RequestContext, SYSTEM_CONTEXT
from gatehouse.services.rbac import RBACService
from gatehouse.services.tokens import IssuedToken, TokenService
from gatehouse.utils.timezone import utc_now

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.auth.bcrypt_rounds,
)


@lru_cache
def dummy_hash() -> str:
    """Hash verified against when the email is unknown."""
    return pwd_context.hash("gatehouse-dummy-password")


class AuthService:
    """Authentication service."""

    def __init__(
        self,
        db: AsyncSession,
        tokens: TokenService,
        audit: AuditSink,
        config: AuthSettings | None = None,
    ):
        self.db = db
        self.tokens = tokens
        self.audit = audit
        self.config = config or settings.auth

    def hash_password(self, password: str) -> str:
        """Hash a password."""
        return pwd_context.hash(password)

    def verify_password(self, plain: str, hashed: str) -> bool:
        """Verify password against hash (constant time)."""
        return pwd_context.verify(plain, hashed)

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.strip().lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def login(
        self,
        email: str,
        password: str,
        ctx: RequestContext = SYSTEM_CONTEXT,
    ) -> tuple[User, IssuedToken]:
        """
        Authenticate and issue a token.

        Unknown email and wrong password pay the same bcrypt cost and fail
        identically.

        Raises:
            InvalidCredentials: on any failure
        """
        email = email.strip().lower()
        user = await self.get_by_email(email)

        if user is None:
            self.verify_password(password, dummy_hash())
            await self._login_failed(email, ctx)
        elif not self.verify_password(password, user.password_hash):
            await self._login_failed(email, ctx)
        elif self.config.require_verified_email and not user.is_email_verified:
            await self._login_failed(email, ctx)

        user.last_login_at = utc_now()
        issued = await self.tokens.issue(user)

        await self.audit.record(
            AuditAction.LOGIN,
            user_id=user.id,
            details={"token_id": str(issued.record.id)},
            context=ctx,
        )
        logger.info("User logged in", user_id=str(user.id))
        return user, issued

    async def _login_failed(self, email: str, ctx: RequestContext) -> NoReturn:
        await self.audit.record(
            AuditAction.LOGIN_FAILED,
            details={"email": email},
            context=ctx,
        )
        logger.warning("Login failed")
        raise InvalidCredentials()

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        ctx: RequestContext = SYSTEM_CONTEXT,
    ) -> User:
        """
        Create an account holding the default role. Does not log in.

        Raises:
            Conflict: email already registered
            NotFound: default role has not been seeded
        """
        email = email.strip().lower()
        if await self.get_by_email(email):
            raise Conflict("Email already registered.")

        role = await RBACService(self.db).get_role_by_name(self.config.default_role)
        if role is None:
            raise NotFound(f"Role '{self.config.default_role}' not found.")

        user = User(
            name=name,
            email=email,
            password_hash=self.hash_password(password),
            email_verified_at=None,
            last_login_at=None,
            roles=[role],
        )
        self.db.add(user)
        await self.db.flush()

        await self.audit.record(
            AuditAction.REGISTERED,
            user_id=user.id,
            details={"role": role.name},
            context=ctx,
        )
        logger.info("User registered", user_id=str(user.id))
        return user

    async def logout(self, user: User, ctx: RequestContext = SYSTEM_CONTEXT) -> int:
        """Revoke every token of the user. Returns how many were live."""
        revoked = await self.tokens.revoke_all(user.id)
        await self.audit.record(
            AuditAction.LOGOUT,
            user_id=user.id,
            details={"revoked_tokens": revoked},
            context=ctx,
        )
        return revoked

    async def refresh(
        self,
        user: User,
        presented: AccessToken,
        ctx: RequestContext = SYSTEM_CONTEXT,
    ) -> IssuedToken:
        """Issue a replacement token (rotating the presented one if enabled)."""
        issued = await self.tokens.refresh(user, presented)
        await self.audit.record(
            AuditAction.TOKEN_REFRESHED,
            user_id=user.id,
            details={
                "token_id": str(issued.record.id),
                "rotated": self.config.rotation_enabled,
            },
            context=ctx,
        )
        return issued

    async def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
        ctx: RequestContext = SYSTEM_CONTEXT,
    ) -> int:
        """
        Replace the password and revoke every outstanding token.

        Returns the number of tokens revoked.

        Raises:
            InvalidCredentials: current password is wrong
        """
        if not self.verify_password(current_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect.")

        user.password_hash = self.hash_password(new_password)
        await self.db.flush()
        revoked = await self.tokens.revoke_all(user.id)

        await self.audit.record(
            AuditAction.PASSWORD_CHANGED,
            user_id=user.id,
            details={"revoked_tokens": revoked},
            context=ctx,
        )
        logger.info("Password changed", user_id=str(user.id))
        return revoked

    async def verify_email(self, user: User, ctx: RequestContext = SYSTEM_CONTEXT) -> User:
        """Mark the email verified. Already verified is a no-op."""
        if user.is_email_verified:
            return user

        user.email_verified_at = utc_now()
        await self.db.flush()
        await self.audit.record(
            AuditAction.EMAIL_VERIFIED,
            user_id=user.id,
            context=ctx,
        )
        return user
