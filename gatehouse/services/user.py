"""
User service.
"""

from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from gatehouse.core.errors import Conflict
from gatehouse.models.rbac import Role, user_roles
from gatehouse.models.user import User
from gatehouse.services.tokens import TokenService

logger = structlog.get_logger(__name__)

MAX_PER_PAGE = 100


def escape_like(value: str) -> str:
    """Make LIKE wildcards in value match literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class UserService:
    """User management service."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: UUID | str) -> User | None:
        """Get user by ID."""
        if isinstance(user_id, str):
            user_id = UUID(user_id)
        stmt = select(User).where(User.id == user_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        """Get user by email."""
        stmt = select(User).where(User.email == email.strip().lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_users(
        self,
        page: int = 1,
        per_page: int = 15,
        search: str | None = None,
        role: str | None = None,
    ) -> tuple[list[User], int]:
        """List users with pagination, newest first."""
        per_page = max(1, min(per_page, MAX_PER_PAGE))
        page = max(1, page)
        stmt = select(User)

        if search:
            pattern = f"%{escape_like(search)}%"
            stmt = stmt.where(
                User.email.ilike(pattern, escape="\\") |
                User.name.ilike(pattern, escape="\\")
            )
        if role:
            stmt = stmt.where(
                User.id.in_(
                    select(user_roles.c.user_id)
                    .join(Role, Role.id == user_roles.c.role_id)
                    .where(Role.name == role)
                )
            )

        # Count total
        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = await self.db.scalar(count_stmt) or 0

        # Paginate
        stmt = (
            stmt.order_by(User.created_at.desc(), User.email)
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await self.db.execute(stmt)
        users = list(result.scalars().all())

        return users, total

    async def update(
        self,
        user: User,
        name: str | None = None,
        email: str | None = None,
    ) -> User:
        """
        Update profile fields. None leaves a field unchanged.

        Raises:
            Conflict: email belongs to another user
        """
        if name is not None:
            user.name = name

        if email is not None:
            email = email.strip().lower()
            if email != user.email:
                existing = await self.get_by_email(email)
                if existing is not None and existing.id != user.id:
                    raise Conflict("Email already in use.")
                user.email = email

        await self.db.flush()
        return user

    async def delete(self, user: User, tokens: TokenService) -> int:
        """
        Revoke every token of the user, then delete it.

        Returns the number of tokens revoked.
        """
        revoked = await tokens.revoke_all(user.id)
        await self.db.delete(user)
        await self.db.flush()

        logger.info("User deleted", user_id=str(user.id), revoked_tokens=revoked)
        return revoked
