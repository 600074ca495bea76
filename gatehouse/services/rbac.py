"""
RBAC Service - Manage roles, permissions, and grants.

Usage:
    service = RBACService(db)

    # Reference data is created explicitly
    await service.create_role("editor", description="Can edit content")
    await service.create_permission("posts:publish")
    await service.grant_permission("editor", "posts:publish")

    # Grants are idempotent in both directions
    await service.grant_role(user, "editor")
    await service.grant_role(user, "editor")  # no-op

    # Reads never create anything
    perms = await service.effective_permissions(user.id)
"""

from typing import Iterable
from uuid import UUID

import structlog
from sqlalchemy import select, delete, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.core.config import settings
from gatehouse.core.errors import Conflict, NotFound
from gatehouse.models.rbac import Role, Permission, user_roles, role_permissions
from gatehouse.models.user import User

logger = structlog.get_logger(__name__)


class RBACService:
    """
    Role/Permission graph.

    Implements PermissionLookup for the AuthorizationEngine.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============================================================
    # ROLES
    # ============================================================

    async def create_role(self, name: str, description: str | None = None) -> Role:
        """Create a role. Raises Conflict if the name is taken."""
        if await self.get_role_by_name(name):
            raise Conflict(f"Role '{name}' already exists.")

        role = Role(name=name, description=description, permissions=[])
        self.db.add(role)
        await self.db.flush()

        logger.info("Role created", role=name)
        return role

    async def get_role_by_name(self, name: str) -> Role | None:
        result = await self.db.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def list_roles(self) -> list[Role]:
        result = await self.db.execute(select(Role).order_by(Role.name))
        return list(result.scalars().all())

    async def seed_defaults(self) -> list[Role]:
        """
        Create the reference roles (admin and the default user role).

        Explicit bootstrap step, run at startup. Existing roles are kept.
        """
        created = []
        defaults = {
            settings.auth.admin_role: "Full administrative access",
            settings.auth.default_role: "Standard user",
        }
        for name, description in defaults.items():
            if await self.get_role_by_name(name) is None:
                created.append(await self.create_role(name, description))
        return created

    # ============================================================
    # PERMISSIONS
    # ============================================================

    async def create_permission(self, name: str, description: str | None = None) -> Permission:
        """Create a permission. Raises Conflict if the name is taken."""
        if await self.get_permission_by_name(name):
            raise Conflict(f"Permission '{name}' already exists.")

        permission = Permission(name=name, description=description)
        self.db.add(permission)
        await self.db.flush()

        logger.info("Permission created", permission=name)
        return permission

    async def get_permission_by_name(self, name: str) -> Permission | None:
        result = await self.db.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one_or_none()

    async def list_permissions(self) -> list[Permission]:
        result = await self.db.execute(select(Permission).order_by(Permission.name))
        return list(result.scalars().all())

    # ============================================================
    # USER <-> ROLE
    # ============================================================

    async def grant_role(self, user: User, role_name: str) -> User:
        """Attach role to user. Already held is a no-op. Raises NotFound."""
        role = await self._require_role(role_name)
        await self._attach(user_roles, user_id=user.id, role_id=role.id)
        await self.db.refresh(user, attribute_names=["roles"])
        return user

    async def revoke_role(self, user: User, role_name: str) -> User:
        """Detach role from user. Not held is a no-op. Raises NotFound."""
        role = await self._require_role(role_name)
        await self.db.execute(
            delete(user_roles).where(
                user_roles.c.user_id == user.id,
                user_roles.c.role_id == role.id,
            )
        )
        await self.db.refresh(user, attribute_names=["roles"])
        return user

    async def roles_for_user(self, user_id: UUID) -> set[str]:
        """Names of the roles currently attached to a user."""
        stmt = (
            select(Role.name)
            .join(user_roles, user_roles.c.role_id == Role.id)
            .where(user_roles.c.user_id == user_id)
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    # ============================================================
    # ROLE <-> PERMISSION
    # ============================================================

    async def grant_permission(self, role_name: str, permission_name: str) -> Role:
        """Attach permission to role. Already held is a no-op."""
        role = await self._require_role(role_name)
        permission = await self._require_permission(permission_name)
        await self._attach(role_permissions, role_id=role.id, permission_id=permission.id)
        await self.db.refresh(role, attribute_names=["permissions"])
        return role

    async def revoke_permission(self, role_name: str, permission_name: str) -> Role:
        """Detach permission from role. Not held is a no-op."""
        role = await self._require_role(role_name)
        permission = await self._require_permission(permission_name)
        await self.db.execute(
            delete(role_permissions).where(
                role_permissions.c.role_id == role.id,
                role_permissions.c.permission_id == permission.id,
            )
        )
        await self.db.refresh(role, attribute_names=["permissions"])
        return role

    # ============================================================
    # EFFECTIVE PERMISSIONS (always queried, never cached)
    # ============================================================

    async def permissions_for_roles(self, role_names: Iterable[str]) -> set[str]:
        names = list(role_names)
        if not names:
            return set()
        stmt = (
            select(Permission.name)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .join(Role, Role.id == role_permissions.c.role_id)
            .where(Role.name.in_(names))
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def effective_permissions(self, user_id: UUID) -> set[str]:
        """Union of the permissions of every role attached to the user."""
        stmt = (
            select(Permission.name)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .join(user_roles, user_roles.c.role_id == role_permissions.c.role_id)
            .where(user_roles.c.user_id == user_id)
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    # ============================================================
    # HELPERS
    # ============================================================

    async def _require_role(self, name: str) -> Role:
        role = await self.get_role_by_name(name)
        if role is None:
            raise NotFound(f"Role '{name}' not found.")
        return role

    async def _require_permission(self, name: str) -> Permission:
        permission = await self.get_permission_by_name(name)
        if permission is None:
            raise NotFound(f"Permission '{name}' not found.")
        return permission

    async def _attach(self, table, **values) -> bool:
        """
        Insert a grant row unless it exists. Returns True if inserted.

        The insert runs in a savepoint so losing a race against a
        concurrent identical grant leaves the outer transaction usable.
        """
        criteria = [table.c[column] == value for column, value in values.items()]
        existing = await self.db.execute(select(table).where(*criteria))
        if existing.first() is not None:
            return False

        try:
            async with self.db.begin_nested():
                await self.db.execute(insert(table).values(**values))
        except IntegrityError:
            return False
        return True
