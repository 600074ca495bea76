"""
Database models.
"""

from .base import Base, TimestampMixin, UUIDMixin
from .rbac import Role, Permission, user_roles, role_permissions
from .user import User
from .token import AccessToken
from .audit_log import AuditLog

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # RBAC
    "Role",
    "Permission",
    "user_roles",
    "role_permissions",
    # Models
    "User",
    "AccessToken",
    "AuditLog",
]
