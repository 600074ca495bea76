"""
Authorization interfaces - Core abstractions.

These define the contracts between the Authorization Engine and its
collaborators. The engine depends only on these, never on the ORM.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Protocol


class Action(str, Enum):
    """Closed vocabulary of actions the policy knows about."""

    LIST_USERS = "users:list"
    VIEW_USER = "users:view"
    UPDATE_USER = "users:update"
    DELETE_USER = "users:delete"
    ASSIGN_ROLES = "users:assign_roles"
    MANAGE_ROLES = "roles:manage"


@dataclass
class PolicyDecision:
    """
    Result of a policy evaluation.

    Attributes:
        allowed: Whether the action is permitted
        reason: Human-readable explanation (for errors/logging)
        code: Stable error code to surface when denied
        metadata: Additional data (rule that matched, etc.)
    """
    allowed: bool
    reason: str | None = None
    code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls, reason: str | None = None) -> "PolicyDecision":
        return cls(allowed=True, reason=reason)

    @classmethod
    def deny(
        cls,
        reason: str = "Permission denied",
        code: str = "FORBIDDEN",
    ) -> "PolicyDecision":
        return cls(allowed=False, reason=reason, code=code)

    def __bool__(self) -> bool:
        return self.allowed


class PermissionLookup(Protocol):
    """
    Source of role -> permission grants.

    Implemented by the role graph service; it must query current grants
    on every call.
    """

    async def permissions_for_roles(self, role_names: Iterable[str]) -> set[str]:
        ...
