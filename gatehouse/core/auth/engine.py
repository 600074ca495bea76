"""
Authorization Engine.

Decides whether a principal may perform an action on a target user.

Every action has an explicit rule; anything without one is denied. Rules
only look at the principal snapshot and the target's id, so a denial for a
non-admin is reached without ever loading the target and reveals nothing
about whether it exists.

    engine = AuthorizationEngine(RBACService(db))
    decision = engine.authorize(principal, Action.VIEW_USER, user_id)
    engine.require(principal, Action.DELETE_USER, user_id)  # raises if denied
"""

from typing import Callable, Iterable
from uuid import UUID

import structlog

from gatehouse.core.config import settings
from gatehouse.core.errors import Forbidden, SelfActionDenied, Unauthenticated

from .interfaces import Action, PermissionLookup, PolicyDecision
from .principal import Principal

logger = structlog.get_logger(__name__)

Rule = Callable[[Principal, UUID | None], PolicyDecision]


class AuthorizationEngine:
    """
    Role-based policy over explicit principals.

    Role checks work on the principal's role set. Permission checks go
    through the PermissionLookup so they reflect the grants stored right
    now rather than anything remembered from earlier.
    """

    def __init__(
        self,
        permissions: PermissionLookup | None = None,
        admin_role: str | None = None,
    ):
        self.permissions = permissions
        self.admin_role = admin_role or settings.auth.admin_role
        self._rules: dict[Action, Rule] = {
            Action.LIST_USERS: self._admin_only,
            Action.VIEW_USER: self._self_or_admin,
            Action.UPDATE_USER: self._self_or_admin,
            Action.DELETE_USER: self._admin_not_self_delete,
            Action.ASSIGN_ROLES: self._admin_not_self,
            Action.MANAGE_ROLES: self._admin_only,
        }

    # ============================================================
    # ROLE AND PERMISSION QUERIES
    # ============================================================

    def has_role(self, principal: Principal, role_name: str) -> bool:
        return role_name in principal.roles

    def has_any_role(self, principal: Principal, role_names: Iterable[str]) -> bool:
        return any(self.has_role(principal, name) for name in role_names)

    def has_all_roles(self, principal: Principal, role_names: Iterable[str]) -> bool:
        return all(self.has_role(principal, name) for name in role_names)

    def is_admin(self, principal: Principal) -> bool:
        return self.has_role(principal, self.admin_role)

    async def effective_permissions(self, principal: Principal) -> set[str]:
        """Union of the permissions of every role the principal holds."""
        if self.permissions is None:
            raise RuntimeError("AuthorizationEngine has no permission lookup configured")
        if not principal.roles:
            return set()
        return await self.permissions.permissions_for_roles(principal.roles)

    async def has_permission(self, principal: Principal, permission_name: str) -> bool:
        return permission_name in await self.effective_permissions(principal)

    # ============================================================
    # POLICY
    # ============================================================

    def authorize(
        self,
        principal: Principal | None,
        action: Action | str,
        target_id: UUID | None = None,
    ) -> PolicyDecision:
        """Evaluate the rule for action. Never raises."""
        if principal is None:
            return PolicyDecision.deny("Authentication required", code=Unauthenticated.code)

        try:
            action = Action(action)
        except ValueError:
            return PolicyDecision.deny(f"No rule for action: {action}")

        decision = self._rules[action](principal, target_id)
        decision.metadata.setdefault("action", action.value)

        logger.debug(
            "Authorization decision",
            action=action.value,
            principal_id=str(principal.id),
            target_id=str(target_id) if target_id else None,
            allowed=decision.allowed,
        )
        return decision

    def require(
        self,
        principal: Principal | None,
        action: Action | str,
        target_id: UUID | None = None,
    ) -> None:
        """
        Authorize or raise the matching error.

        Raises:
            Unauthenticated: no principal
            SelfActionDenied: admin deleting their own account
            Forbidden: any other denial
        """
        decision = self.authorize(principal, action, target_id)
        if decision.allowed:
            return
        if decision.code == Unauthenticated.code:
            raise Unauthenticated()
        if decision.code == SelfActionDenied.code:
            raise SelfActionDenied()
        raise Forbidden()

    # ============================================================
    # RULES
    # ============================================================

    def _admin_only(self, principal: Principal, target_id: UUID | None) -> PolicyDecision:
        if self.is_admin(principal):
            return PolicyDecision.allow("Admin access")
        return PolicyDecision.deny("Admin access required")

    def _self_or_admin(self, principal: Principal, target_id: UUID | None) -> PolicyDecision:
        if target_id is not None and principal.id == target_id:
            return PolicyDecision.allow("Own account")
        if self.is_admin(principal):
            return PolicyDecision.allow("Admin access")
        return PolicyDecision.deny("Only the account owner or an admin may do this")

    def _admin_not_self(self, principal: Principal, target_id: UUID | None) -> PolicyDecision:
        if not self.is_admin(principal):
            return PolicyDecision.deny("Admin access required")
        if target_id is None or principal.id == target_id:
            return PolicyDecision.deny("Not allowed on your own account")
        return PolicyDecision.allow("Admin access")

    def _admin_not_self_delete(self, principal: Principal, target_id: UUID | None) -> PolicyDecision:
        decision = self._admin_not_self(principal, target_id)
        if not decision.allowed and self.is_admin(principal) and principal.id == target_id:
            decision.code = SelfActionDenied.code
        return decision
