"""
Authorization core.

    from gatehouse.core.auth import Action, AuthorizationEngine, Principal

    engine = AuthorizationEngine(permission_lookup)
    if engine.authorize(principal, Action.UPDATE_USER, target_id):
        ...

The FastAPI dependencies that resolve a Principal from a request live in
gatehouse.api.dependencies.auth.
"""

from .interfaces import Action, PolicyDecision, PermissionLookup
from .principal import Principal
from .engine import AuthorizationEngine

__all__ = [
    "Action",
    "PolicyDecision",
    "PermissionLookup",
    "Principal",
    "AuthorizationEngine",
]
