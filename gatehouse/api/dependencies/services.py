"""
Service dependencies.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.core.auth import AuthorizationEngine
from gatehouse.services.audit import AuditSink, DatabaseAuditSink
from gatehouse.services.auth import AuthService
from gatehouse.services.rbac import RBACService
from gatehouse.services.tokens import TokenService
from gatehouse.services.user import UserService
from .database import get_db


async def get_token_service(db: AsyncSession = Depends(get_db)) -> TokenService:
    """Get token service instance."""
    return TokenService(db)


async def get_audit_sink(db: AsyncSession = Depends(get_db)) -> AuditSink:
    """Get audit sink bound to the request session."""
    return DatabaseAuditSink(db)


async def get_rbac_service(db: AsyncSession = Depends(get_db)) -> RBACService:
    """Get role/permission service instance."""
    return RBACService(db)


async def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    """Get user service instance."""
    return UserService(db)


async def get_auth_service(
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    audit: AuditSink = Depends(get_audit_sink),
) -> AuthService:
    """Get auth service instance."""
    return AuthService(db, tokens, audit)


async def get_authorization_engine(
    rbac: RBACService = Depends(get_rbac_service),
) -> AuthorizationEngine:
    """Policy engine backed by the live role graph."""
    return AuthorizationEngine(rbac)
