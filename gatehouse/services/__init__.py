"""
Domain services.

Each service works on the AsyncSession it is given; none of them reads
an ambient current user.
"""

from .audit import AuditAction, AuditSink, DatabaseAuditSink, RequestContext
from .auth import AuthService
from .rbac import RBACService
from .tokens import IssuedToken, TokenService
from .user import UserService

__all__ = [
    "AuditAction",
    "AuditSink",
    "DatabaseAuditSink",
    "RequestContext",
    "AuthService",
    "RBACService",
    "IssuedToken",
    "TokenService",
    "UserService",
]
