"""Audit sink: write-only record of security-relevant events."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.models.audit_log import AuditLog

logger = structlog.get_logger(__name__)


class AuditAction:
    """Closed vocabulary of audit action tags."""

    LOGIN = "user.login"
    LOGIN_FAILED = "user.login_failed"
    LOGOUT = "user.logout"
    REGISTERED = "user.registered"
    PASSWORD_CHANGED = "user.password_changed"
    EMAIL_VERIFIED = "user.email_verified"
    TOKEN_REFRESHED = "user.token_refreshed"
    USERS_LISTED = "users.list"
    USER_VIEWED = "user.view"
    USER_UPDATED = "user.update"
    USER_DELETED = "user.delete"
    ROLE_GRANTED = "user.role_granted"
    ROLE_REVOKED = "user.role_revoked"
    ROLE_CREATED = "role.created"
    PERMISSION_CREATED = "permission.created"
    PERMISSION_GRANTED = "role.permission_granted"
    PERMISSION_REVOKED = "role.permission_revoked"


@dataclass(frozen=True)
class RequestContext:
    """Provenance of the request an event came from."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None


SYSTEM_CONTEXT = RequestContext(user_agent="system")


class AuditSink(ABC):
    """
    Receiver of audit events.

    The auth core only ever calls record(); it never reads events back.
    """

    @abstractmethod
    async def record(
        self,
        action: str,
        *,
        user_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None,
        context: RequestContext = SYSTEM_CONTEXT,
    ) -> None:
        pass


class DatabaseAuditSink(AuditSink):
    """
    Stores events in the audit_logs table.

    Each record commits the session, which also closes the unit of work
    that produced the event; audit calls are therefore the last step of
    every service operation.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        action: str,
        *,
        user_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None,
        context: RequestContext = SYSTEM_CONTEXT,
    ) -> None:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            details=details,
            ip_address=context.ip_address,
            user_agent=(context.user_agent or "")[:512] or None,
            request_id=context.request_id,
        )
        self.db.add(entry)
        await self.db.commit()

        logger.info(
            "Audit event recorded",
            action=action,
            user_id=str(user_id) if user_id else None,
        )
