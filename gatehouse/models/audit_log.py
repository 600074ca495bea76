"""Audit log model for security-relevant events."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, JSON
from sqlalchemy.orm import Mapped, mapped_column

from gatehouse.utils.timezone import utc_now
from .base import Base, UUIDMixin


class AuditLog(Base, UUIDMixin):
    """
    Immutable audit record: who did what, when, and from where.

    Rows are only ever inserted.
    """

    __tablename__ = "audit_logs"

    # Who (nullable for anonymous and failed actions)
    user_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # What
    action: Mapped[str] = mapped_column(String(100), index=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # From where
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)  # IPv6 max length
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} user={self.user_id}>"
