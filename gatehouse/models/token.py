"""
Access token model.

Tokens are opaque bearer strings of the form "<id>|<secret>". Only the
SHA-256 of the secret is stored; the plaintext exists once, in the
response that issued it.
"""

from datetime import datetime
from uuid import UUID
from sqlalchemy import String, ForeignKey, DateTime, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID as PGUUID

from gatehouse.utils.timezone import utc_now, to_utc
from .base import Base, UUIDMixin


class AccessToken(Base, UUIDMixin):
    """Bearer credential owned by exactly one user."""

    __tablename__ = "access_tokens"

    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    token_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    # Set once, never cleared
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or utc_now()
        return to_utc(self.expires_at) <= now

    def is_valid(self, now: datetime | None = None) -> bool:
        return not self.revoked and not self.is_expired(now)

    def __repr__(self) -> str:
        state = "revoked" if self.revoked else "active"
        return f"<AccessToken {self.id} user={self.user_id} {state}>"
