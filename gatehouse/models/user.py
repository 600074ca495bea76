"""
User model.
"""

from datetime import datetime
from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TimestampMixin
from .rbac import Role, user_roles


class User(Base, UUIDMixin, TimestampMixin):
    """User account. Only the bcrypt hash of the password is stored."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    email_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    roles: Mapped[list[Role]] = relationship(
        Role,
        secondary=user_roles,
        lazy="selectin",
    )

    @property
    def is_email_verified(self) -> bool:
        return self.email_verified_at is not None

    @property
    def role_names(self) -> list[str]:
        return sorted(r.name for r in self.roles)

    def __repr__(self) -> str:
        return f"<User {self.email}>"
