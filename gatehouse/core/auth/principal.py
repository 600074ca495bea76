"""
Principal - the resolved, authenticated actor of a request.

A Principal is a plain snapshot built from the store at the start of each
request. Policy code works on this snapshot instead of on the ORM entity,
and it is always passed explicitly; nothing reads an ambient "current user".
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class Principal:
    """Authenticated user with the names of the roles it holds right now."""

    id: UUID
    email: str
    name: str = ""
    roles: frozenset[str] = field(default_factory=frozenset)
    email_verified_at: datetime | None = None

    @classmethod
    def from_user(cls, user: Any) -> "Principal":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            roles=frozenset(role.name for role in user.roles),
            email_verified_at=user.email_verified_at,
        )

    def __repr__(self) -> str:
        return f"<Principal {self.id} roles={sorted(self.roles)}>"
