"""
User schemas.
"""

from datetime import datetime
from uuid import UUID
from pydantic import AliasChoices, BaseModel, EmailStr, Field, ConfigDict, field_serializer

from gatehouse.utils.timezone import to_iso8601


class UserResponse(BaseModel):
    """User response schema. Never includes the password hash."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: EmailStr
    roles: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("role_names", "roles"),
    )
    email_verified_at: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @field_serializer("email_verified_at", "last_login_at", "created_at", "updated_at")
    def serialize_dt(self, value: datetime | None) -> str | None:
        return to_iso8601(value) if value else None


class UserUpdate(BaseModel):
    """User update schema."""
    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None


class RoleAssignment(BaseModel):
    """Grant a role to a user."""
    role: str = Field(min_length=1, max_length=100)
