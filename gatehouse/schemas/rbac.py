"""Role and permission schemas."""

from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PermissionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9_.:-]+$")
    description: str | None = Field(None, max_length=255)


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9_.-]+$")
    description: str | None = Field(None, max_length=255)


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    permissions: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("permission_names", "permissions"),
    )


class PermissionGrant(BaseModel):
    """Grant a permission to a role."""
    permission: str = Field(min_length=1, max_length=100)
