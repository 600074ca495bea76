"""
User management routes.

Authorization runs on the target id before the target is loaded, so a
denied caller learns nothing about whether the user exists.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, Query

from gatehouse.api.dependencies.auth import CurrentPrincipal, RequestCtx
from gatehouse.api.dependencies.services import (
    get_audit_sink,
    get_authorization_engine,
    get_rbac_service,
    get_token_service,
    get_user_service,
)
from gatehouse.core.auth import Action, AuthorizationEngine
from gatehouse.core.errors import NotFound
from gatehouse.models.user import User
from gatehouse.schemas.common import Envelope, MessageData, Pagination
from gatehouse.schemas.user import RoleAssignment, UserResponse, UserUpdate
from gatehouse.services.audit import AuditAction, AuditSink
from gatehouse.services.rbac import RBACService
from gatehouse.services.tokens import TokenService
from gatehouse.services.user import MAX_PER_PAGE, UserService

router = APIRouter()


async def load_user(user_service: UserService, user_id: UUID) -> User:
    user = await user_service.get_by_id(user_id)
    if user is None:
        raise NotFound("User not found.")
    return user


@router.get("", response_model=Envelope[list[UserResponse]])
async def list_users(
    principal: CurrentPrincipal,
    ctx: RequestCtx,
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=MAX_PER_PAGE),
    search: str | None = Query(None, max_length=255),
    role: str | None = Query(None, max_length=100),
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    user_service: UserService = Depends(get_user_service),
    audit: AuditSink = Depends(get_audit_sink),
):
    """List users (admin only)."""
    engine.require(principal, Action.LIST_USERS)

    users, total = await user_service.list_users(
        page=page,
        per_page=per_page,
        search=search,
        role=role,
    )
    await audit.record(
        AuditAction.USERS_LISTED,
        user_id=principal.id,
        details={"page": page, "per_page": per_page, "search": search, "role": role},
        context=ctx,
    )
    return Envelope(
        data=[UserResponse.model_validate(u) for u in users],
        pagination=Pagination.build(total=total, page=page, per_page=per_page),
    )


@router.get("/{user_id}", response_model=Envelope[UserResponse])
async def get_user(
    user_id: UUID,
    principal: CurrentPrincipal,
    ctx: RequestCtx,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    user_service: UserService = Depends(get_user_service),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Get user by ID (self or admin)."""
    engine.require(principal, Action.VIEW_USER, user_id)

    user = await load_user(user_service, user_id)
    await audit.record(
        AuditAction.USER_VIEWED,
        user_id=principal.id,
        details={"target_id": str(user_id)},
        context=ctx,
    )
    return Envelope(data=UserResponse.model_validate(user))


@router.put("/{user_id}", response_model=Envelope[UserResponse])
async def update_user(
    user_id: UUID,
    data: UserUpdate,
    principal: CurrentPrincipal,
    ctx: RequestCtx,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    user_service: UserService = Depends(get_user_service),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Update name and/or email (self or admin)."""
    engine.require(principal, Action.UPDATE_USER, user_id)

    user = await load_user(user_service, user_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    user = await user_service.update(user, **changes)

    await audit.record(
        AuditAction.USER_UPDATED,
        user_id=principal.id,
        details={"target_id": str(user_id), "fields": sorted(changes)},
        context=ctx,
    )
    return Envelope(data=UserResponse.model_validate(user), message="User updated")


@router.delete("/{user_id}", response_model=Envelope[MessageData])
async def delete_user(
    user_id: UUID,
    principal: CurrentPrincipal,
    ctx: RequestCtx,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    user_service: UserService = Depends(get_user_service),
    tokens: TokenService = Depends(get_token_service),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Delete user (admin only, never yourself). Their tokens die first."""
    engine.require(principal, Action.DELETE_USER, user_id)

    user = await load_user(user_service, user_id)
    email = user.email
    revoked = await user_service.delete(user, tokens)
    await audit.record(
        AuditAction.USER_DELETED,
        user_id=principal.id,
        details={"target_id": str(user_id), "email": email, "revoked_tokens": revoked},
        context=ctx,
    )
    return Envelope(data=MessageData(message="User deleted successfully"))


@router.post("/{user_id}/roles", response_model=Envelope[UserResponse])
async def grant_role(
    user_id: UUID,
    data: RoleAssignment,
    principal: CurrentPrincipal,
    ctx: RequestCtx,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    user_service: UserService = Depends(get_user_service),
    rbac: RBACService = Depends(get_rbac_service),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Attach a role to a user (admin only, never yourself)."""
    engine.require(principal, Action.ASSIGN_ROLES, user_id)

    user = await load_user(user_service, user_id)
    user = await rbac.grant_role(user, data.role)
    await audit.record(
        AuditAction.ROLE_GRANTED,
        user_id=principal.id,
        details={"target_id": str(user_id), "role": data.role},
        context=ctx,
    )
    return Envelope(data=UserResponse.model_validate(user))


@router.delete("/{user_id}/roles/{role_name}", response_model=Envelope[UserResponse])
async def revoke_role(
    user_id: UUID,
    role_name: str,
    principal: CurrentPrincipal,
    ctx: RequestCtx,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    user_service: UserService = Depends(get_user_service),
    rbac: RBACService = Depends(get_rbac_service),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Detach a role from a user (admin only, never yourself)."""
    engine.require(principal, Action.ASSIGN_ROLES, user_id)

    user = await load_user(user_service, user_id)
    user = await rbac.revoke_role(user, role_name)
    await audit.record(
        AuditAction.ROLE_REVOKED,
        user_id=principal.id,
        details={"target_id": str(user_id), "role": role_name},
        context=ctx,
    )
    return Envelope(data=UserResponse.model_validate(user))
