"""
Role and permission routes (admin only).
"""

from fastapi import APIRouter, Depends, status

from gatehouse.api.dependencies.auth import CurrentPrincipal, RequestCtx
from gatehouse.api.dependencies.services import (
    get_audit_sink,
    get_authorization_engine,
    get_rbac_service,
)
from gatehouse.core.auth import Action, AuthorizationEngine
from gatehouse.schemas.common import Envelope
from gatehouse.schemas.rbac import (
    PermissionCreate,
    PermissionGrant,
    PermissionResponse,
    RoleCreate,
    RoleResponse,
)
from gatehouse.services.audit import AuditAction, AuditSink
from gatehouse.services.rbac import RBACService

router = APIRouter()


@router.get("/roles", response_model=Envelope[list[RoleResponse]])
async def list_roles(
    principal: CurrentPrincipal,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    rbac: RBACService = Depends(get_rbac_service),
):
    """List roles with their permissions."""
    engine.require(principal, Action.MANAGE_ROLES)
    roles = await rbac.list_roles()
    return Envelope(data=[RoleResponse.model_validate(r) for r in roles])


@router.post(
    "/roles",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[RoleResponse],
)
async def create_role(
    data: RoleCreate,
    principal: CurrentPrincipal,
    ctx: RequestCtx,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    rbac: RBACService = Depends(get_rbac_service),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Create a role."""
    engine.require(principal, Action.MANAGE_ROLES)
    role = await rbac.create_role(data.name, data.description)
    await audit.record(
        AuditAction.ROLE_CREATED,
        user_id=principal.id,
        details={"role": role.name},
        context=ctx,
    )
    return Envelope(data=RoleResponse.model_validate(role))


@router.get("/permissions", response_model=Envelope[list[PermissionResponse]])
async def list_permissions(
    principal: CurrentPrincipal,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    rbac: RBACService = Depends(get_rbac_service),
):
    engine.require(principal, Action.MANAGE_ROLES)
    permissions = await rbac.list_permissions()
    return Envelope(data=[PermissionResponse.model_validate(p) for p in permissions])


@router.post(
    "/permissions",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[PermissionResponse],
)
async def create_permission(
    data: PermissionCreate,
    principal: CurrentPrincipal,
    ctx: RequestCtx,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    rbac: RBACService = Depends(get_rbac_service),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Create a permission."""
    engine.require(principal, Action.MANAGE_ROLES)
    permission = await rbac.create_permission(data.name, data.description)
    await audit.record(
        AuditAction.PERMISSION_CREATED,
        user_id=principal.id,
        details={"permission": permission.name},
        context=ctx,
    )
    return Envelope(data=PermissionResponse.model_validate(permission))


@router.post("/roles/{role_name}/permissions", response_model=Envelope[RoleResponse])
async def grant_permission(
    role_name: str,
    data: PermissionGrant,
    principal: CurrentPrincipal,
    ctx: RequestCtx,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    rbac: RBACService = Depends(get_rbac_service),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Attach a permission to a role."""
    engine.require(principal, Action.MANAGE_ROLES)
    role = await rbac.grant_permission(role_name, data.permission)
    await audit.record(
        AuditAction.PERMISSION_GRANTED,
        user_id=principal.id,
        details={"role": role_name, "permission": data.permission},
        context=ctx,
    )
    return Envelope(data=RoleResponse.model_validate(role))


@router.delete(
    "/roles/{role_name}/permissions/{permission_name}",
    response_model=Envelope[RoleResponse],
)
async def revoke_permission(
    role_name: str,
    permission_name: str,
    principal: CurrentPrincipal,
    ctx: RequestCtx,
    engine: AuthorizationEngine = Depends(get_authorization_engine),
    rbac: RBACService = Depends(get_rbac_service),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Detach a permission from a role."""
    engine.require(principal, Action.MANAGE_ROLES)
    role = await rbac.revoke_permission(role_name, permission_name)
    await audit.record(
        AuditAction.PERMISSION_REVOKED,
        user_id=principal.id,
        details={"role": role_name, "permission": permission_name},
        context=ctx,
    )
    return Envelope(data=RoleResponse.model_validate(role))
