"""
Tests for the role/permission graph.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.core.errors import Conflict, NotFound
from gatehouse.models.rbac import Role, role_permissions, user_roles
from gatehouse.services.rbac import RBACService


async def count_rows(db: AsyncSession, table) -> int:
    return await db.scalar(select(func.count()).select_from(table))


@pytest.mark.asyncio
async def test_seed_defaults_is_repeatable(db: AsyncSession, seeded_roles):
    rbac = RBACService(db)

    assert {r.name for r in seeded_roles} == {"admin", "user"}
    assert await rbac.seed_defaults() == []
    assert [r.name for r in await rbac.list_roles()] == ["admin", "user"]


@pytest.mark.asyncio
async def test_create_role_conflict(db: AsyncSession, seeded_roles):
    rbac = RBACService(db)

    with pytest.raises(Conflict):
        await rbac.create_role("admin")


@pytest.mark.asyncio
async def test_grant_role_is_idempotent(db: AsyncSession, user_factory):
    rbac = RBACService(db)
    user = await user_factory.create()
    await rbac.create_role("editor")

    await rbac.grant_role(user, "editor")
    once = set(user.role_names)
    await rbac.grant_role(user, "editor")

    assert set(user.role_names) == once == {"user", "editor"}
    assert await count_rows(db, user_roles) == 2


@pytest.mark.asyncio
async def test_revoke_role_is_idempotent(db: AsyncSession, user_factory):
    rbac = RBACService(db)
    user = await user_factory.create(roles=("user", "admin"))

    await rbac.revoke_role(user, "admin")
    await rbac.revoke_role(user, "admin")

    assert user.role_names == ["user"]
    assert await rbac.roles_for_user(user.id) == {"user"}


@pytest.mark.asyncio
async def test_unknown_role_raises_not_found(db: AsyncSession, user_factory):
    rbac = RBACService(db)
    user = await user_factory.create()

    with pytest.raises(NotFound):
        await rbac.grant_role(user, "nope")
    with pytest.raises(NotFound):
        await rbac.revoke_role(user, "nope")


@pytest.mark.asyncio
async def test_permission_grants_are_idempotent(db: AsyncSession, seeded_roles):
    rbac = RBACService(db)
    await rbac.create_permission("posts:publish")

    await rbac.grant_permission("user", "posts:publish")
    role = await rbac.grant_permission("user", "posts:publish")
    assert role.permission_names == ["posts:publish"]
    assert await count_rows(db, role_permissions) == 1

    await rbac.revoke_permission("user", "posts:publish")
    role = await rbac.revoke_permission("user", "posts:publish")
    assert role.permission_names == []

    with pytest.raises(NotFound):
        await rbac.grant_permission("user", "posts:missing")


@pytest.mark.asyncio
async def test_effective_permissions_follow_current_roles(db: AsyncSession, user_factory):
    rbac = RBACService(db)
    user = await user_factory.create()
    await rbac.create_role("editor")
    await rbac.create_permission("posts:read")
    await rbac.create_permission("posts:edit")
    await rbac.grant_permission("user", "posts:read")
    await rbac.grant_permission("editor", "posts:edit")
    await rbac.grant_permission("editor", "posts:read")

    await rbac.grant_role(user, "editor")
    assert await rbac.effective_permissions(user.id) == {"posts:read", "posts:edit"}

    # Revoked mid-session: the very next query reflects it
    await rbac.revoke_role(user, "editor")
    assert await rbac.effective_permissions(user.id) == {"posts:read"}
    assert await rbac.permissions_for_roles(user.role_names) == {"posts:read"}


@pytest.mark.asyncio
async def test_reads_do_not_create(db: AsyncSession, seeded_roles):
    rbac = RBACService(db)

    assert await rbac.get_role_by_name("ghost") is None
    assert await rbac.permissions_for_roles(["ghost"]) == set()
    assert await count_rows(db, Role.__table__) == 2


# ============ API ============


@pytest.mark.asyncio
async def test_admin_manages_roles_over_api(client: AsyncClient, admin_auth_headers):
    response = await client.post(
        "/api/v1/roles",
        json={"name": "editor", "description": "Edits things"},
        headers=admin_auth_headers,
    )
    assert response.status_code == 201
    assert response.json()["data"]["permissions"] == []

    response = await client.post(
        "/api/v1/permissions",
        json={"name": "posts:edit"},
        headers=admin_auth_headers,
    )
    assert response.status_code == 201

    response = await client.post(
        "/api/v1/roles/editor/permissions",
        json={"permission": "posts:edit"},
        headers=admin_auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["permissions"] == ["posts:edit"]

    response = await client.get("/api/v1/roles", headers=admin_auth_headers)
    names = [r["name"] for r in response.json()["data"]]
    assert names == ["admin", "editor", "user"]

    response = await client.delete(
        "/api/v1/roles/editor/permissions/posts:edit",
        headers=admin_auth_headers,
    )
    assert response.json()["data"]["permissions"] == []


@pytest.mark.asyncio
async def test_duplicate_role_is_conflict(client: AsyncClient, admin_auth_headers):
    response = await client.post(
        "/api/v1/roles",
        json={"name": "user"},
        headers=admin_auth_headers,
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_non_admin_cannot_manage_roles(client: AsyncClient, auth_headers):
    response = await client.post(
        "/api/v1/roles",
        json={"name": "editor"},
        headers=auth_headers,
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"
