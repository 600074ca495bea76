"""
Tests for the token lifecycle.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.core.config import AuthSettings
from gatehouse.core.errors import Unauthenticated
from gatehouse.models.token import AccessToken
from gatehouse.services.tokens import TokenService
from gatehouse.utils.timezone import utc_now


@pytest.mark.asyncio
async def test_issue_and_resolve(db: AsyncSession, test_user):
    tokens = TokenService(db)

    issued = await tokens.issue(test_user)
    token_id, _, secret = issued.plain_text.partition("|")

    assert token_id == str(issued.record.id)
    assert issued.record.token_hash == TokenService.hash_secret(secret)
    assert secret not in issued.record.token_hash

    window = issued.expires_at - utc_now()
    assert timedelta(hours=23, minutes=59) < window <= timedelta(hours=24)

    user, token = await tokens.resolve(issued.plain_text)
    assert user.id == test_user.id
    assert token.id == issued.record.id
    assert token.last_used_at is not None


@pytest.mark.asyncio
async def test_issue_keeps_prior_tokens_by_default(db: AsyncSession, test_user):
    tokens = TokenService(db)

    first = await tokens.issue(test_user)
    second = await tokens.issue(test_user)

    assert await tokens.resolve(first.plain_text) is not None
    assert await tokens.resolve(second.plain_text) is not None


@pytest.mark.asyncio
async def test_issue_can_revoke_prior_tokens(db: AsyncSession, test_user):
    tokens = TokenService(db, AuthSettings(revoke_on_issue=True))

    first = await tokens.issue(test_user)
    second = await tokens.issue(test_user)

    assert await tokens.resolve(first.plain_text) is None
    assert await tokens.resolve(second.plain_text) is not None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "no-separator",
        "not-a-uuid|secret",
        "00000000-0000-0000-0000-000000000000|secret",
        "00000000-0000-0000-0000-000000000000|",
    ],
)
async def test_resolve_rejects_malformed_and_unknown(db: AsyncSession, test_user, raw):
    assert await TokenService(db).resolve(raw) is None


@pytest.mark.asyncio
async def test_resolve_rejects_wrong_secret(db: AsyncSession, test_user):
    tokens = TokenService(db)
    issued = await tokens.issue(test_user)

    forged = f"{issued.record.id}|{'x' * 54}"

    assert await tokens.resolve(forged) is None


@pytest.mark.asyncio
async def test_resolve_rejects_expired(db: AsyncSession, test_user):
    tokens = TokenService(db)
    issued = await tokens.issue(test_user)
    issued.record.expires_at = utc_now() - timedelta(seconds=1)
    await db.flush()

    assert await tokens.resolve(issued.plain_text) is None


@pytest.mark.asyncio
async def test_refresh_rotates(db: AsyncSession, test_user):
    tokens = TokenService(db)
    old = await tokens.issue(test_user)
    _, presented = await tokens.resolve(old.plain_text)

    new = await tokens.refresh(test_user, presented)

    assert new.plain_text != old.plain_text
    assert await tokens.resolve(old.plain_text) is None
    user, _ = await tokens.resolve(new.plain_text)
    assert user.id == test_user.id


@pytest.mark.asyncio
async def test_second_refresh_of_same_token_fails(db: AsyncSession, test_user):
    tokens = TokenService(db)
    old = await tokens.issue(test_user)
    _, presented = await tokens.resolve(old.plain_text)
    await tokens.refresh(test_user, presented)

    # A concurrent request that resolved the same token before rotation
    with pytest.raises(Unauthenticated):
        await tokens.refresh(test_user, presented)


@pytest.mark.asyncio
async def test_refresh_without_rotation_keeps_old_token(db: AsyncSession, test_user):
    tokens = TokenService(db, AuthSettings(rotation_enabled=False))
    old = await tokens.issue(test_user)
    _, presented = await tokens.resolve(old.plain_text)

    new = await tokens.refresh(test_user, presented)

    assert await tokens.resolve(old.plain_text) is not None
    assert await tokens.resolve(new.plain_text) is not None


@pytest.mark.asyncio
async def test_refresh_with_revoke_on_issue(db: AsyncSession, test_user):
    tokens = TokenService(db, AuthSettings(revoke_on_issue=True, rotation_enabled=True))
    old = await tokens.issue(test_user)
    _, presented = await tokens.resolve(old.plain_text)

    new = await tokens.refresh(test_user, presented)

    assert await tokens.resolve(old.plain_text) is None
    user, _ = await tokens.resolve(new.plain_text)
    assert user.id == test_user.id


@pytest.mark.asyncio
async def test_revoke_all(db: AsyncSession, test_user, user_factory):
    tokens = TokenService(db)
    other = await user_factory.create()
    issued = [await tokens.issue(test_user) for _ in range(3)]
    survivor = await tokens.issue(other)

    assert await tokens.revoke_all(test_user.id) == 3
    assert await tokens.revoke_all(test_user.id) == 0

    for token in issued:
        assert await tokens.resolve(token.plain_text) is None
    assert await tokens.resolve(survivor.plain_text) is not None
    assert await tokens.list_active(test_user.id) == []


@pytest.mark.asyncio
async def test_revoke_single_token(db: AsyncSession, test_user):
    tokens = TokenService(db)
    keep = await tokens.issue(test_user)
    drop = await tokens.issue(test_user)

    assert await tokens.revoke(drop.record)
    assert not await tokens.revoke(drop.record)

    assert await tokens.resolve(drop.plain_text) is None
    assert await tokens.resolve(keep.plain_text) is not None


@pytest.mark.asyncio
async def test_purge_expired(db: AsyncSession, test_user):
    tokens = TokenService(db)
    live = await tokens.issue(test_user)
    stale = await tokens.issue(test_user)
    stale.record.expires_at = utc_now() - timedelta(hours=1)
    await db.flush()

    assert await tokens.purge_expired() == 1
    assert await tokens.purge_expired() == 0

    remaining = await db.scalar(select(func.count()).select_from(AccessToken))
    assert remaining == 1
    assert await tokens.resolve(live.plain_text) is not None


@pytest.mark.asyncio
async def test_purge_task(session_factory, db: AsyncSession, test_user):
    from gatehouse.worker.tasks import purge_expired

    tokens = TokenService(db)
    stale = await tokens.issue(test_user)
    stale.record.expires_at = utc_now() - timedelta(minutes=5)
    await db.commit()

    assert await purge_expired(session_factory) == 1
