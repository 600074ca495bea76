"""
Token Lifecycle Manager.

    issued -> valid -> rotated | revoked | expired

Revoked and expired are terminal. Tokens are opaque strings
"<token id>|<secret>"; the id locates the row and the secret is checked
against its stored SHA-256 with a constant-time comparison. Every failure
to resolve (malformed, unknown, revoked, expired, owner gone) looks the
same to the caller.

All state changes are single conditional statements against the database,
which is the only point of serialization between concurrent requests.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID, uuid4

import structlog
from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.core.config import AuthSettings, settings
from gatehouse.core.errors import Unauthenticated
from gatehouse.models.token import AccessToken
from gatehouse.models.user import User
from gatehouse.utils.timezone import utc_now, to_utc

logger = structlog.get_logger(__name__)


@dataclass
class IssuedToken:
    """A freshly issued token. plain_text is only available here."""
    plain_text: str
    record: AccessToken

    @property
    def expires_at(self) -> datetime:
        return to_utc(self.record.expires_at)


class TokenService:
    """Issue, resolve, rotate and revoke bearer tokens."""

    SECRET_BYTES = 40
    SEPARATOR = "|"

    def __init__(self, db: AsyncSession, config: AuthSettings | None = None):
        self.db = db
        self.config = config or settings.auth

    # ============================================================
    # HASHING
    # ============================================================

    @staticmethod
    def hash_secret(secret: str) -> str:
        return hashlib.sha256(secret.encode()).hexdigest()

    def split(self, raw: str) -> tuple[UUID, str] | None:
        """Split "<id>|<secret>". Returns None if malformed."""
        token_id, sep, secret = raw.partition(self.SEPARATOR)
        if not sep or not secret:
            return None
        try:
            return UUID(token_id), secret
        except ValueError:
            return None

    # ============================================================
    # LIFECYCLE
    # ============================================================

    async def issue(
        self,
        user: User,
        name: str | None = None,
        revoke_prior: bool | None = None,
    ) -> IssuedToken:
        """
        Create a token for user, valid for the configured window.

        Prior tokens are left alone unless revoke_prior is true, which
        defaults to the revoke_on_issue setting.
        """
        if revoke_prior is None:
            revoke_prior = self.config.revoke_on_issue
        if revoke_prior:
            await self.revoke_all(user.id)

        secret = secrets.token_urlsafe(self.SECRET_BYTES)
        now = utc_now()
        record = AccessToken(
            id=uuid4(),
            user_id=user.id,
            name=name or self.config.token_name,
            token_hash=self.hash_secret(secret),
            expires_at=now + timedelta(hours=self.config.token_expire_hours),
            revoked=False,
            created_at=now,
        )
        self.db.add(record)
        await self.db.flush()

        logger.info("Token issued", user_id=str(user.id), token_id=str(record.id))
        return IssuedToken(
            plain_text=f"{record.id}{self.SEPARATOR}{secret}",
            record=record,
        )

    async def resolve(self, raw: str | None) -> tuple[User, AccessToken] | None:
        """Resolve a raw token to its owner, or None."""
        if not raw:
            return None
        parts = self.split(raw)
        if parts is None:
            return None
        token_id, secret = parts

        stmt = (
            select(AccessToken)
            .where(AccessToken.id == token_id)
            .execution_options(populate_existing=True)
        )
        token = (await self.db.execute(stmt)).scalar_one_or_none()

        # Compare against something even when the id is unknown
        stored_hash = token.token_hash if token else self.hash_secret("")
        if not hmac.compare_digest(stored_hash, self.hash_secret(secret)):
            return None
        if token is None or not token.is_valid():
            return None

        stmt = (
            select(User)
            .where(User.id == token.user_id)
            .execution_options(populate_existing=True)
        )
        user = (await self.db.execute(stmt)).scalar_one_or_none()
        if user is None:
            return None

        token.last_used_at = utc_now()
        await self.db.flush()
        return user, token

    async def refresh(self, user: User, presented: AccessToken) -> IssuedToken:
        """
        Issue a replacement for the presented token.

        With rotation enabled, the replacement is persisted first and the
        presented token is then revoked by a conditional update. If that
        update matches nothing, another request rotated or revoked the
        token first; this call fails and its replacement is discarded with
        the transaction.

        Raises:
            Unauthenticated: presented token is no longer valid
        """
        if presented.user_id != user.id:
            raise Unauthenticated()

        # Only the presented token is retired, and only by the update below
        replacement = await self.issue(user, name=presented.name, revoke_prior=False)

        if self.config.rotation_enabled:
            revoked = await self._revoke_where(
                AccessToken.id == presented.id,
                AccessToken.revoked.is_(False),
                AccessToken.expires_at > utc_now(),
            )
            if revoked == 0:
                logger.warning(
                    "Refresh lost race or token no longer valid",
                    user_id=str(user.id),
                    token_id=str(presented.id),
                )
                raise Unauthenticated()

        return replacement

    async def revoke(self, token: AccessToken) -> bool:
        """Revoke a single token. Returns False if it was already revoked."""
        return await self._revoke_where(
            AccessToken.id == token.id,
            AccessToken.revoked.is_(False),
        ) > 0

    async def revoke_all(self, user_id: UUID) -> int:
        """Revoke every live token of a user. Returns how many changed."""
        count = await self._revoke_where(
            AccessToken.user_id == user_id,
            AccessToken.revoked.is_(False),
        )
        logger.info("Tokens revoked", user_id=str(user_id), count=count)
        return count

    async def list_active(self, user_id: UUID) -> list[AccessToken]:
        stmt = (
            select(AccessToken)
            .where(
                AccessToken.user_id == user_id,
                AccessToken.revoked.is_(False),
                AccessToken.expires_at > utc_now(),
            )
            .order_by(AccessToken.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def purge_expired(self, now: datetime | None = None) -> int:
        """
        Delete tokens past their expiry.

        Expired tokens can never become valid again, so this is safe to
        run at any time and any number of times.
        """
        now = now or utc_now()
        result = await self.db.execute(
            delete(AccessToken)
            .where(AccessToken.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        logger.info("Expired tokens purged", count=result.rowcount)
        return result.rowcount

    async def _revoke_where(self, *criteria) -> int:
        # Loaded AccessToken objects are not synchronized; resolve() re-reads
        stmt = (
            update(AccessToken)
            .where(*criteria)
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount
