"""
Pytest fixtures for testing.

Provides:
- Async database session on in-memory SQLite
- Test client with auth helpers
- Factory fixtures for creating test data
"""

import os

# Must be set before gatehouse.core.config is imported
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("AUTH_BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_FORMAT", "text")

from typing import AsyncGenerator
from uuid import uuid4

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from gatehouse.main import app
from gatehouse.models.audit_log import AuditLog
from gatehouse.models.base import Base
from gatehouse.models.user import User
from gatehouse.api.dependencies.database import get_db
from gatehouse.services.auth import pwd_context
from gatehouse.services.rbac import RBACService
from gatehouse.services.tokens import TokenService
from gatehouse.utils.timezone import utc_now


# Test database URL (SQLite in-memory for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Satisfies the password policy
DEFAULT_PASSWORD = "Correct-Horse-9"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Database session shared by the test and the app under test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def seeded_roles(db: AsyncSession):
    """The admin and user reference roles."""
    roles = await RBACService(db).seed_defaults()
    await db.commit()
    return roles


@pytest_asyncio.fixture(scope="function")
async def client(db: AsyncSession, seeded_roles) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with database session override.
    """

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


# ============ Factory Fixtures ============


class UserFactory:
    """Factory for creating test users."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
        name: str = "Test User",
        roles: tuple[str, ...] = ("user",),
        verified: bool = False,
    ) -> User:
        """Create a user in the database."""
        rbac = RBACService(self.db)
        role_objects = []
        for role_name in roles:
            role = await rbac.get_role_by_name(role_name)
            if role is None:
                role = await rbac.create_role(role_name)
            role_objects.append(role)

        user = User(
            email=email or f"test-{uuid4().hex[:8]}@example.com",
            password_hash=pwd_context.hash(password),
            name=name,
            email_verified_at=utc_now() if verified else None,
            last_login_at=None,
            roles=role_objects,
        )
        self.db.add(user)
        await self.db.commit()
        return user


@pytest_asyncio.fixture
async def user_factory(db: AsyncSession, seeded_roles) -> UserFactory:
    """Fixture that provides UserFactory."""
    return UserFactory(db)


@pytest_asyncio.fixture
async def test_user(user_factory: UserFactory) -> User:
    """Create a standard test user."""
    return await user_factory.create(email="user@example.com")


@pytest_asyncio.fixture
async def admin_user(user_factory: UserFactory) -> User:
    """Create an admin test user."""
    return await user_factory.create(
        email="admin@example.com",
        name="Admin User",
        roles=("admin",),
    )


# ============ Auth Helpers ============


async def issue_token(db: AsyncSession, user: User) -> str:
    """Issue a token for user and return its plaintext."""
    issued = await TokenService(db).issue(user)
    await db.commit()
    return issued.plain_text


async def get_auth_headers(db: AsyncSession, user: User) -> dict[str, str]:
    """Helper to get auth headers for any user."""
    return {"Authorization": f"Bearer {await issue_token(db, user)}"}


@pytest_asyncio.fixture
async def auth_headers(db: AsyncSession, test_user: User) -> dict[str, str]:
    """Get auth headers for test user."""
    return await get_auth_headers(db, test_user)


@pytest_asyncio.fixture
async def admin_auth_headers(db: AsyncSession, admin_user: User) -> dict[str, str]:
    """Get auth headers for admin user."""
    return await get_auth_headers(db, admin_user)


async def audit_actions(db: AsyncSession) -> list[AuditLog]:
    """Audit rows in insertion order."""
    result = await db.execute(select(AuditLog).order_by(AuditLog.created_at))
    return list(result.scalars().all())
