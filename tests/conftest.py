"""
Global test fixtures and configuration.

This module provides base fixtures for all tests:
- In-memory SQLite database, rebuilt for every test
- Redis client (in-memory fake)
- HTTP client with dependency overrides
- Base data fixtures (users, auth headers, a company with its admin)
"""

import os
import pytest
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.pool import StaticPool
from fakeredis import FakeAsyncRedis

# Set test environment variables BEFORE importing app
os.environ["MODE"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SENTRY_DSN"] = ""
os.environ["ACCESS_LOG_ENABLED"] = "true"

from jobboard.main import app
from jobboard.api.dependencies import get_db, get_redis
from jobboard.core.security import create_access_token
from jobboard.db.base import Base
from jobboard.db.session import enable_sqlite_foreign_keys

TEST_DATABASE_URL = os.environ["DATABASE_URL"]


def make_auth_headers(user) -> dict:
    token = create_access_token(data={"sub": str(user.id)}, token_version=user.token_version)
    return {"Authorization": f"Bearer {token}"}


# ==================== Database ====================

@pytest.fixture(scope="function")
async def test_engine():
    """
    Create an in-memory database with all tables.

    StaticPool keeps a single connection so every session sees the same database.
    Foreign keys are enforced so ON DELETE rules behave as on PostgreSQL.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False  # Set to True for SQL debugging
    )
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Session shared by the test and the application.

    The services commit, so isolation comes from the per-test database.
    """
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


# ==================== Redis ====================

@pytest.fixture(scope="function")
async def redis_client() -> AsyncGenerator[FakeAsyncRedis, None]:
    """Fake Redis client (in-memory) for each test."""
    redis = FakeAsyncRedis()
    yield redis
    await redis.flushall()
    await redis.aclose()


# ==================== FastAPI Client ====================

@pytest.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    redis_client: FakeAsyncRedis
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create HTTP client for testing FastAPI endpoints.

    Overrides get_db and get_redis dependencies to use test fixtures.
    """

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        yield redis_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Base Data Fixtures ====================

@pytest.fixture
async def user(db_session: AsyncSession):
    """Unaffiliated candidate."""
    from tests.factories.user import UserFactory
    user = await UserFactory.create_async(db_session, name="Casey Candidate")
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def auth_headers(user):
    return make_auth_headers(user)


@pytest.fixture
async def admin_user(db_session: AsyncSession):
    """Recruiter who will found the `organization` fixture."""
    from tests.factories.user import UserFactory
    user = await UserFactory.create_async(
        db_session,
        email="admin@example.com",
        name="Admin User",
        role="recruiter"
    )
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def admin_auth_headers(admin_user):
    return make_auth_headers(admin_user)


@pytest.fixture
async def organization(db_session: AsyncSession, admin_user):
    """Company founded by admin_user, who holds the admin role."""
    from tests.factories.organization import OrganizationFactory
    org = await OrganizationFactory.create_with_admin_async(db_session, admin_user)
    await db_session.commit()
    await db_session.refresh(org)
    await db_session.refresh(admin_user)
    return org
