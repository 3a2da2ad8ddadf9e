"""
Integration tests for authentication endpoints.

Tests:
- POST /api/auth/register
- POST /api/auth/login and /api/auth/token (global role re-derived)
- POST /api/auth/logout (Redis blacklist)
- Token versioning
"""

import pytest
from fakeredis import FakeAsyncRedis
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import MembershipFactory, UserFactory


@pytest.mark.asyncio
class TestRegister:

    async def test_register_returns_token_and_profile(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={"name": "New User", "email": "new@example.com", "password": "Password123!"}
        )

        assert response.status_code == 201
        data = response.json()
        assert data["access_token"]
        assert data["user"]["email"] == "new@example.com"
        assert data["user"]["role"] == "candidate"
        assert data["user"]["company_id"] is None

    async def test_register_as_recruiter(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={"name": "Rita", "email": "rita@example.com", "password": "Password123!", "role": "recruiter"}
        )

        assert response.status_code == 201
        assert response.json()["user"]["role"] == "recruiter"

    async def test_duplicate_email_conflicts(self, client: AsyncClient, user):
        response = await client.post(
            "/api/auth/register",
            json={"name": "Copy", "email": user.email, "password": "Password123!"}
        )

        assert response.status_code == 409
        assert response.json()["message"] == "Email already registered"


@pytest.mark.asyncio
class TestLogin:

    async def test_login_with_json(self, client: AsyncClient, db_session: AsyncSession):
        await UserFactory.create_async(db_session, email="login@example.com", password="LoginTest123!")
        await db_session.commit()

        response = await client.post(
            "/api/auth/login",
            json={"email": "login@example.com", "password": "LoginTest123!"}
        )

        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"
        assert response.json()["user"]["email"] == "login@example.com"

    async def test_login_wrong_password(self, client: AsyncClient, user):
        response = await client.post(
            "/api/auth/login",
            json={"email": user.email, "password": "WrongPassword!"}
        )

        assert response.status_code == 401

    async def test_login_repairs_global_role(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        organization,
        user
    ):
        await MembershipFactory.create_async(db_session, organization=organization, user=user, role="employee")
        user.role = "recruiter"
        await db_session.commit()

        response = await client.post(
            "/api/auth/login",
            json={"email": user.email, "password": "Password123!"}
        )

        assert response.status_code == 200
        assert response.json()["user"]["role"] == "candidate"
        await db_session.refresh(user)
        assert user.role == "candidate"

    async def test_token_form_repairs_global_role(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        organization,
        admin_user
    ):
        admin_user.role = "candidate"
        await db_session.commit()

        response = await client.post(
            "/api/auth/token",
            data={"username": admin_user.email, "password": "Password123!"}
        )

        assert response.status_code == 200
        await db_session.refresh(admin_user)
        assert admin_user.role == "recruiter"

    async def test_oauth2_token_form(self, client: AsyncClient, user):
        response = await client.post(
            "/api/auth/token",
            data={"username": user.email, "password": "Password123!"}
        )

        assert response.status_code == 200
        assert response.json()["access_token"]


@pytest.mark.asyncio
class TestSession:

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/api/auth/me")
        assert response.status_code == 401

    async def test_garbage_token(self, client: AsyncClient):
        response = await client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_bumped_token_version_invalidates_token(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        user,
        auth_headers
    ):
        user.token_version = 2
        await db_session.commit()

        response = await client.get("/api/auth/me", headers=auth_headers)

        assert response.status_code == 401

    async def test_logout_blacklists_token(
        self,
        client: AsyncClient,
        redis_client: FakeAsyncRedis,
        auth_headers
    ):
        response = await client.post("/api/auth/logout", headers=auth_headers)

        assert response.status_code == 200
        token = auth_headers["Authorization"].removeprefix("Bearer ")
        assert await redis_client.exists(f"blacklist:{token}")
        assert await redis_client.ttl(f"blacklist:{token}") > 0

        after = await client.get("/api/auth/me", headers=auth_headers)
        assert after.status_code == 401

    async def test_request_id_is_echoed(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/auth/me", headers={**auth_headers, "X-Request-ID": "abc-123"})

        assert response.headers["X-Request-ID"] == "abc-123"
