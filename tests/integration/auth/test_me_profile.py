"""
Integration tests for the caller's profile.

Tests:
- GET /api/auth/me - profile with affiliation repaired from the company records
- PATCH /api/auth/me/role - global role choice
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jobboard.models.join_request import UserJoinRequest
from tests.factories import JoinRequestFactory, MembershipFactory


@pytest.mark.asyncio
class TestMe:

    async def test_me_returns_profile_and_fresh_token(
        self,
        client: AsyncClient,
        user,
        auth_headers
    ):
        response = await client.get("/api/auth/me", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["access_token"]
        assert data["user"]["id"] == user.id
        assert data["user"]["role"] == "candidate"

    async def test_me_restores_lost_affiliation(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        organization,
        user,
        auth_headers
    ):
        await MembershipFactory.create_async(db_session, organization=organization, user=user, role="recruiter")
        user.company_id = None
        user.company_role = None
        user.role = "candidate"
        await db_session.commit()

        response = await client.get("/api/auth/me", headers=auth_headers)

        profile = response.json()["user"]
        assert profile["company_id"] == organization.id
        assert profile["company_role"] == "recruiter"
        assert profile["role"] == "recruiter"

    async def test_me_clears_affiliation_the_company_no_longer_has(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        organization,
        user,
        auth_headers
    ):
        user.company_id = organization.id
        user.company_role = "employee"
        await db_session.commit()

        response = await client.get("/api/auth/me", headers=auth_headers)

        profile = response.json()["user"]
        assert profile["company_id"] is None
        assert profile["company_role"] is None
        assert profile["role"] == "candidate"

    async def test_me_rebuilds_mirror_from_company_requests(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        organization,
        user,
        auth_headers
    ):
        jr = await JoinRequestFactory.create_async(
            db_session, organization_id=organization.id, user_id=user.id, status="rejected", mirror=False
        )
        db_session.add(UserJoinRequest(
            organization_id=organization.id,
            user_id=user.id,
            role_title="admin",
            status="pending",
            origin="request",
        ))
        await db_session.commit()

        response = await client.get("/api/auth/me", headers=auth_headers)

        assert response.status_code == 200
        mirror = await db_session.execute(select(UserJoinRequest).where(UserJoinRequest.user_id == user.id))
        entries = mirror.scalars().all()
        assert [(e.join_request_id, e.status) for e in entries] == [(jr.id, "rejected")]

    async def test_me_fixes_global_role_drift(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        organization,
        user,
        auth_headers
    ):
        await MembershipFactory.create_async(db_session, organization=organization, user=user, role="employee")
        user.role = "recruiter"
        await db_session.commit()

        response = await client.get("/api/auth/me", headers=auth_headers)

        assert response.json()["user"]["role"] == "candidate"


@pytest.mark.asyncio
class TestUpdateMyRole:

    async def test_unaffiliated_user_switches_role(
        self,
        client: AsyncClient,
        auth_headers
    ):
        response = await client.patch("/api/auth/me/role", headers=auth_headers, json={"role": "recruiter"})

        assert response.status_code == 200
        assert response.json()["role"] == "recruiter"

    async def test_unchanged_role_conflicts(
        self,
        client: AsyncClient,
        auth_headers
    ):
        response = await client.patch("/api/auth/me/role", headers=auth_headers, json={"role": "candidate"})

        assert response.status_code == 409

    async def test_employee_cannot_become_recruiter(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        organization,
        user,
        auth_headers
    ):
        await MembershipFactory.create_async(db_session, organization=organization, user=user, role="employee")
        await db_session.commit()

        response = await client.patch("/api/auth/me/role", headers=auth_headers, json={"role": "recruiter"})

        assert response.status_code == 409
        assert "requires the 'candidate' role" in response.json()["message"]

    async def test_admin_cannot_become_candidate(
        self,
        client: AsyncClient,
        organization,
        admin_auth_headers
    ):
        response = await client.patch("/api/auth/me/role", headers=admin_auth_headers, json={"role": "candidate"})

        assert response.status_code == 409
