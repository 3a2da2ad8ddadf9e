"""
Organizations API Endpoints

Company CRUD plus the membership lifecycle: join requests, invitations,
member role changes and removal. Company-scoped routes are gated by
require_company_role, which resolves the caller's effective role fresh on
every request.
"""

from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobboard.api.dependencies import get_current_user, get_db, require_company_role
from jobboard.core.permissions import ALL_COMPANY_ROLES, CompanyAction, JoinRequestStatus, roles_with_permission
from jobboard.models.user import User
from jobboard.schemas.organization import (
    OrganizationCreate,
    OrganizationUpdate,
    OrganizationOut,
    OrganizationSummary
)
from jobboard.schemas.join_request import (
    ActionResult,
    InvitationCreate,
    JoinRequestCreate,
    JoinRequestDecision,
    JoinRequestOut,
    JoinRequestWithUser,
    MyJoinRequestOut
)
from jobboard.schemas.organization_member import (
    MemberList,
    MemberRoleUpdate,
    MembershipAudit,
    MyCompanyRoleOut
)
from jobboard.services import affiliation, membership
from jobboard.services.authorization import get_organization_or_404

router = APIRouter()


def gate(action: CompanyAction):
    """Gate a route on the roles allowed to perform `action`."""
    return require_company_role(*roles_with_permission(action))


# ==================== Organization CRUD ====================

@router.post("/", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a new company.

    The caller must hold the global recruiter role and no current
    affiliation; they become the company's first admin.
    """
    return await membership.create_organization(db, current_user, org_data)


@router.get("/", response_model=List[OrganizationSummary])
async def list_organizations(
    q: Optional[str] = Query(None, max_length=100),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Search companies.

    Query parameters:
    - q: Case-insensitive match on name, industry or location
    - skip: Number of records to skip (pagination)
    - limit: Maximum number of records to return
    """
    return await membership.search_organizations(db, q=q, skip=skip, limit=limit)


@router.get("/my")
async def get_my_organization(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The caller's company, or an empty object when unaffiliated."""
    organization = await membership.get_my_organization(db, current_user)
    if organization is None:
        return {}
    return OrganizationOut.model_validate(organization)


@router.get("/my/role", response_model=MyCompanyRoleOut)
async def get_my_role(context: Dict = Depends(require_company_role(*ALL_COMPANY_ROLES))):
    """Effective role in the caller's own company."""
    return {"organization_id": context["organization_id"], "role": context["role"].value}


@router.get("/my/join-requests", response_model=List[MyJoinRequestOut])
async def get_my_join_requests(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await affiliation.list_my_join_requests(db, current_user)


@router.get("/{organization_id}", response_model=OrganizationOut)
async def get_organization(
    organization_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await get_organization_or_404(db, organization_id)


@router.patch("/{organization_id}", response_model=OrganizationOut)
async def update_organization(
    org_data: OrganizationUpdate,
    context: Dict = Depends(gate(CompanyAction.UPDATE_COMPANY)),
    db: AsyncSession = Depends(get_db)
):
    return await membership.update_organization(db, context, org_data)


@router.delete("/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    context: Dict = Depends(gate(CompanyAction.DELETE_COMPANY)),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a company.

    Removes all membership state; affiliated users fall back to candidate.
    """
    await membership.delete_organization(db, context)
    return None


@router.get("/{organization_id}/me-role", response_model=MyCompanyRoleOut)
async def get_my_company_role(
    organization_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Caller's standing in a company.

    Returns the company role, or 'pending' while a join request awaits a decision.
    """
    return await affiliation.get_my_company_role(db, current_user, organization_id)


# ==================== Join Requests ====================

@router.post("/{organization_id}/join-requests", response_model=JoinRequestOut, status_code=status.HTTP_201_CREATED)
async def request_to_join(
    organization_id: int,
    payload: JoinRequestCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await membership.request_to_join(db, current_user, organization_id, payload.role_title.value)


@router.get("/{organization_id}/join-requests", response_model=List[JoinRequestWithUser])
async def list_join_requests(
    status_filter: Optional[JoinRequestStatus] = Query(None, alias="status"),
    context: Dict = Depends(gate(CompanyAction.LIST_JOIN_REQUESTS)),
    db: AsyncSession = Depends(get_db)
):
    """
    List a company's join requests, newest first.

    Query parameters:
    - status: Filter by pending, accepted or rejected
    """
    return await membership.list_join_requests(
        db, context["organization_id"], status=status_filter.value if status_filter else None
    )


@router.put("/{organization_id}/join-requests/respond", response_model=JoinRequestOut)
async def respond_to_invite(
    organization_id: int,
    decision: JoinRequestDecision,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The invited user accepts or rejects their pending invitation."""
    return await membership.respond_to_invite(db, current_user, organization_id, decision.status)


@router.put("/{organization_id}/join-requests/{request_id}", response_model=JoinRequestOut)
async def handle_join_request(
    request_id: int,
    decision: JoinRequestDecision,
    context: Dict = Depends(gate(CompanyAction.HANDLE_JOIN_REQUEST)),
    db: AsyncSession = Depends(get_db)
):
    """An admin or recruiter accepts or rejects a join request."""
    return await membership.handle_join_request(db, context, request_id, decision.status)


@router.post("/{organization_id}/invitations", response_model=JoinRequestOut, status_code=status.HTTP_201_CREATED)
async def invite_user(
    payload: InvitationCreate,
    context: Dict = Depends(gate(CompanyAction.INVITE)),
    db: AsyncSession = Depends(get_db)
):
    return await membership.invite_user(db, context, payload.user_id, payload.role_title.value)


# ==================== Members ====================

@router.get("/{organization_id}/members", response_model=MemberList)
async def list_members(
    context: Dict = Depends(gate(CompanyAction.LIST_MEMBERS)),
    db: AsyncSession = Depends(get_db)
):
    members = await membership.list_members(db, context["organization_id"])
    return {"success": True, "count": len(members), "members": members}


@router.patch("/{organization_id}/members/{user_id}", response_model=ActionResult)
async def update_member_role(
    user_id: int,
    payload: MemberRoleUpdate,
    context: Dict = Depends(gate(CompanyAction.UPDATE_MEMBER_ROLE)),
    db: AsyncSession = Depends(get_db)
):
    """
    Change a member's company role.

    Only admins can grant the admin role or change the role of an admin.
    """
    await membership.update_member_role(db, context, user_id, payload.role_title.value)
    return {"success": True, "message": f"Member role updated to '{payload.role_title.value}'"}


@router.delete("/{organization_id}/members/{user_id}", response_model=ActionResult)
async def remove_member(
    user_id: int,
    context: Dict = Depends(gate(CompanyAction.REMOVE_MEMBER)),
    db: AsyncSession = Depends(get_db)
):
    await membership.remove_member(db, context, user_id)
    return {"success": True, "message": "Member removed successfully"}


@router.get("/{organization_id}/audit", response_model=MembershipAudit)
async def audit_membership(
    context: Dict = Depends(gate(CompanyAction.AUDIT_MEMBERSHIP)),
    db: AsyncSession = Depends(get_db)
):
    """Check the company's membership invariants."""
    violations = await membership.find_membership_inconsistencies(db, context["organization_id"])
    return {
        "organization_id": context["organization_id"],
        "consistent": not violations,
        "violations": violations,
    }
