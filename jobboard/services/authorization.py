"""
Authorization gate for company-scoped actions.

The caller's effective role is computed from the organization tables on every
call; nothing is cached, so role changes apply to the very next request.
"""

from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jobboard.core.exceptions import ForbiddenError, NotFoundError, ValidationFailedError
from jobboard.core.logging import get_logger
from jobboard.core.permissions import CompanyRole, JoinRequestStatus
from jobboard.models.join_request import JoinRequest
from jobboard.models.organization import Organization
from jobboard.models.organization_member import OrganizationAdmin
from jobboard.models.user import User

logger = get_logger(__name__)


async def get_organization_or_404(db: AsyncSession, organization_id: int) -> Organization:
    result = await db.execute(select(Organization).where(Organization.id == organization_id))
    organization = result.scalar_one_or_none()
    if not organization:
        raise NotFoundError("Company not found")
    return organization


async def resolve_effective_role(db: AsyncSession, organization_id: int, user_id: int) -> Optional[CompanyRole]:
    """
    Compute a user's role inside an organization.

    - admin if the user is in the admin set
    - else the role of the user's accepted join request
    - else None
    """
    admin = await db.execute(
        select(OrganizationAdmin.id).where(
            OrganizationAdmin.organization_id == organization_id,
            OrganizationAdmin.user_id == user_id,
        )
    )
    if admin.first():
        return CompanyRole.ADMIN

    accepted = await db.execute(
        select(JoinRequest.role_title)
        .where(
            JoinRequest.organization_id == organization_id,
            JoinRequest.user_id == user_id,
            JoinRequest.status == JoinRequestStatus.ACCEPTED.value,
        )
        .order_by(JoinRequest.resolved_at.desc(), JoinRequest.id.desc())
    )
    role_title = accepted.scalars().first()
    if role_title is None:
        return None
    return CompanyRole(role_title)


async def authorize(
    db: AsyncSession,
    user: User,
    organization_id: Optional[int],
    allowed_roles: Iterable[CompanyRole],
) -> Dict:
    """
    Gate a company-scoped action on the caller's effective role.

    Args:
        db: Database session
        user: Authenticated caller
        organization_id: Organization from the route; falls back to the caller's company
        allowed_roles: Roles permitted to perform the action

    Returns:
        Context dict with organization_id, organization, user and role

    Raises:
        ValidationFailedError: No organization id in the route and no affiliation
        NotFoundError: Organization does not exist
        ForbiddenError: Caller is not a member, or their role is not allowed
    """
    if organization_id is None:
        organization_id = user.company_id
    if organization_id is None:
        raise ValidationFailedError("Company ID is required")

    organization = await get_organization_or_404(db, organization_id)

    role = await resolve_effective_role(db, organization_id, user.id)
    if role is None:
        raise ForbiddenError("User is not a member of this company")

    allowed = [CompanyRole(r) for r in allowed_roles]
    if role not in allowed:
        logger.info(f"membership.gate_denied org={organization_id} user={user.id} role={role.value}")
        raise ForbiddenError(
            f"Forbidden: Role '{role.value}' is not authorized. "
            f"Required roles: {', '.join(r.value for r in allowed)}"
        )

    return {
        "organization_id": organization_id,
        "organization": organization,
        "user": user,
        "role": role,
    }
