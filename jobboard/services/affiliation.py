"""
Affiliation mirror: the user-side copy of company membership state.

The mirror (User.company_id, User.company_role, User.role and the
user_join_requests rows) is written after the organization write it follows
and is never authoritative. Functions here do not commit, except
rebuild_affiliation which is a standalone repair.
"""

from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from jobboard.core.exceptions import ForbiddenError, storage_errors
from jobboard.core.logging import get_logger
from jobboard.core.permissions import CompanyRole, GlobalRole, JoinRequestStatus, derive_global_role
from jobboard.models.join_request import JoinRequest, UserJoinRequest
from jobboard.models.organization import Organization
from jobboard.models.organization_member import OrganizationAdmin, OrganizationMember
from jobboard.models.user import User
from jobboard.services.authorization import get_organization_or_404

logger = get_logger(__name__)


def _mirror_from(join_request: JoinRequest) -> UserJoinRequest:
    return UserJoinRequest(
        join_request_id=join_request.id,
        organization_id=join_request.organization_id,
        user_id=join_request.user_id,
        role_title=join_request.role_title,
        status=join_request.status,
        origin=join_request.origin,
        requested_at=join_request.requested_at,
        resolved_at=join_request.resolved_at,
    )


async def _find_mirror_entry(db: AsyncSession, join_request: JoinRequest) -> Optional[UserJoinRequest]:
    result = await db.execute(
        select(UserJoinRequest).where(
            UserJoinRequest.user_id == join_request.user_id,
            UserJoinRequest.join_request_id == join_request.id,
        )
    )
    return result.scalars().first()


def repair_global_role(user: User) -> bool:
    """Re-apply the global role derivation. Returns True if the role changed."""
    expected = derive_global_role(user.company_role, user.role).value
    if user.role != expected:
        user.role = expected
        return True
    return False


def apply_affiliation(user: User, organization_id: int, company_role: str) -> None:
    """Point the user at their organization and recompute the global role."""
    user.company_id = organization_id
    user.company_role = CompanyRole(company_role).value
    repair_global_role(user)


async def mirror_new_request(db: AsyncSession, join_request: JoinRequest, purge_rejected: bool = False) -> UserJoinRequest:
    """
    Copy a freshly created join request onto the user.

    Args:
        db: Database session
        join_request: Canonical request (already persisted)
        purge_rejected: Drop the user's rejected entries for the same organization first
    """
    if purge_rejected:
        await db.execute(
            delete(UserJoinRequest).where(
                UserJoinRequest.user_id == join_request.user_id,
                UserJoinRequest.organization_id == join_request.organization_id,
                UserJoinRequest.status == JoinRequestStatus.REJECTED.value,
            )
        )

    entry = _mirror_from(join_request)
    db.add(entry)
    return entry


async def mirror_resolution(db: AsyncSession, join_request: JoinRequest) -> UserJoinRequest:
    """Copy the status of a resolved request onto the user's mirror entry."""
    entry = await _find_mirror_entry(db, join_request)
    if entry is None:
        logger.warning(
            f"membership.mirror_missing request={join_request.id} user={join_request.user_id} "
            f"org={join_request.organization_id}; recreating"
        )
        entry = _mirror_from(join_request)
        db.add(entry)
        return entry

    entry.status = join_request.status
    entry.role_title = join_request.role_title
    entry.resolved_at = join_request.resolved_at
    return entry


async def mirror_role_change(db: AsyncSession, user: User, join_request: JoinRequest) -> None:
    """Propagate a company role change to the mirror entry and the user's fields."""
    entry = await _find_mirror_entry(db, join_request)
    if entry is not None:
        entry.role_title = join_request.role_title

    if user.company_id in (None, join_request.organization_id):
        apply_affiliation(user, join_request.organization_id, join_request.role_title)


async def clear_affiliation(
    db: AsyncSession,
    user: User,
    organization_id: int,
    drop_accepted: bool = False
) -> None:
    """
    Drop the user's affiliation with an organization.

    Only clears company fields that still point at this organization; the
    global role falls back to candidate. With drop_accepted the user's
    accepted entries for the organization are removed too, matched by
    organization and status: join_request_id is NULL once the canonical
    request is deleted.
    """
    if drop_accepted:
        await db.execute(
            delete(UserJoinRequest).where(
                UserJoinRequest.user_id == user.id,
                UserJoinRequest.organization_id == organization_id,
                UserJoinRequest.status == JoinRequestStatus.ACCEPTED.value,
            )
        )

    if user.company_id == organization_id:
        user.company_id = None
        user.company_role = None
        user.role = derive_global_role(None).value


async def get_my_company_role(db: AsyncSession, user: User, organization_id: int) -> Dict:
    """
    Resolve the caller's standing in an organization.

    Order: admin set, members, pending request, accepted-but-unsynced request.

    Raises:
        NotFoundError: Organization does not exist
        ForbiddenError: No membership and no pending request
    """
    await get_organization_or_404(db, organization_id)

    admin = await db.execute(
        select(OrganizationAdmin.id).where(
            OrganizationAdmin.organization_id == organization_id,
            OrganizationAdmin.user_id == user.id,
        )
    )
    if admin.first():
        return {"organization_id": organization_id, "role": CompanyRole.ADMIN.value}

    member = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user.id,
        )
    )
    member = member.scalar_one_or_none()
    if member:
        return {"organization_id": organization_id, "role": member.role}

    requests = await db.execute(
        select(JoinRequest)
        .where(
            JoinRequest.organization_id == organization_id,
            JoinRequest.user_id == user.id,
            JoinRequest.status.in_([JoinRequestStatus.PENDING.value, JoinRequestStatus.ACCEPTED.value]),
        )
        .order_by(JoinRequest.requested_at.desc(), JoinRequest.id.desc())
    )
    requests = requests.scalars().all()

    if any(r.status == JoinRequestStatus.PENDING.value for r in requests):
        return {
            "organization_id": organization_id,
            "role": JoinRequestStatus.PENDING.value,
            "message": "You have a pending join request for this company",
        }

    accepted = next((r for r in requests if r.status == JoinRequestStatus.ACCEPTED.value), None)
    if accepted:
        return {"organization_id": organization_id, "role": accepted.role_title}

    raise ForbiddenError("You are not a member of this company")


async def list_my_join_requests(db: AsyncSession, user: User) -> List[Dict]:
    """Read the caller's mirror, newest first, with organization names."""
    result = await db.execute(
        select(UserJoinRequest, Organization.name)
        .outerjoin(Organization, Organization.id == UserJoinRequest.organization_id)
        .where(UserJoinRequest.user_id == user.id)
        .order_by(UserJoinRequest.requested_at.desc(), UserJoinRequest.id.desc())
    )
    return [
        {
            "id": entry.id,
            "join_request_id": entry.join_request_id,
            "organization_id": entry.organization_id,
            "organization_name": organization_name,
            "role_title": entry.role_title,
            "status": entry.status,
            "origin": entry.origin,
            "requested_at": entry.requested_at,
            "resolved_at": entry.resolved_at,
        }
        for entry, organization_name in result.all()
    ]


def _mirror_key(entry) -> tuple:
    return (entry.organization_id, entry.role_title, entry.status, entry.origin)


async def rebuild_affiliation(db: AsyncSession, user: User) -> bool:
    """
    Rebuild the user's mirror from the organization tables.

    The organization side wins every disagreement:
    - user_join_requests is replaced by a copy of the user's join requests
    - company_id/company_role follow the user's members row, or an accepted
      request whose members row was never written
    - the global role is re-derived

    Returns:
        True if anything had to be repaired
    """
    canonical = await db.execute(
        select(JoinRequest)
        .where(JoinRequest.user_id == user.id)
        .order_by(JoinRequest.requested_at, JoinRequest.id)
    )
    canonical = canonical.scalars().all()

    mirror = await db.execute(
        select(UserJoinRequest).where(UserJoinRequest.user_id == user.id)
    )
    mirror = mirror.scalars().all()

    expected_mirror = {r.id: _mirror_key(r) for r in canonical}
    actual_mirror = {m.join_request_id: _mirror_key(m) for m in mirror}
    mirror_stale = len(mirror) != len(canonical) or expected_mirror != actual_mirror

    memberships = await db.execute(
        select(OrganizationMember)
        .where(OrganizationMember.user_id == user.id)
        .order_by(OrganizationMember.joined_at, OrganizationMember.id)
    )
    memberships = memberships.scalars().all()
    if len(memberships) > 1:
        logger.warning(
            f"membership.multiple_affiliations user={user.id} "
            f"orgs={[m.organization_id for m in memberships]}; keeping the oldest"
        )

    if memberships:
        expected_company = (memberships[0].organization_id, memberships[0].role)
    else:
        accepted = [r for r in canonical if r.status == JoinRequestStatus.ACCEPTED.value]
        expected_company = (accepted[0].organization_id, accepted[0].role_title) if accepted else (None, None)

    company_stale = (user.company_id, user.company_role) != expected_company

    if not mirror_stale and not company_stale:
        if not repair_global_role(user):
            return False
        return await _commit_repair(db, user, "role")

    if mirror_stale:
        await db.execute(delete(UserJoinRequest).where(UserJoinRequest.user_id == user.id))
        for join_request in canonical:
            db.add(_mirror_from(join_request))

    if company_stale:
        user.company_id, user.company_role = expected_company
    repair_global_role(user)

    what = ",".join(name for name, stale in (("requests", mirror_stale), ("company", company_stale)) if stale)
    return await _commit_repair(db, user, what)


async def _commit_repair(db: AsyncSession, user: User, what: str) -> bool:
    async with storage_errors("Failed to refresh profile", db=db, user_id=user.id):
        await db.commit()
    logger.info(f"membership.mirror_repaired user={user.id} fields={what}")
    return True


def global_role_for(user: User, requested: GlobalRole) -> GlobalRole:
    """Global role the user would end up with after asking for `requested`."""
    return derive_global_role(user.company_role, requested)
