"""
Company membership lifecycle.

Every operation writes the organization side first (join_requests,
organization_members, organization_admins) and commits it. The user-side
mirror is then written as a separate commit through _write_mirror; a failed
mirror write is logged and left for rebuild_affiliation to repair on the
user's next profile read.
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jobboard.core.config import settings
from jobboard.core.exceptions import ConflictError, ForbiddenError, NotFoundError, storage_errors
from jobboard.core.logging import get_logger
from jobboard.core.permissions import (
    CompanyRole,
    GlobalRole,
    JoinRequestStatus,
    RequestOrigin,
    can_assign_role,
    can_manage_member,
    derive_global_role,
)
from jobboard.models.join_request import JoinRequest, UserJoinRequest
from jobboard.models.organization import Organization
from jobboard.models.organization_member import OrganizationAdmin, OrganizationMember
from jobboard.models.user import User
from jobboard.schemas.organization import OrganizationCreate, OrganizationUpdate
from jobboard.services import affiliation
from jobboard.services.authorization import get_organization_or_404, resolve_effective_role

logger = get_logger(__name__)

OPEN_STATUSES = (JoinRequestStatus.PENDING.value, JoinRequestStatus.ACCEPTED.value)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _purge_rejected() -> bool:
    return settings.REJECTED_REQUEST_POLICY == "purge"


async def _write_mirror(
    db: AsyncSession,
    event: str,
    write: Callable[[], Awaitable[None]],
    refresh: Iterable = ()
) -> bool:
    """
    Run a user-side write in its own commit.

    On a storage failure the session is rolled back and the objects in
    `refresh` are reloaded so the caller can keep reading them.

    Returns:
        True if the mirror was written
    """
    try:
        await write()
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning(f"membership.mirror_degraded event={event} error={exc!r}")
        for obj in refresh:
            await db.refresh(obj)
        return False
    return True


async def _get_user_or_404(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")
    return user


async def _open_request(db: AsyncSession, organization_id: int, user_id: int) -> Optional[JoinRequest]:
    """The user's pending or accepted request for the organization, if any."""
    result = await db.execute(
        select(JoinRequest)
        .where(
            JoinRequest.organization_id == organization_id,
            JoinRequest.user_id == user_id,
            JoinRequest.status.in_(OPEN_STATUSES),
        )
        .order_by(JoinRequest.requested_at.desc(), JoinRequest.id.desc())
    )
    return result.scalars().first()


async def _accepted_request(db: AsyncSession, organization_id: int, user_id: int) -> Optional[JoinRequest]:
    result = await db.execute(
        select(JoinRequest)
        .where(
            JoinRequest.organization_id == organization_id,
            JoinRequest.user_id == user_id,
            JoinRequest.status == JoinRequestStatus.ACCEPTED.value,
        )
        .order_by(JoinRequest.resolved_at.desc(), JoinRequest.id.desc())
    )
    return result.scalars().first()


async def _is_admin(db: AsyncSession, organization_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(OrganizationAdmin.id).where(
            OrganizationAdmin.organization_id == organization_id,
            OrganizationAdmin.user_id == user_id,
        )
    )
    return result.first() is not None


async def _upsert_member(db: AsyncSession, organization_id: int, user_id: int, role: str) -> OrganizationMember:
    result = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
    )
    member = result.scalar_one_or_none()
    if member:
        member.role = role
        return member

    member = OrganizationMember(organization_id=organization_id, user_id=user_id, role=role, joined_at=_now())
    db.add(member)
    return member


async def _ensure_admin(db: AsyncSession, organization_id: int, user_id: int) -> None:
    if not await _is_admin(db, organization_id, user_id):
        db.add(OrganizationAdmin(organization_id=organization_id, user_id=user_id))


async def _drop_admin(db: AsyncSession, organization_id: int, user_id: int) -> None:
    await db.execute(
        delete(OrganizationAdmin).where(
            OrganizationAdmin.organization_id == organization_id,
            OrganizationAdmin.user_id == user_id,
        )
    )


async def _create_request(
    db: AsyncSession,
    organization_id: int,
    user_id: int,
    role_title: str,
    origin: RequestOrigin,
    invited_by: Optional[int] = None
) -> JoinRequest:
    """Persist a new pending request, applying the rejected-request policy."""
    purge = _purge_rejected()

    async with storage_errors("Failed to create join request", db=db, organization_id=organization_id, user_id=user_id):
        if purge:
            await db.execute(
                delete(JoinRequest).where(
                    JoinRequest.organization_id == organization_id,
                    JoinRequest.user_id == user_id,
                    JoinRequest.status == JoinRequestStatus.REJECTED.value,
                )
            )

        join_request = JoinRequest(
            organization_id=organization_id,
            user_id=user_id,
            role_title=CompanyRole(role_title).value,
            status=JoinRequestStatus.PENDING.value,
            origin=origin.value,
            invited_by=invited_by,
            requested_at=_now(),
        )
        db.add(join_request)
        await db.commit()

    async def write():
        await affiliation.mirror_new_request(db, join_request, purge_rejected=purge)

    await _write_mirror(db, origin.value, write, refresh=(join_request,))
    return join_request


# ==================== Join requests ====================

async def request_to_join(db: AsyncSession, user: User, organization_id: int, role_title: str) -> JoinRequest:
    """
    The caller asks to join an organization with a role.

    Raises:
        NotFoundError: Organization does not exist
        ConflictError: Caller is already an admin, or has a pending/accepted request
    """
    user_id = user.id
    await get_organization_or_404(db, organization_id)

    if await _is_admin(db, organization_id, user_id):
        raise ConflictError("You are already an admin of this company")

    existing = await _open_request(db, organization_id, user_id)
    if existing:
        if existing.status == JoinRequestStatus.ACCEPTED.value:
            raise ConflictError("You are already a member of this company")
        raise ConflictError("You already have a pending request for this company")

    join_request = await _create_request(db, organization_id, user_id, role_title, RequestOrigin.REQUEST)
    logger.info(f"membership.requested org={organization_id} user={user_id} role={join_request.role_title}")
    return join_request


async def invite_user(db: AsyncSession, context: Dict, target_user_id: int, role_title: str) -> JoinRequest:
    """
    An admin or recruiter invites a user with a role.

    Args:
        db: Database session
        context: Gate context of the inviting user
        target_user_id: User being invited
        role_title: Company role offered

    Raises:
        ForbiddenError: A non-admin invites as admin
        NotFoundError: Target user does not exist
        ConflictError: Target is already a member or has a pending/accepted request
    """
    organization_id = context["organization_id"]
    actor_id = context["user"].id

    if not can_assign_role(context["role"], role_title):
        raise ForbiddenError("Only admins can invite users as admin")

    await _get_user_or_404(db, target_user_id)

    member = await db.execute(
        select(OrganizationMember.id).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == target_user_id,
        )
    )
    if member.first() or await _is_admin(db, organization_id, target_user_id):
        raise ConflictError("User is already a member of this company")

    if await _open_request(db, organization_id, target_user_id):
        raise ConflictError("User already has a pending request for this company")

    join_request = await _create_request(
        db, organization_id, target_user_id, role_title, RequestOrigin.INVITE, invited_by=actor_id
    )
    logger.info(
        f"membership.invited org={organization_id} user={target_user_id} "
        f"role={join_request.role_title} by={actor_id}"
    )
    return join_request


async def _transition(db: AsyncSession, join_request: JoinRequest, status: str) -> None:
    """Move a request out of pending, only if nobody else did first."""
    result = await db.execute(
        update(JoinRequest)
        .where(
            JoinRequest.id == join_request.id,
            JoinRequest.status == JoinRequestStatus.PENDING.value,
        )
        .values(status=status, resolved_at=_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Request already handled")


async def _resolve(db: AsyncSession, join_request: JoinRequest, status: str, actor_id: int) -> JoinRequest:
    """
    Accept or reject a pending request.

    Acceptance writes the members row (and the admins row for admin) in the
    same commit as the status change, then mirrors the affiliation onto the user.
    """
    organization_id = join_request.organization_id
    accepted = status == JoinRequestStatus.ACCEPTED.value
    target = await _get_user_or_404(db, join_request.user_id)

    if accepted:
        elsewhere = await db.execute(
            select(OrganizationMember.id).where(
                OrganizationMember.user_id == target.id,
                OrganizationMember.organization_id != organization_id,
            )
        )
        if elsewhere.first():
            raise ConflictError("User already belongs to another company")

    async with storage_errors("Failed to update join request", db=db, organization_id=organization_id, request_id=join_request.id):
        await _transition(db, join_request, status)
        if accepted:
            await _upsert_member(db, organization_id, target.id, join_request.role_title)
            if join_request.role_title == CompanyRole.ADMIN.value:
                await _ensure_admin(db, organization_id, target.id)
        await db.commit()
        await db.refresh(join_request)

    async def write():
        await affiliation.mirror_resolution(db, join_request)
        if accepted:
            affiliation.apply_affiliation(target, organization_id, join_request.role_title)

    await _write_mirror(db, status, write, refresh=(join_request, target))

    logger.info(
        f"membership.{status} org={organization_id} user={target.id} "
        f"role={join_request.role_title} by={actor_id}"
    )
    return join_request


async def respond_to_invite(db: AsyncSession, user: User, organization_id: int, status: str) -> JoinRequest:
    """
    The invited user accepts or rejects their own pending invitation.

    Only the organization side decides whether an invitation exists; a
    missing mirror entry is recreated during resolution.

    Raises:
        NotFoundError: Organization does not exist, or no pending invitation
        ConflictError: Invitation already handled, or user belongs elsewhere
    """
    await get_organization_or_404(db, organization_id)

    result = await db.execute(
        select(JoinRequest)
        .where(
            JoinRequest.organization_id == organization_id,
            JoinRequest.user_id == user.id,
            JoinRequest.origin == RequestOrigin.INVITE.value,
            JoinRequest.status == JoinRequestStatus.PENDING.value,
        )
        .order_by(JoinRequest.requested_at.desc(), JoinRequest.id.desc())
    )
    join_request = result.scalars().first()
    if not join_request:
        raise NotFoundError("No pending invitation found for this company")

    return await _resolve(db, join_request, status, actor_id=user.id)


async def handle_join_request(db: AsyncSession, context: Dict, request_id: int, status: str) -> JoinRequest:
    """
    An admin or recruiter accepts or rejects a join request.

    Raises:
        NotFoundError: Request does not belong to the organization
        ConflictError: Request already handled
        ForbiddenError: The request is an invitation, or a recruiter accepts a
            request for the admin role
    """
    organization_id = context["organization_id"]

    result = await db.execute(
        select(JoinRequest).where(
            JoinRequest.id == request_id,
            JoinRequest.organization_id == organization_id,
        )
    )
    join_request = result.scalar_one_or_none()
    if not join_request:
        raise NotFoundError("Join request not found")

    if join_request.is_invite:
        raise ForbiddenError("Invitations can only be answered by the invited user")

    if not join_request.is_pending:
        raise ConflictError("Request already handled")

    if status == JoinRequestStatus.ACCEPTED.value and not can_assign_role(context["role"], join_request.role_title):
        raise ForbiddenError("Only admins can approve admin requests")

    return await _resolve(db, join_request, status, actor_id=context["user"].id)


async def list_join_requests(db: AsyncSession, organization_id: int, status: Optional[str] = None) -> List[Dict]:
    query = (
        select(JoinRequest, User.name, User.email)
        .join(User, User.id == JoinRequest.user_id)
        .where(JoinRequest.organization_id == organization_id)
    )
    if status:
        query = query.where(JoinRequest.status == status)
    query = query.order_by(JoinRequest.requested_at.desc(), JoinRequest.id.desc())

    result = await db.execute(query)
    return [
        {
            "id": jr.id,
            "organization_id": jr.organization_id,
            "user_id": jr.user_id,
            "role_title": jr.role_title,
            "status": jr.status,
            "origin": jr.origin,
            "invited_by": jr.invited_by,
            "requested_at": jr.requested_at,
            "resolved_at": jr.resolved_at,
            "user_name": name,
            "user_email": email,
        }
        for jr, name, email in result.all()
    ]


# ==================== Members ====================

async def list_members(db: AsyncSession, organization_id: int) -> List[Dict]:
    """Accepted members, derived from accepted join requests."""
    result = await db.execute(
        select(JoinRequest, User)
        .join(User, User.id == JoinRequest.user_id)
        .where(
            JoinRequest.organization_id == organization_id,
            JoinRequest.status == JoinRequestStatus.ACCEPTED.value,
        )
        .order_by(JoinRequest.resolved_at, JoinRequest.id)
    )
    return [
        {
            "user_id": user.id,
            "name": user.name,
            "email": user.email,
            "role": jr.role_title,
            "joined_at": jr.resolved_at,
        }
        for jr, user in result.all()
    ]


async def update_member_role(db: AsyncSession, context: Dict, target_user_id: int, new_role: str) -> JoinRequest:
    """
    Change an accepted member's company role.

    The accepted request, members row and admin set are updated in one
    commit; the user's company_role and global role follow in the mirror write.

    Raises:
        NotFoundError: Target has no accepted request in the organization
        ForbiddenError: Caller cannot manage the target or assign the role
        ConflictError: Role unchanged, or demoting the last admin
    """
    organization_id = context["organization_id"]
    actor_role = context["role"]
    actor_id = context["user"].id
    new_role = CompanyRole(new_role).value

    join_request = await _accepted_request(db, organization_id, target_user_id)
    if not join_request:
        raise NotFoundError("Member not found")

    current_role = await resolve_effective_role(db, organization_id, target_user_id)

    if not can_manage_member(actor_role, current_role):
        raise ForbiddenError("Only admins can change the role of an admin")
    if not can_assign_role(actor_role, new_role):
        raise ForbiddenError("Only admins can assign the admin role")
    if current_role.value == new_role:
        raise ConflictError(f"Member already has role '{new_role}'")

    if current_role == CompanyRole.ADMIN:
        admins = await db.execute(
            select(func.count(OrganizationAdmin.id)).where(OrganizationAdmin.organization_id == organization_id)
        )
        if admins.scalar_one() <= 1:
            raise ConflictError("Cannot demote the last admin of the company")

    target = await _get_user_or_404(db, target_user_id)

    async with storage_errors("Failed to update member role", db=db, organization_id=organization_id, user_id=target_user_id):
        join_request.role_title = new_role
        await _upsert_member(db, organization_id, target_user_id, new_role)
        if new_role == CompanyRole.ADMIN.value:
            await _ensure_admin(db, organization_id, target_user_id)
        else:
            await _drop_admin(db, organization_id, target_user_id)
        await db.commit()

    async def write():
        await affiliation.mirror_role_change(db, target, join_request)

    await _write_mirror(db, "role_change", write, refresh=(join_request, target))

    logger.info(
        f"membership.role_changed org={organization_id} user={target_user_id} "
        f"from={current_role.value} to={new_role} by={actor_id}"
    )
    return join_request


async def remove_member(db: AsyncSession, context: Dict, target_user_id: int) -> None:
    """
    Remove an accepted member from the organization.

    Raises:
        ForbiddenError: Self-removal, or a non-admin removing an admin
        NotFoundError: Target has no accepted request in the organization
    """
    organization_id = context["organization_id"]
    actor_id = context["user"].id

    if target_user_id == actor_id:
        raise ForbiddenError("You cannot remove yourself from the company")

    join_request = await _accepted_request(db, organization_id, target_user_id)
    if not join_request:
        raise NotFoundError("Member not found")

    current_role = await resolve_effective_role(db, organization_id, target_user_id)
    if not can_manage_member(context["role"], current_role):
        raise ForbiddenError("Only admins can remove an admin")

    target = await _get_user_or_404(db, target_user_id)

    async with storage_errors("Failed to remove member", db=db, organization_id=organization_id, user_id=target_user_id):
        await db.execute(
            delete(JoinRequest).where(
                JoinRequest.organization_id == organization_id,
                JoinRequest.user_id == target_user_id,
                JoinRequest.status == JoinRequestStatus.ACCEPTED.value,
            )
        )
        await db.execute(
            delete(OrganizationMember).where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.user_id == target_user_id,
            )
        )
        await _drop_admin(db, organization_id, target_user_id)
        await db.commit()

    async def write():
        await affiliation.clear_affiliation(db, target, organization_id, drop_accepted=True)

    await _write_mirror(db, "remove", write, refresh=(target,))

    logger.info(f"membership.removed org={organization_id} user={target_user_id} by={actor_id}")


# ==================== Organizations ====================

async def _name_taken(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> bool:
    query = select(Organization.id).where(func.lower(Organization.name) == name.lower())
    if exclude_id is not None:
        query = query.where(Organization.id != exclude_id)
    result = await db.execute(query)
    return result.first() is not None


async def create_organization(db: AsyncSession, user: User, data: OrganizationCreate) -> Organization:
    """
    Create a company with the caller as its founding admin.

    The creator gets an admin row, a members row and an accepted join
    request, so the membership invariants hold from creation.

    Raises:
        ForbiddenError: Caller's global role is not recruiter
        ConflictError: Caller already belongs to a company, or the name is taken
    """
    if user.role != GlobalRole.RECRUITER.value:
        raise ForbiddenError("Only recruiters can create a company")

    membership = await db.execute(select(OrganizationMember.id).where(OrganizationMember.user_id == user.id))
    if membership.first():
        raise ConflictError("You already belong to a company")

    if await _name_taken(db, data.name):
        raise ConflictError("A company with this name already exists")

    async with storage_errors("Failed to create company", db=db, user_id=user.id):
        organization = Organization(**data.model_dump(), created_by=user.id)
        db.add(organization)
        await db.flush()

        now = _now()
        db.add(OrganizationAdmin(organization_id=organization.id, user_id=user.id))
        db.add(OrganizationMember(
            organization_id=organization.id,
            user_id=user.id,
            role=CompanyRole.ADMIN.value,
            joined_at=now,
        ))
        join_request = JoinRequest(
            organization_id=organization.id,
            user_id=user.id,
            role_title=CompanyRole.ADMIN.value,
            status=JoinRequestStatus.ACCEPTED.value,
            origin=RequestOrigin.REQUEST.value,
            requested_at=now,
            resolved_at=now,
        )
        db.add(join_request)
        await db.commit()
        await db.refresh(organization)

    async def write():
        await affiliation.mirror_new_request(db, join_request)
        affiliation.apply_affiliation(user, organization.id, CompanyRole.ADMIN.value)

    await _write_mirror(db, "create", write, refresh=(organization, user))

    logger.info(f"membership.company_created org={organization.id} user={user.id}")
    return organization


async def update_organization(db: AsyncSession, context: Dict, data: OrganizationUpdate) -> Organization:
    organization = context["organization"]
    changes = data.model_dump(exclude_unset=True)

    if "name" in changes and changes["name"] and await _name_taken(db, changes["name"], exclude_id=organization.id):
        raise ConflictError("A company with this name already exists")

    async with storage_errors("Failed to update company", db=db, organization_id=organization.id):
        for field, value in changes.items():
            setattr(organization, field, value)
        await db.commit()
        await db.refresh(organization)

    logger.info(f"membership.company_updated org={organization.id} fields={','.join(sorted(changes))}")
    return organization


async def delete_organization(db: AsyncSession, context: Dict) -> None:
    """
    Delete a company with all of its membership state.

    Users affiliated with the company fall back to candidate in the mirror write.
    """
    organization = context["organization"]
    organization_id = organization.id
    actor_id = context["user"].id

    affiliated = await db.execute(select(User).where(User.company_id == organization_id))
    affiliated = affiliated.scalars().all()

    async with storage_errors("Failed to delete company", db=db, organization_id=organization_id):
        await db.execute(delete(JoinRequest).where(JoinRequest.organization_id == organization_id))
        await db.execute(delete(OrganizationMember).where(OrganizationMember.organization_id == organization_id))
        await db.execute(delete(OrganizationAdmin).where(OrganizationAdmin.organization_id == organization_id))
        await db.delete(organization)
        await db.commit()

    async def write():
        await db.execute(delete(UserJoinRequest).where(UserJoinRequest.organization_id == organization_id))
        for user in affiliated:
            await affiliation.clear_affiliation(db, user, organization_id)

    await _write_mirror(db, "delete", write, refresh=affiliated)

    logger.info(
        f"membership.company_deleted org={organization_id} by={actor_id} "
        f"affiliated={len(affiliated)}"
    )


async def search_organizations(db: AsyncSession, q: Optional[str] = None, skip: int = 0, limit: int = 20) -> List[Organization]:
    query = select(Organization)
    if q:
        pattern = f"%{q.lower()}%"
        query = query.where(or_(
            func.lower(Organization.name).like(pattern),
            func.lower(Organization.industry).like(pattern),
            func.lower(Organization.location).like(pattern),
        ))
    query = query.order_by(Organization.name).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


async def get_my_organization(db: AsyncSession, user: User) -> Optional[Organization]:
    """The organization the caller is a member of, read from the organization side."""
    result = await db.execute(
        select(Organization)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(OrganizationMember.user_id == user.id)
        .order_by(OrganizationMember.joined_at, OrganizationMember.id)
    )
    return result.scalars().first()


# ==================== Audit ====================

async def find_membership_inconsistencies(db: AsyncSession, organization_id: int) -> List[str]:
    """
    Check the membership invariants of one organization.

    Returns:
        Human-readable violations; empty when consistent
    """
    violations = []

    admins = await db.execute(
        select(OrganizationAdmin.user_id).where(OrganizationAdmin.organization_id == organization_id)
    )
    admin_ids = set(admins.scalars().all())

    members = await db.execute(
        select(OrganizationMember).where(OrganizationMember.organization_id == organization_id)
    )
    members = {m.user_id: m.role for m in members.scalars().all()}

    accepted = await db.execute(
        select(JoinRequest).where(
            JoinRequest.organization_id == organization_id,
            JoinRequest.status == JoinRequestStatus.ACCEPTED.value,
        )
    )
    accepted_by_user: Dict[int, List[str]] = {}
    for jr in accepted.scalars().all():
        accepted_by_user.setdefault(jr.user_id, []).append(jr.role_title)

    for user_id in sorted(admin_ids):
        if members.get(user_id) != CompanyRole.ADMIN.value:
            violations.append(f"admin {user_id} has no admin members row")

    for user_id, role in sorted(members.items()):
        roles = accepted_by_user.get(user_id, [])
        if roles != [role]:
            violations.append(f"member {user_id} with role '{role}' has accepted requests {roles}")
        if role == CompanyRole.ADMIN.value and user_id not in admin_ids:
            violations.append(f"member {user_id} has role 'admin' but is not in the admin set")

    if accepted_by_user:
        users = await db.execute(select(User).where(User.id.in_(list(accepted_by_user))))
        for user in users.scalars().all():
            roles = accepted_by_user[user.id]
            if user.id not in members:
                violations.append(f"accepted request of user {user.id} has no members row")
            if user.company_id != organization_id or user.company_role not in roles:
                violations.append(
                    f"user {user.id} mirror points at company={user.company_id} role={user.company_role}"
                )
            elif user.role != derive_global_role(user.company_role).value:
                violations.append(f"user {user.id} global role '{user.role}' does not match '{user.company_role}'")

    return violations
