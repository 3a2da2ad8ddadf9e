"""
Role model for company membership and role-based access control (RBAC).

Defines organization-scoped roles, global account roles, join request
states, the company action permission matrix and the rule that derives a
user's global role from their company role.
"""

from enum import Enum
from typing import Dict, Optional, Set, Union


class CompanyRole(str, Enum):
    """Roles a user can hold inside an organization"""
    ADMIN = "admin"          # Full control, can manage other admins
    RECRUITER = "recruiter"  # Posts jobs, reviews applicants, manages members
    EMPLOYEE = "employee"    # Baseline membership, no management rights


class GlobalRole(str, Enum):
    """Account-wide roles"""
    CANDIDATE = "candidate"
    RECRUITER = "recruiter"


class JoinRequestStatus(str, Enum):
    """Join request lifecycle: pending -> accepted | rejected"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RequestOrigin(str, Enum):
    """Who created the join request"""
    REQUEST = "request"  # the user asked to join
    INVITE = "invite"    # the organization invited the user


class CompanyAction(str, Enum):
    """Company-scoped actions gated by the caller's effective role"""
    VIEW_COMPANY = "company:view"
    UPDATE_COMPANY = "company:update"
    DELETE_COMPANY = "company:delete"
    LIST_JOIN_REQUESTS = "join_request:list"
    HANDLE_JOIN_REQUEST = "join_request:handle"
    INVITE = "member:invite"
    LIST_MEMBERS = "member:list"
    UPDATE_MEMBER_ROLE = "member:update_role"
    REMOVE_MEMBER = "member:remove"
    AUDIT_MEMBERSHIP = "member:audit"


RESOLVED_STATUSES = (JoinRequestStatus.ACCEPTED, JoinRequestStatus.REJECTED)
MANAGER_ROLES = (CompanyRole.ADMIN, CompanyRole.RECRUITER)
ALL_COMPANY_ROLES = tuple(CompanyRole)


_MANAGER_ACTIONS: Set[CompanyAction] = {
    CompanyAction.VIEW_COMPANY,
    CompanyAction.LIST_JOIN_REQUESTS,
    CompanyAction.HANDLE_JOIN_REQUEST,
    CompanyAction.INVITE,
    CompanyAction.LIST_MEMBERS,
    CompanyAction.UPDATE_MEMBER_ROLE,
    CompanyAction.REMOVE_MEMBER,
}

# Permission matrix for company roles
ROLE_PERMISSIONS: Dict[CompanyRole, Set[CompanyAction]] = {
    CompanyRole.ADMIN: _MANAGER_ACTIONS | {
        CompanyAction.UPDATE_COMPANY,
        CompanyAction.DELETE_COMPANY,
        CompanyAction.AUDIT_MEMBERSHIP,
    },
    CompanyRole.RECRUITER: set(_MANAGER_ACTIONS),
    CompanyRole.EMPLOYEE: {
        CompanyAction.VIEW_COMPANY,
    },
}


def _as_company_role(role: Union[CompanyRole, str, None]) -> Optional[CompanyRole]:
    if role is None:
        return None
    return CompanyRole(role)


def has_permission(role: Union[CompanyRole, str, None], action: CompanyAction) -> bool:
    """
    Check if a company role may perform an action.

    Args:
        role: Effective company role (None for non-members)
        action: Company action being performed

    Returns:
        True if permission is granted, False otherwise
    """
    company_role = _as_company_role(role)
    if company_role is None:
        return False
    return action in ROLE_PERMISSIONS.get(company_role, set())


def roles_with_permission(action: CompanyAction) -> tuple:
    """All company roles allowed to perform an action, in declaration order."""
    return tuple(role for role in CompanyRole if action in ROLE_PERMISSIONS[role])


def can_assign_role(actor_role: Union[CompanyRole, str, None], target_role: Union[CompanyRole, str]) -> bool:
    """
    Only an admin may grant the admin role; admins and recruiters may grant
    recruiter or employee.
    """
    actor = _as_company_role(actor_role)
    if actor is None:
        return False
    if CompanyRole(target_role) == CompanyRole.ADMIN:
        return actor == CompanyRole.ADMIN
    return actor in MANAGER_ROLES


def can_manage_member(actor_role: Union[CompanyRole, str, None], member_role: Union[CompanyRole, str]) -> bool:
    """
    Whether the actor may change the role of, or remove, a member currently
    holding member_role. Admins can only be managed by admins.
    """
    actor = _as_company_role(actor_role)
    if actor is None or actor not in MANAGER_ROLES:
        return False
    if CompanyRole(member_role) == CompanyRole.ADMIN:
        return actor == CompanyRole.ADMIN
    return True


def derive_global_role(
    company_role: Union[CompanyRole, str, None],
    chosen: Union[GlobalRole, str, None] = None
) -> GlobalRole:
    """
    Derive the account-wide role from the company role.

    - admin / recruiter -> recruiter
    - employee          -> candidate
    - no affiliation    -> the user's own choice, candidate by default

    Args:
        company_role: Role inside the user's organization, None when unaffiliated
        chosen: Role picked by the user, only honoured without an affiliation

    Returns:
        The global role the user must hold
    """
    role = _as_company_role(company_role)
    if role in MANAGER_ROLES:
        return GlobalRole.RECRUITER
    if role == CompanyRole.EMPLOYEE:
        return GlobalRole.CANDIDATE
    if chosen is None:
        return GlobalRole.CANDIDATE
    return GlobalRole(chosen)
