"""
Pydantic schemas for Organization Members.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel

from jobboard.core.permissions import CompanyRole


class MemberRoleUpdate(BaseModel):
    """Schema for changing a member's company role"""
    role_title: CompanyRole


class OrganizationMemberOut(BaseModel):
    """Accepted member with user details"""
    user_id: int
    name: Optional[str] = None
    email: Optional[str] = None
    role: CompanyRole
    joined_at: Optional[datetime] = None


class MemberList(BaseModel):
    success: bool = True
    count: int
    members: List[OrganizationMemberOut]


class MyCompanyRoleOut(BaseModel):
    """
    Caller's standing in an organization.

    role is a company role, or 'pending' while a join request awaits a decision.
    """
    organization_id: int
    role: str
    message: Optional[str] = None


class MembershipAudit(BaseModel):
    organization_id: int
    consistent: bool
    violations: List[str]
