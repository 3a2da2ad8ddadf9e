"""
Pydantic schemas for join requests and invitations.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

from jobboard.core.permissions import CompanyRole, JoinRequestStatus, RequestOrigin


class JoinRequestCreate(BaseModel):
    """User asks to join an organization with a role"""
    role_title: CompanyRole


class InvitationCreate(BaseModel):
    """Organization invites a user with a role"""
    user_id: int = Field(..., gt=0)
    role_title: CompanyRole


class JoinRequestDecision(BaseModel):
    """Resolution of a pending request"""
    status: Literal["accepted", "rejected"]


class JoinRequestOut(BaseModel):
    """Organization-side join request"""
    id: int
    organization_id: int
    user_id: int
    role_title: CompanyRole
    status: JoinRequestStatus
    origin: RequestOrigin
    invited_by: Optional[int] = None
    requested_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JoinRequestWithUser(JoinRequestOut):
    """Join request with requesting user details"""
    user_name: Optional[str] = None
    user_email: Optional[str] = None


class MyJoinRequestOut(BaseModel):
    """Entry of the caller's own request mirror"""
    id: int
    join_request_id: Optional[int] = None
    organization_id: int
    organization_name: Optional[str] = None
    role_title: CompanyRole
    status: JoinRequestStatus
    origin: RequestOrigin
    requested_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActionResult(BaseModel):
    """Generic success payload"""
    success: bool = True
    message: str
