"""
Pydantic schemas for users and their affiliation fields.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from jobboard.core.permissions import CompanyRole, GlobalRole


class UserCreate(BaseModel):
    """Schema for registering a new account"""
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    role: GlobalRole = GlobalRole.CANDIDATE


class UserOut(BaseModel):
    """Public user profile with affiliation"""
    id: int
    name: Optional[str] = None
    email: EmailStr
    role: GlobalRole
    company_id: Optional[int] = None
    company_role: Optional[CompanyRole] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GlobalRoleUpdate(BaseModel):
    """Schema for choosing the account-wide role"""
    role: GlobalRole
