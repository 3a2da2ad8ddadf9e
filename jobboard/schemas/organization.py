"""
Pydantic schemas for Organization entities.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

COMPANY_SIZE_PATTERN = r"^(1-10|11-50|51-200|201-500|501-1000|1000\+)$"


def _current_year() -> int:
    return datetime.now(timezone.utc).year


class OrganizationBase(BaseModel):
    """Base schema for organization with common fields"""
    name: str = Field(..., min_length=2, max_length=100)
    industry: str = Field(..., min_length=2, max_length=100)
    size: Optional[str] = Field(None, pattern=COMPANY_SIZE_PATTERN)
    location: Optional[str] = Field(None, max_length=100)
    website: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    founded_year: Optional[int] = Field(None, ge=1950)
    description: Optional[str] = None

    @field_validator("founded_year")
    @classmethod
    def founded_year_not_in_future(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value > _current_year():
            raise ValueError("founded_year cannot be in the future")
        return value


class OrganizationCreate(OrganizationBase):
    """Schema for creating a new organization"""
    pass


class OrganizationUpdate(BaseModel):
    """Schema for updating an organization"""
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    industry: Optional[str] = Field(None, min_length=2, max_length=100)
    size: Optional[str] = Field(None, pattern=COMPANY_SIZE_PATTERN)
    location: Optional[str] = Field(None, max_length=100)
    website: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    founded_year: Optional[int] = Field(None, ge=1950)
    description: Optional[str] = None


class OrganizationOut(OrganizationBase):
    """Schema for organization output"""
    id: int
    verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrganizationSummary(BaseModel):
    """Compact organization reference used in listings"""
    id: int
    name: str
    industry: Optional[str] = None
    location: Optional[str] = None

    class Config:
        from_attributes = True
