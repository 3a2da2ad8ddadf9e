from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from jobboard.db.base import Base


class OrganizationMember(Base):
    """
    Accepted member of an organization with their company role.

    Derived cache of the accepted join request for the same user; the
    join request stays the source of truth for the role.
    """
    __tablename__ = "organization_members"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="employee")  # 'admin', 'recruiter', 'employee'
    joined_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Relationships
    organization = relationship("Organization", back_populates="members")
    user = relationship("User")

    # Constraints
    __table_args__ = (
        UniqueConstraint('organization_id', 'user_id', name='uq_organization_member'),
    )

    def __repr__(self):
        return f"<OrganizationMember(org_id={self.organization_id}, user_id={self.user_id}, role='{self.role}')>"


class OrganizationAdmin(Base):
    """
    Admin set of an organization.

    Every row must have a matching OrganizationMember with role 'admin'.
    """
    __tablename__ = "organization_admins"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    organization = relationship("Organization", back_populates="admins")

    __table_args__ = (
        UniqueConstraint('organization_id', 'user_id', name='uq_organization_admin'),
    )

    def __repr__(self):
        return f"<OrganizationAdmin(org_id={self.organization_id}, user_id={self.user_id})>"
