from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.orm import relationship
from jobboard.db.base import Base


class Organization(Base):
    """
    Company/employer entity.

    Owns the canonical membership state for itself:
    - admins: users with full organizational authority
    - members: cache of accepted join requests with their role
    - join_requests: every pending/resolved request, kept as history
    """
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True, index=True)
    industry = Column(String(100), nullable=False)
    size = Column(String(20), nullable=True)  # '1-10', '11-50', ..., '1000+'
    location = Column(String(100), nullable=True)
    website = Column(String(255), nullable=True)
    email = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    founded_year = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    verified = Column(Boolean, default=False)
    created_by = Column(Integer, nullable=True)  # user id of the founding admin
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    admins = relationship("OrganizationAdmin", back_populates="organization", cascade="all, delete-orphan", passive_deletes=True)
    members = relationship("OrganizationMember", back_populates="organization", cascade="all, delete-orphan", passive_deletes=True)
    join_requests = relationship("JoinRequest", back_populates="organization", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Organization(id={self.id}, name='{self.name}')>"
