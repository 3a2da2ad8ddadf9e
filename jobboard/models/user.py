from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from jobboard.db.base import Base


class User(Base):
    """
    Account holder: job seeker or recruiter.

    The company fields are the user-side mirror of the organization's
    membership state; the organization tables stay authoritative.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), index=True)
    email = Column(String(100), unique=True, index=True, nullable=False)
    password = Column(String(150), nullable=False)

    # Global role: 'candidate' or 'recruiter', derived from company_role when affiliated
    role = Column(String(20), nullable=False, default="candidate")

    # Affiliation mirror (zero or one organization at a time)
    company_id = Column(Integer, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True)
    company_role = Column(String(20), nullable=True)  # 'admin', 'recruiter', 'employee'

    token_version = Column(Integer, default=1, nullable=False)  # invalidate old JWTs
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    company = relationship("Organization", foreign_keys=[company_id])
    company_join_requests = relationship(
        "UserJoinRequest",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}', company_id={self.company_id})>"
