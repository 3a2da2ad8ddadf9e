from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import declared_attr, relationship
from jobboard.db.base import Base


class JoinRequestFields:
    """
    Shape shared by the organization's join requests and the user's mirror.

    Attributes:
        organization_id: Organization the request targets
        user_id: User who would become a member
        role_title: Requested company role ('admin', 'recruiter', 'employee')
        status: 'pending', 'accepted' or 'rejected'
        origin: 'request' (user asked) or 'invite' (organization invited)
    """

    role_title = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    origin = Column(String(20), nullable=False, default="request")
    requested_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    @declared_attr
    def organization_id(cls):
        return Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)

    @declared_attr
    def user_id(cls):
        return Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    @property
    def is_pending(self):
        return self.status == "pending"

    @property
    def is_invite(self):
        return self.origin == "invite"


class JoinRequest(JoinRequestFields, Base):
    """
    Canonical join request owned by the organization.

    Transitions exactly once from 'pending' to 'accepted' or 'rejected'.
    A rejected request stays as history unless the purge policy is active.
    """
    __tablename__ = "join_requests"

    id = Column(Integer, primary_key=True, index=True)
    invited_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    organization = relationship("Organization", back_populates="join_requests")

    def __repr__(self):
        return (
            f"<JoinRequest(id={self.id}, org_id={self.organization_id}, user_id={self.user_id}, "
            f"role='{self.role_title}', status='{self.status}')>"
        )


class UserJoinRequest(JoinRequestFields, Base):
    """
    The user's private mirror of a join request.

    Not authoritative: rebuilt from JoinRequest whenever the two disagree.
    """
    __tablename__ = "user_join_requests"

    id = Column(Integer, primary_key=True, index=True)
    join_request_id = Column(Integer, ForeignKey("join_requests.id", ondelete="SET NULL"), nullable=True, index=True)

    user = relationship("User", back_populates="company_join_requests")

    def __repr__(self):
        return (
            f"<UserJoinRequest(id={self.id}, user_id={self.user_id}, org_id={self.organization_id}, "
            f"status='{self.status}')>"
        )
