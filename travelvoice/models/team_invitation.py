"""
Team invitation model.
"""
import enum
from datetime import timedelta
from sqlalchemy import Column, DateTime, ForeignKey, String

from travelvoice.models.base import Base, as_utc, utcnow


INVITATION_TTL = timedelta(days=7)


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


def default_invitation_expiry():
    return utcnow() + INVITATION_TTL


class TeamInvitation(Base):
    """
    An invitation for an email address to join an organization.
    The token is a bearer capability valid until ``expires_at``.
    """
    __tablename__ = "team_invitations"

    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invited_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    email = Column(String(255), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="customer")
    token = Column(String(128), nullable=False, unique=True, index=True)
    status = Column(String(20), nullable=False, default=InvitationStatus.PENDING.value, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, default=default_invitation_expiry)
    accepted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_expired(self) -> bool:
        return as_utc(self.expires_at) < utcnow()

    def __repr__(self) -> str:
        return f"<TeamInvitation(id={self.id}, email={self.email}, status={self.status})>"
