"""
Call model for storing end-of-call reports from the voice platform.
"""
import enum
from sqlalchemy import Column, ForeignKey, Integer, JSON, String, Text

from travelvoice.models.base import Base

class CallStatus(str, enum.Enum):
    """Call status enumeration."""
    QUEUED = "queued"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"

class Call(Base):
    """
    A single call handled by one of an organization's agents.
    """
    __tablename__ = "calls"

    # Tenant and agent
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    agent_id = Column(String(36), ForeignKey("agents.id", ondelete="SET NULL"), nullable=True, index=True)

    # Voice platform
    vapi_call_id = Column(String(100), nullable=True, index=True)
    status = Column(String(20), default=CallStatus.COMPLETED.value, index=True)
    ended_reason = Column(String(100), nullable=True)

    # Call details
    duration_seconds = Column(Integer, nullable=False, default=0)
    summary = Column(Text, nullable=True)
    recording_url = Column(String(1000), nullable=True)
    transcript = Column(JSON, nullable=True)  # message list
    extracted_data = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Call(id={self.id}, vapi_call_id={self.vapi_call_id}, status={self.status})>"
