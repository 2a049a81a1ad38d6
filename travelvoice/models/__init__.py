"""
Database models for Travel Voice.
"""
from .base import Base
from .organization import Organization
from .user import User, UserRole
from .agent import Agent, AgentFile
from .phone_number import PhoneNumber
from .api_key import ApiKey, ApiKeyUsageLog
from .team_invitation import TeamInvitation, InvitationStatus
from .call import Call, CallStatus

__all__ = [
    "Base",
    "Organization",
    "User",
    "UserRole",
    "Agent",
    "AgentFile",
    "PhoneNumber",
    "ApiKey",
    "ApiKeyUsageLog",
    "TeamInvitation",
    "InvitationStatus",
    "Call",
    "CallStatus",
]
