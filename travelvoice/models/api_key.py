"""
API key models.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text

from travelvoice.models.base import Base, as_utc, utcnow


class ApiKey(Base):
    """
    A hashed bearer credential for programmatic access.
    The raw key is never stored.
    """
    __tablename__ = "api_keys"

    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    key_prefix = Column(String(20), nullable=False)
    key_hint = Column(String(8), nullable=False)
    key_hash = Column(String(64), nullable=False, unique=True, index=True)
    scopes = Column(JSON, nullable=False, default=list)

    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    # Usage
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    last_used_ip = Column(String(64), nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and as_utc(self.expires_at) <= utcnow()

    def __repr__(self) -> str:
        return f"<ApiKey(id={self.id}, name={self.name}, prefix={self.key_prefix})>"


class ApiKeyUsageLog(Base):
    """One row per successfully authenticated API request."""
    __tablename__ = "api_key_usage_logs"

    api_key_id = Column(
        String(36), ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_id = Column(String(36), nullable=False, index=True)
    endpoint = Column(String(500), nullable=True)
    method = Column(String(10), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
