"""
User model for authentication and authorization.
"""
import enum
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String

from travelvoice.models.base import Base

class UserRole(str, enum.Enum):
    """User roles enumeration."""
    ADMIN = "admin"
    CUSTOMER = "customer"

class User(Base):
    """
    User model representing dashboard users of an organization.
    """
    __tablename__ = "users"

    # Identification
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)

    # Authentication
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, index=True)
    last_login = Column(DateTime(timezone=True), nullable=True)

    # Roles and permissions
    role = Column(String(20), default=UserRole.CUSTOMER.value, nullable=False, index=True)

    # Tenant
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
