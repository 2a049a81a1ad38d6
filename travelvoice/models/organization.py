"""
Organization model, the tenant boundary for every other table.
"""
from sqlalchemy import Column, Integer, String

from travelvoice.models.base import Base


class Organization(Base):
    """
    A customer organization with its subscription state and remaining call time.
    """
    __tablename__ = "organizations"

    name = Column(String(255), nullable=False)

    # Subscription
    subscription_plan = Column(String(50), nullable=False, default="free")
    subscription_status = Column(String(50), nullable=True)
    time_remaining_seconds = Column(Integer, nullable=False, default=0)

    # Billing
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True)

    @property
    def has_active_subscription(self) -> bool:
        return self.subscription_status in ("active", "trialing")

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name}, plan={self.subscription_plan})>"
