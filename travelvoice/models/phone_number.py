"""
Phone number model.
"""
from sqlalchemy import Column, ForeignKey, String

from travelvoice.models.base import Base


class PhoneNumber(Base):
    """
    A provisioned phone number.

    A number is paid when it carries a Stripe subscription item id and
    included in the plan allowance when that column is null.
    """
    __tablename__ = "phone_numbers"

    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    agent_id = Column(String(36), ForeignKey("agents.id", ondelete="SET NULL"), nullable=True)

    phone_number = Column(String(32), nullable=False, index=True)
    provider = Column(String(50), nullable=False, default="twilio")
    provider_id = Column(String(100), nullable=True)  # voice platform phone number id
    stripe_subscription_item_id = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="active", index=True)

    @property
    def is_paid(self) -> bool:
        return self.stripe_subscription_item_id is not None

    def __repr__(self) -> str:
        return f"<PhoneNumber(id={self.id}, phone_number={self.phone_number}, paid={self.is_paid})>"
