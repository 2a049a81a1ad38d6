"""
Subscription plans.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from travelvoice.core.config import settings


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    description: str
    price: int
    minutes_included: int
    phone_numbers_included: int
    currency: str = "GBP"
    period: str = "month"
    features: List[str] = field(default_factory=list)

    @property
    def stripe_price_id(self) -> str:
        return {
            "lite": settings.STRIPE_PRICE_ID_LITE,
            "standard": settings.STRIPE_PRICE_ID_STANDARD,
            "professional": settings.STRIPE_PRICE_ID_PROFESSIONAL,
        }.get(self.id, "")

    @property
    def seconds_included(self) -> int:
        return self.minutes_included * 60

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "currency": self.currency,
            "period": self.period,
            "minutesIncluded": self.minutes_included,
            "phoneNumbersIncluded": self.phone_numbers_included,
            "features": list(self.features),
        }


PLANS: Dict[str, Plan] = {
    plan.id: plan
    for plan in (
        Plan(
            id="lite",
            name="Lite",
            description="Basic AI voice features ideal for startup web and phone use",
            price=50,
            minutes_included=200,
            phone_numbers_included=1,
            features=["200 Travel Voice minutes", "Basic voice selection", "Email support"],
        ),
        Plan(
            id="standard",
            name="Standard",
            description="Perfect for growing businesses with increased usage needs",
            price=400,
            minutes_included=1000,
            phone_numbers_included=2,
            features=[
                "1,000 Travel Voice minutes",
                "Premium voice selection",
                "CRM integration",
                "Basic analytics",
            ],
        ),
        Plan(
            id="professional",
            name="Professional",
            description="For enterprises requiring high-volume usage and premium features",
            price=1650,
            minutes_included=5000,
            phone_numbers_included=5,
            features=[
                "5,000 Travel Voice minutes",
                "All premium voices",
                "24/7 priority support",
                "Custom voice training",
            ],
        ),
    )
}


def get_plan(plan_id: Optional[str]) -> Optional[Plan]:
    if not plan_id:
        return None
    return PLANS.get(plan_id.lower())


def phone_numbers_included(plan_id: Optional[str]) -> int:
    plan = get_plan(plan_id)
    return plan.phone_numbers_included if plan else 0
