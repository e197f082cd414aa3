from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class Plan:
    plan_id: str
    title: str
    monthly_price: float
    features: List[str] = field(default_factory=list)


PLANS = {
    "starter": Plan(
        "starter", "Starter", 25.00,
        ["Up to 5 AI conversations", "Basic analytics", "Email support"],
    ),
    "pro": Plan(
        "pro", "Pro", 99.99,
        ["Unlimited AI conversations", "Advanced analytics", "Priority support", "Custom AI training"],
    ),
    "enterprise": Plan(
        "enterprise", "Enterprise", 299.99,
        ["Everything in Pro", "Dedicated account manager", "SSO authentication",
         "Custom integrations", "24/7 phone support"],
    ),
}

PLAN_IDS = tuple(PLANS)


def is_valid_plan(plan_id) -> bool:
    return plan_id in PLANS
