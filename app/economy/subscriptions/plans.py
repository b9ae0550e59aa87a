from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from app.economy.errors import UnknownProductError
from app.economy.time import add_months, add_years


class SubscriptionPlan(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True, slots=True)
class PlanSpec:
    plan: SubscriptionPlan
    name: str
    price: float
    product_id: str
    period: str
    benefits: tuple[str, ...]


_BASE_BENEFITS = ("Unlimited episodes", "No ads", "Early access")

PLANS: dict[SubscriptionPlan, PlanSpec] = {
    SubscriptionPlan.WEEKLY: PlanSpec(
        plan=SubscriptionPlan.WEEKLY,
        name="Weekly",
        price=4.99,
        product_id="com.premiumdramastream.premium.weekly",
        period="week",
        benefits=_BASE_BENEFITS,
    ),
    SubscriptionPlan.MONTHLY: PlanSpec(
        plan=SubscriptionPlan.MONTHLY,
        name="Monthly",
        price=14.99,
        product_id="com.premiumdramastream.premium.monthly",
        period="month",
        benefits=(*_BASE_BENEFITS, "Download for offline"),
    ),
    SubscriptionPlan.YEARLY: PlanSpec(
        plan=SubscriptionPlan.YEARLY,
        name="Yearly",
        price=99.99,
        product_id="com.premiumdramastream.premium.yearly",
        period="year",
        benefits=(*_BASE_BENEFITS, "Download for offline", "Exclusive content"),
    ),
}


def list_plans() -> list[PlanSpec]:
    return list(PLANS.values())


def resolve_plan(product_id: str) -> SubscriptionPlan:
    for spec in PLANS.values():
        if spec.product_id == product_id:
            return spec.plan
    for plan in SubscriptionPlan:
        if plan.value in product_id:
            return plan
    raise UnknownProductError


def compute_expires_at(plan: SubscriptionPlan, *, now_utc: datetime) -> datetime:
    if plan == SubscriptionPlan.WEEKLY:
        return now_utc + timedelta(days=7)
    if plan == SubscriptionPlan.MONTHLY:
        return add_months(now_utc, 1)
    return add_years(now_utc, 1)
