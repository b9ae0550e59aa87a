from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    EXPIRED = "expired"


@dataclass(slots=True)
class SubscriptionView:
    id: UUID
    plan: str
    platform: str
    product_id: str
    status: SubscriptionStatus
    expires_at: datetime
    renews_at: datetime | None
    purchased_at: datetime
    cancelled_at: datetime | None


@dataclass(slots=True)
class SubscriptionStatusResult:
    subscribed: bool
    is_premium: bool
    subscription: SubscriptionView | None


@dataclass(slots=True)
class SubscriptionActivationResult:
    subscription: SubscriptionView
    entitled: bool
    expires_at: datetime
    days_remaining: int
    idempotent_replay: bool
