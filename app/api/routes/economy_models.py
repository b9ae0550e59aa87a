from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class BalanceResponse(BaseModel):
    user_id: str
    balance: int


class CoinTransactionResponse(BaseModel):
    id: int
    amount: int
    type: str
    reason: str | None = None
    balance_before: int
    balance_after: int
    created_at: datetime


class CoinHistoryResponse(BaseModel):
    user_id: str
    limit: int = Field(ge=1, le=100)
    items: list[CoinTransactionResponse]


class EarnCoinsRequest(BaseModel):
    amount: int = Field(gt=0, le=10_000)
    reason: str | None = Field(default=None, min_length=1, max_length=96)


class EarnCoinsResponse(BaseModel):
    transaction: CoinTransactionResponse
    balance: int


class VerifyPurchaseRequest(BaseModel):
    product_id: str = Field(min_length=1, max_length=128)
    purchase_token: str = Field(min_length=1, max_length=1024)
    platform: str = Field(min_length=1, max_length=16)


class VerifyPurchaseResponse(BaseModel):
    coins_added: int
    balance: int
    platform: str
    product_id: str
    simulated: bool
    idempotent_replay: bool


class UnlockRequest(BaseModel):
    method: Literal["free", "ad", "coins", "premium"] | None = None


class UnlockResponse(BaseModel):
    episode_id: str
    unlock_method: str
    coins_deducted: int
    balance: int
    unlocked_at: datetime


class UnlockedEpisodeResponse(BaseModel):
    episode_id: str
    unlock_method: str
    unlocked_at: datetime


class UnlockedListResponse(BaseModel):
    items: list[UnlockedEpisodeResponse]


class UnlockedCheckResponse(BaseModel):
    episode_id: str
    unlocked: bool


class AdWatchResponse(BaseModel):
    coins_earned: int
    ads_watched_today: int
    max_ads_per_day: int
    balance: int


class PlanResponse(BaseModel):
    id: str
    name: str
    price: float
    product_id: str
    period: str
    benefits: list[str]


class PlansResponse(BaseModel):
    plans: list[PlanResponse]


class SubscriptionResponse(BaseModel):
    id: UUID
    plan: str
    platform: str
    product_id: str
    status: str
    expires_at: datetime
    renews_at: datetime | None = None
    purchased_at: datetime
    cancelled_at: datetime | None = None


class BillingStatusResponse(BaseModel):
    subscribed: bool
    is_premium: bool
    subscription: SubscriptionResponse | None = None


class BillingVerifyRequest(BaseModel):
    platform: str = Field(min_length=1, max_length=16)
    product_id: str = Field(min_length=1, max_length=128)
    purchase_token: str = Field(min_length=1, max_length=1024)
    receipt_data: str | None = Field(default=None, min_length=1)
    plan: Literal["weekly", "monthly", "yearly"] | None = None


class BillingVerifyResponse(BaseModel):
    entitled: bool
    expires_at: datetime
    days_remaining: int
    idempotent_replay: bool
    subscription: SubscriptionResponse


class BillingCancelResponse(BaseModel):
    subscription: SubscriptionResponse
    message: str


class UpsertUserRequest(BaseModel):
    display_name: str | None = Field(default=None, max_length=128)


class UserResponse(BaseModel):
    id: str
    display_name: str | None = None
    coin_balance: int
    is_premium: bool
    premium_expires_at: datetime | None = None
    created: bool


class ReconcileResponse(BaseModel):
    user_id: str
    cached: int
    ledger_sum: int
    drift: int
