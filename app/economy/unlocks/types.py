from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class UnlockMethod(str, Enum):
    FREE = "free"
    AD = "ad"
    COINS = "coins"
    PREMIUM = "premium"


@dataclass(slots=True)
class UnlockResult:
    episode_id: str
    unlock_method: UnlockMethod
    coins_deducted: int
    balance: int
    unlocked_at: datetime


@dataclass(slots=True)
class AdViewResult:
    coins_earned: int
    ads_watched_today: int
    max_ads_per_day: int
    balance: int
