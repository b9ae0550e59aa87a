from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

HISTORY_DEFAULT_LIMIT = 50
HISTORY_MAX_LIMIT = 100


class TransactionType(str, Enum):
    EARN = "earn"
    SPEND = "spend"
    REWARD = "reward"
    PURCHASE = "purchase"
    COMPENSATION = "compensation"


class TransactionReason:
    EPISODE_UNLOCK = "episode_unlock"
    EPISODE_UNLOCK_COMPENSATION = "episode_unlock_compensation"
    REWARDED_AD = "rewarded_ad"

    @staticmethod
    def iap_purchase(product_id: str, platform: str) -> str:
        return f"iap_purchase_{product_id}_{platform}"


@dataclass(slots=True)
class BalanceReconciliation:
    user_id: str
    cached: int
    ledger_sum: int

    @property
    def drift(self) -> int:
        return self.cached - self.ledger_sum
