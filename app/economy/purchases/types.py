from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class CoinPurchaseResult:
    coins_added: int
    balance: int
    platform: str
    product_id: str
    simulated: bool
    idempotent_replay: bool
