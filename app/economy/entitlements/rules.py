from __future__ import annotations

from app.economy.entitlements.constants import AD_REWARD, MAX_ADS_PER_DAY, UNLOCK_COST


def unlock_cost(is_premium: bool) -> int:
    if is_premium:
        return 0
    return UNLOCK_COST


def can_unlock(balance: int, is_premium: bool) -> bool:
    return is_premium or balance >= unlock_cost(False)


def coins_shortfall(balance: int, *, is_premium: bool) -> int:
    return max(0, unlock_cost(is_premium) - balance)


def ad_limit_exceeded(ads_watched_today: int, max_per_day: int = MAX_ADS_PER_DAY) -> bool:
    return ads_watched_today >= max_per_day


def ad_reward() -> int:
    return AD_REWARD
