from __future__ import annotations

import pytest

from app.economy.entitlements.constants import AD_REWARD, MAX_ADS_PER_DAY, UNLOCK_COST
from app.economy.entitlements.rules import (
    ad_limit_exceeded,
    ad_reward,
    can_unlock,
    coins_shortfall,
    unlock_cost,
)


def test_reference_economy_constants() -> None:
    assert UNLOCK_COST == 2
    assert AD_REWARD == 3
    assert MAX_ADS_PER_DAY == 10


def test_unlock_cost_is_zero_for_premium() -> None:
    assert unlock_cost(True) == 0
    assert unlock_cost(False) == UNLOCK_COST


@pytest.mark.parametrize(
    ("balance", "is_premium", "expected"),
    [
        (0, True, True),
        (0, False, False),
        (1, False, False),
        (2, False, True),
        (50, False, True),
    ],
)
def test_can_unlock(balance: int, is_premium: bool, expected: bool) -> None:
    assert can_unlock(balance, is_premium) is expected


def test_coins_shortfall_never_negative() -> None:
    assert coins_shortfall(0, is_premium=False) == 2
    assert coins_shortfall(1, is_premium=False) == 1
    assert coins_shortfall(9, is_premium=False) == 0
    assert coins_shortfall(0, is_premium=True) == 0


def test_ad_limit_boundary() -> None:
    assert ad_limit_exceeded(9, MAX_ADS_PER_DAY) is False
    assert ad_limit_exceeded(10, MAX_ADS_PER_DAY) is True
    assert ad_limit_exceeded(11) is True


def test_ad_reward_is_fixed() -> None:
    assert ad_reward() == 3
