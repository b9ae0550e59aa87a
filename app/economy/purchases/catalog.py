from __future__ import annotations

from dataclasses import dataclass

from app.economy.errors import UnknownProductError


@dataclass(frozen=True, slots=True)
class CoinPackSpec:
    product_id: str
    base_coins: int
    bonus_coins: int

    @property
    def coins(self) -> int:
        return self.base_coins + self.bonus_coins


COIN_PACKS: dict[str, CoinPackSpec] = {
    "com.premiumdramastream.coins.100": CoinPackSpec(
        product_id="com.premiumdramastream.coins.100",
        base_coins=100,
        bonus_coins=0,
    ),
    "com.premiumdramastream.coins.500": CoinPackSpec(
        product_id="com.premiumdramastream.coins.500",
        base_coins=500,
        bonus_coins=50,
    ),
    "com.premiumdramastream.coins.1200": CoinPackSpec(
        product_id="com.premiumdramastream.coins.1200",
        base_coins=1200,
        bonus_coins=200,
    ),
    "com.premiumdramastream.coins.2500": CoinPackSpec(
        product_id="com.premiumdramastream.coins.2500",
        base_coins=2500,
        bonus_coins=500,
    ),
}


def get_coin_pack(product_id: str) -> CoinPackSpec:
    spec = COIN_PACKS.get(product_id)
    if spec is None:
        raise UnknownProductError
    return spec
