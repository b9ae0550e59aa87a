from app.db.models.ad_view_days import AdViewDay
from app.db.models.coin_transactions import CoinTransaction
from app.db.models.processed_receipts import ProcessedReceipt
from app.db.models.subscriptions import Subscription
from app.db.models.unlocked_episodes import UnlockedEpisode
from app.db.models.users import User

__all__ = [
    "AdViewDay",
    "CoinTransaction",
    "ProcessedReceipt",
    "Subscription",
    "UnlockedEpisode",
    "User",
]
