from app.db.repo.ad_views_repo import AdViewsRepo
from app.db.repo.ledger_repo import LedgerRepo
from app.db.repo.receipts_repo import ReceiptsRepo
from app.db.repo.subscriptions_repo import SubscriptionsRepo
from app.db.repo.unlocks_repo import UnlocksRepo
from app.db.repo.users_repo import UsersRepo

__all__ = [
    "AdViewsRepo",
    "LedgerRepo",
    "ReceiptsRepo",
    "SubscriptionsRepo",
    "UnlocksRepo",
    "UsersRepo",
]
