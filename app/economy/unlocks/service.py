from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.unlocked_episodes import UnlockedEpisode
from app.db.models.users import User
from app.db.repo.ad_views_repo import AdViewsRepo
from app.db.repo.unlocks_repo import UnlocksRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.entitlements.constants import MAX_ADS_PER_DAY
from app.economy.entitlements.rules import (
    ad_limit_exceeded,
    ad_reward,
    can_unlock,
    coins_shortfall,
    unlock_cost,
)
from app.economy.errors import (
    AlreadyUnlockedError,
    DailyLimitExceededError,
    InsufficientCoinsError,
    PremiumIneligibleError,
    UserNotFoundError,
)
from app.economy.ledger.service import LedgerService
from app.economy.ledger.types import TransactionReason, TransactionType
from app.economy.subscriptions.service import SubscriptionService
from app.economy.time import reference_local_date
from app.economy.unlocks.types import AdViewResult, UnlockMethod, UnlockResult

logger = structlog.get_logger(__name__)


class UnlockService:
    @staticmethod
    async def _lock_user(session: AsyncSession, user_id: str) -> User:
        user = await UsersRepo.get_by_id_for_update(session, user_id)
        if user is None:
            raise UserNotFoundError
        return user

    @staticmethod
    async def _insert_grant(
        session: AsyncSession,
        *,
        user_id: str,
        episode_id: str,
        method: UnlockMethod,
        debit_transaction_id: int | None,
        now_utc: datetime,
    ) -> bool:
        try:
            async with session.begin_nested():
                await UnlocksRepo.create(
                    session,
                    grant=UnlockedEpisode(
                        user_id=user_id,
                        episode_id=episode_id,
                        unlock_method=method.value,
                        debit_transaction_id=debit_transaction_id,
                        unlocked_at=now_utc,
                    ),
                )
        except IntegrityError:
            return False
        return True

    @staticmethod
    async def unlock(
        session: AsyncSession,
        *,
        user_id: str,
        episode_id: str,
        requested_method: UnlockMethod | str | None = None,
        now_utc: datetime | None = None,
    ) -> UnlockResult:
        """Grants one episode exactly once.

        Premium users get a ``premium`` grant without touching the ledger; everyone
        else pays ``unlock_cost``. A grant that loses the unique-constraint race after
        its debit is offset by a ``compensation`` credit before ``AlreadyUnlockedError``.
        """
        now_utc = now_utc or datetime.now(timezone.utc)
        if requested_method is not None:
            requested_method = UnlockMethod(requested_method)

        user = await UnlockService._lock_user(session, user_id)
        existing = await UnlocksRepo.get_for_user_episode(session, user_id=user_id, episode_id=episode_id)
        if existing is not None:
            raise AlreadyUnlockedError

        premium_active = await SubscriptionService.is_premium_active(session, user_id=user_id, now_utc=now_utc)
        if premium_active:
            inserted = await UnlockService._insert_grant(
                session,
                user_id=user_id,
                episode_id=episode_id,
                method=UnlockMethod.PREMIUM,
                debit_transaction_id=None,
                now_utc=now_utc,
            )
            if not inserted:
                raise AlreadyUnlockedError
            logger.info(
                "episode_unlocked",
                user_id=user_id,
                episode_id=episode_id,
                unlock_method=UnlockMethod.PREMIUM.value,
                requested_method=requested_method.value if requested_method else None,
                coins_deducted=0,
            )
            return UnlockResult(
                episode_id=episode_id,
                unlock_method=UnlockMethod.PREMIUM,
                coins_deducted=0,
                balance=user.coin_balance,
                unlocked_at=now_utc,
            )

        cost = unlock_cost(False)
        balance = user.coin_balance
        if not can_unlock(balance, False):
            raise InsufficientCoinsError(
                required=cost,
                current=balance,
                shortfall=coins_shortfall(balance, is_premium=False),
            )

        debit = await LedgerService.append_transaction(
            session,
            user_id=user_id,
            amount=-cost,
            tx_type=TransactionType.SPEND,
            reason=TransactionReason.EPISODE_UNLOCK,
            now_utc=now_utc,
        )
        inserted = await UnlockService._insert_grant(
            session,
            user_id=user_id,
            episode_id=episode_id,
            method=UnlockMethod.COINS,
            debit_transaction_id=debit.id,
            now_utc=now_utc,
        )
        if not inserted:
            compensation = await LedgerService.append_transaction(
                session,
                user_id=user_id,
                amount=cost,
                tx_type=TransactionType.COMPENSATION,
                reason=TransactionReason.EPISODE_UNLOCK_COMPENSATION,
                now_utc=now_utc,
            )
            logger.warning(
                "episode_unlock_compensated",
                user_id=user_id,
                episode_id=episode_id,
                debit_transaction_id=debit.id,
                compensation_transaction_id=compensation.id,
            )
            raise AlreadyUnlockedError

        logger.info(
            "episode_unlocked",
            user_id=user_id,
            episode_id=episode_id,
            unlock_method=UnlockMethod.COINS.value,
            requested_method=requested_method.value if requested_method else None,
            coins_deducted=cost,
            balance=debit.balance_after,
        )
        return UnlockResult(
            episode_id=episode_id,
            unlock_method=UnlockMethod.COINS,
            coins_deducted=cost,
            balance=debit.balance_after,
            unlocked_at=now_utc,
        )

    @staticmethod
    async def list_unlocked(session: AsyncSession, *, user_id: str) -> list[UnlockedEpisode]:
        if await UsersRepo.get_by_id(session, user_id) is None:
            raise UserNotFoundError
        return await UnlocksRepo.list_for_user(session, user_id)

    @staticmethod
    async def is_unlocked(session: AsyncSession, *, user_id: str, episode_id: str) -> bool:
        if await UsersRepo.get_by_id(session, user_id) is None:
            raise UserNotFoundError
        grant = await UnlocksRepo.get_for_user_episode(session, user_id=user_id, episode_id=episode_id)
        return grant is not None

    @staticmethod
    async def record_ad_view(
        session: AsyncSession,
        *,
        user_id: str,
        now_utc: datetime | None = None,
    ) -> AdViewResult:
        now_utc = now_utc or datetime.now(timezone.utc)
        await UnlockService._lock_user(session, user_id)

        if await SubscriptionService.is_premium_active(session, user_id=user_id, now_utc=now_utc):
            raise PremiumIneligibleError

        view_date = reference_local_date(now_utc)
        counter = await AdViewsRepo.get_for_update(session, user_id=user_id, view_date=view_date)
        if counter is None:
            counter = await AdViewsRepo.create(session, user_id=user_id, view_date=view_date, now_utc=now_utc)

        if ad_limit_exceeded(counter.views_count, MAX_ADS_PER_DAY):
            raise DailyLimitExceededError(limit=MAX_ADS_PER_DAY, watched=counter.views_count)

        reward = ad_reward()
        entry = await LedgerService.append_transaction(
            session,
            user_id=user_id,
            amount=reward,
            tx_type=TransactionType.REWARD,
            reason=TransactionReason.REWARDED_AD,
            now_utc=now_utc,
        )
        counter.views_count += 1
        counter.updated_at = now_utc
        await session.flush()

        logger.info(
            "ad_reward_granted",
            user_id=user_id,
            view_date=view_date.isoformat(),
            ads_watched_today=counter.views_count,
            coins_earned=reward,
            balance=entry.balance_after,
        )
        return AdViewResult(
            coins_earned=reward,
            ads_watched_today=counter.views_count,
            max_ads_per_day=MAX_ADS_PER_DAY,
            balance=entry.balance_after,
        )
