from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.db.models.coin_transactions import CoinTransaction
from app.db.models.users import User
from app.db.repo.ledger_repo import LedgerRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.errors import BalanceConflictError, InvalidAmountError, UserNotFoundError
from app.economy.ledger.types import (
    HISTORY_DEFAULT_LIMIT,
    HISTORY_MAX_LIMIT,
    BalanceReconciliation,
    TransactionReason,
    TransactionType,
)

logger = structlog.get_logger(__name__)


def clamp_history_limit(limit: int | None) -> int:
    if limit is None:
        return HISTORY_DEFAULT_LIMIT
    return max(1, min(HISTORY_MAX_LIMIT, int(limit)))


class LedgerService:
    @staticmethod
    async def _lock_user(session: AsyncSession, user_id: str) -> User:
        user = await UsersRepo.get_by_id_for_update(session, user_id)
        if user is None:
            raise UserNotFoundError
        return user

    @staticmethod
    async def append_transaction(
        session: AsyncSession,
        *,
        user_id: str,
        amount: int,
        tx_type: TransactionType | str,
        reason: str | None,
        now_utc: datetime | None = None,
    ) -> CoinTransaction:
        """Appends one signed entry and moves the cached balance in the same unit.

        No sufficiency check happens here; callers guard debits. The chain head wins
        over the cached balance when the two disagree.
        """
        if amount == 0:
            raise InvalidAmountError
        now_utc = now_utc or datetime.now(timezone.utc)
        user = await LedgerService._lock_user(session, user_id)

        cached_balance = user.coin_balance
        latest = await LedgerRepo.get_latest_for_user(session, user_id)
        balance_before = latest.balance_after if latest is not None else 0
        if balance_before != cached_balance:
            logger.warning(
                "coin_balance_cache_drift",
                user_id=user_id,
                cached_balance=cached_balance,
                chain_balance=balance_before,
            )

        balance_after = balance_before + amount
        entry = await LedgerRepo.create(
            session,
            entry=CoinTransaction(
                user_id=user_id,
                amount=amount,
                tx_type=TransactionType(tx_type).value,
                reason=reason,
                balance_before=balance_before,
                balance_after=balance_after,
                created_at=now_utc,
            ),
        )

        updated = await UsersRepo.compare_and_set_balance(
            session,
            user_id=user_id,
            expected_balance=cached_balance,
            new_balance=balance_after,
            now_utc=now_utc,
        )
        if not updated:
            raise BalanceConflictError
        set_committed_value(user, "coin_balance", balance_after)

        logger.info(
            "coin_transaction_appended",
            user_id=user_id,
            transaction_id=entry.id,
            tx_type=entry.tx_type,
            amount=amount,
            balance_after=balance_after,
        )
        return entry

    @staticmethod
    async def earn(
        session: AsyncSession,
        *,
        user_id: str,
        amount: int,
        reason: str | None = None,
        now_utc: datetime | None = None,
    ) -> CoinTransaction:
        if amount <= 0:
            raise InvalidAmountError
        return await LedgerService.append_transaction(
            session,
            user_id=user_id,
            amount=amount,
            tx_type=TransactionType.EARN,
            reason=reason or TransactionReason.REWARDED_AD,
            now_utc=now_utc,
        )

    @staticmethod
    async def get_balance(session: AsyncSession, *, user_id: str) -> int:
        user = await UsersRepo.get_by_id(session, user_id)
        if user is None:
            raise UserNotFoundError
        return user.coin_balance

    @staticmethod
    async def get_history(
        session: AsyncSession,
        *,
        user_id: str,
        limit: int | None = None,
    ) -> list[CoinTransaction]:
        user = await UsersRepo.get_by_id(session, user_id)
        if user is None:
            raise UserNotFoundError
        return await LedgerRepo.list_for_user(
            session,
            user_id=user_id,
            limit=clamp_history_limit(limit),
        )

    @staticmethod
    async def reconcile_balance(
        session: AsyncSession,
        *,
        user_id: str,
        now_utc: datetime | None = None,
    ) -> BalanceReconciliation:
        now_utc = now_utc or datetime.now(timezone.utc)
        user = await LedgerService._lock_user(session, user_id)
        ledger_sum = await LedgerRepo.sum_for_user(session, user_id)
        result = BalanceReconciliation(
            user_id=user_id,
            cached=user.coin_balance,
            ledger_sum=ledger_sum,
        )
        if result.drift != 0:
            updated = await UsersRepo.compare_and_set_balance(
                session,
                user_id=user_id,
                expected_balance=user.coin_balance,
                new_balance=ledger_sum,
                now_utc=now_utc,
            )
            if not updated:
                raise BalanceConflictError
            set_committed_value(user, "coin_balance", ledger_sum)
            logger.warning(
                "coin_balance_reconciled",
                user_id=user_id,
                cached_balance=result.cached,
                ledger_sum=ledger_sum,
                drift=result.drift,
            )
        return result
