from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.coin_transactions import CoinTransaction
from app.db.models.users import User


class LedgerRepo:
    @staticmethod
    async def create(session: AsyncSession, *, entry: CoinTransaction) -> CoinTransaction:
        session.add(entry)
        await session.flush()
        return entry

    @staticmethod
    async def get_latest_for_user(session: AsyncSession, user_id: str) -> CoinTransaction | None:
        stmt = (
            select(CoinTransaction)
            .where(CoinTransaction.user_id == user_id)
            .order_by(CoinTransaction.id.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_user(
        session: AsyncSession,
        *,
        user_id: str,
        limit: int,
    ) -> list[CoinTransaction]:
        stmt = (
            select(CoinTransaction)
            .where(CoinTransaction.user_id == user_id)
            .order_by(CoinTransaction.id.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def sum_for_user(session: AsyncSession, user_id: str) -> int:
        stmt = select(func.coalesce(func.sum(CoinTransaction.amount), 0)).where(
            CoinTransaction.user_id == user_id
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_users_with_balance_drift(
        session: AsyncSession,
        *,
        limit: int,
    ) -> list[tuple[str, int, int]]:
        ledger_sums = (
            select(
                CoinTransaction.user_id.label("user_id"),
                func.sum(CoinTransaction.amount).label("ledger_sum"),
            )
            .group_by(CoinTransaction.user_id)
            .subquery()
        )
        ledger_sum = func.coalesce(ledger_sums.c.ledger_sum, 0)
        stmt = (
            select(User.id, User.coin_balance, ledger_sum)
            .outerjoin(ledger_sums, ledger_sums.c.user_id == User.id)
            .where(User.coin_balance != ledger_sum)
            .order_by(User.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [(str(row[0]), int(row[1]), int(row[2])) for row in result.all()]
