from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.users import User


class UsersRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, user_id: str) -> User | None:
        return await session.get(User, user_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, user_id: str) -> User | None:
        stmt = (
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        user_id: str,
        display_name: str | None,
        now_utc: datetime,
    ) -> User:
        user = User(
            id=user_id,
            display_name=display_name,
            status="ACTIVE",
            coin_balance=0,
            is_premium=False,
            premium_expires_at=None,
            created_at=now_utc,
            updated_at=now_utc,
        )
        session.add(user)
        await session.flush()
        return user

    @staticmethod
    async def compare_and_set_balance(
        session: AsyncSession,
        *,
        user_id: str,
        expected_balance: int,
        new_balance: int,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(User)
            .where(User.id == user_id, User.coin_balance == expected_balance)
            .values(coin_balance=new_balance, updated_at=now_utc)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return (result.rowcount or 0) == 1

    @staticmethod
    async def set_premium_projection(
        session: AsyncSession,
        *,
        user_id: str,
        is_premium: bool,
        premium_expires_at: datetime | None,
        now_utc: datetime,
    ) -> None:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                is_premium=is_premium,
                premium_expires_at=premium_expires_at,
                updated_at=now_utc,
            )
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)
