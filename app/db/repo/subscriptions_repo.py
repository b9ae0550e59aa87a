from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.subscriptions import Subscription


class SubscriptionsRepo:
    @staticmethod
    async def get_by_user(session: AsyncSession, user_id: str) -> Subscription | None:
        stmt = select(Subscription).where(Subscription.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_user_for_update(session: AsyncSession, user_id: str) -> Subscription | None:
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_purchase_token(
        session: AsyncSession,
        *,
        platform: str,
        purchase_token: str,
    ) -> Subscription | None:
        stmt = select(Subscription).where(
            Subscription.platform == platform,
            Subscription.purchase_token == purchase_token,
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def create(session: AsyncSession, *, subscription: Subscription) -> Subscription:
        session.add(subscription)
        await session.flush()
        return subscription
