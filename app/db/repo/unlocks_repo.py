from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.unlocked_episodes import UnlockedEpisode


class UnlocksRepo:
    @staticmethod
    async def get_for_user_episode(
        session: AsyncSession,
        *,
        user_id: str,
        episode_id: str,
    ) -> UnlockedEpisode | None:
        stmt = select(UnlockedEpisode).where(
            UnlockedEpisode.user_id == user_id,
            UnlockedEpisode.episode_id == episode_id,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_user(session: AsyncSession, user_id: str) -> list[UnlockedEpisode]:
        stmt = (
            select(UnlockedEpisode)
            .where(UnlockedEpisode.user_id == user_id)
            .order_by(UnlockedEpisode.unlocked_at.desc(), UnlockedEpisode.episode_id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def create(session: AsyncSession, *, grant: UnlockedEpisode) -> UnlockedEpisode:
        session.add(grant)
        await session.flush()
        return grant
