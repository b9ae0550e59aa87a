from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.ad_view_days import AdViewDay


class AdViewsRepo:
    @staticmethod
    async def get_for_update(
        session: AsyncSession,
        *,
        user_id: str,
        view_date: date,
    ) -> AdViewDay | None:
        stmt = (
            select(AdViewDay)
            .where(AdViewDay.user_id == user_id, AdViewDay.view_date == view_date)
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
        view_date: date,
        now_utc: datetime,
    ) -> AdViewDay:
        row = AdViewDay(user_id=user_id, view_date=view_date, views_count=0, updated_at=now_utc)
        session.add(row)
        await session.flush()
        return row
