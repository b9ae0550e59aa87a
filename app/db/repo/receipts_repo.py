from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.processed_receipts import ProcessedReceipt


class ReceiptsRepo:
    @staticmethod
    async def get_by_token(
        session: AsyncSession,
        *,
        platform: str,
        purchase_token: str,
    ) -> ProcessedReceipt | None:
        stmt = select(ProcessedReceipt).where(
            ProcessedReceipt.platform == platform,
            ProcessedReceipt.purchase_token == purchase_token,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, receipt: ProcessedReceipt) -> ProcessedReceipt:
        session.add(receipt)
        await session.flush()
        return receipt
