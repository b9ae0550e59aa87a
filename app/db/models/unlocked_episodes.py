from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, UtcDateTime
from app.db.models.coin_transactions import TransactionId


class UnlockedEpisode(Base):
    __tablename__ = "unlocked_episodes"
    __table_args__ = (
        UniqueConstraint("user_id", "episode_id", name="uq_unlocked_episodes_user_episode"),
        CheckConstraint(
            "unlock_method IN ('free','ad','coins','premium')",
            name="ck_unlocked_episodes_method",
        ),
        Index("idx_unlocked_episodes_user_unlocked_at", "user_id", "unlocked_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    episode_id: Mapped[str] = mapped_column(String(64), nullable=False)
    unlock_method: Mapped[str] = mapped_column(String(16), nullable=False)
    debit_transaction_id: Mapped[int | None] = mapped_column(
        TransactionId,
        ForeignKey("coin_transactions.id"),
        nullable=True,
    )
    unlocked_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
