from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, UtcDateTime
from app.db.models.coin_transactions import TransactionId


class ProcessedReceipt(Base):
    __tablename__ = "processed_receipts"
    __table_args__ = (
        UniqueConstraint("platform", "purchase_token", name="uq_processed_receipts_platform_token"),
        CheckConstraint("platform IN ('android','ios')", name="ck_processed_receipts_platform"),
        CheckConstraint("coins_credited > 0", name="ck_processed_receipts_coins_positive"),
        Index("idx_processed_receipts_user_created", "user_id", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    platform: Mapped[str] = mapped_column(String(16), nullable=False)
    product_id: Mapped[str] = mapped_column(String(128), nullable=False)
    purchase_token: Mapped[str] = mapped_column(String(1024), nullable=False)
    coins_credited: Mapped[int] = mapped_column(Integer, nullable=False)
    credit_transaction_id: Mapped[int | None] = mapped_column(
        TransactionId,
        ForeignKey("coin_transactions.id"),
        nullable=True,
    )
    order_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    simulated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
