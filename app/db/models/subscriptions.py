from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, UtcDateTime


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint("plan IN ('weekly','monthly','yearly')", name="ck_subscriptions_plan"),
        CheckConstraint(
            "status IN ('active','canceled','expired')",
            name="ck_subscriptions_status",
        ),
        CheckConstraint("platform IN ('android','ios')", name="ck_subscriptions_platform"),
        Index("idx_subscriptions_purchase_token", "purchase_token"),
        Index("idx_subscriptions_expires_at", "expires_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id"),
        unique=True,
        nullable=False,
    )
    plan: Mapped[str] = mapped_column(String(16), nullable=False)
    platform: Mapped[str] = mapped_column(String(16), nullable=False)
    product_id: Mapped[str] = mapped_column(String(128), nullable=False)
    purchase_token: Mapped[str] = mapped_column(String(1024), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    renews_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    purchased_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
