from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, UtcDateTime


class User(Base):
    """Ledger-relevant projection of an account.

    ``coin_balance`` mirrors the signed sum of the user's coin transactions and is
    written only by the ledger service. ``is_premium``/``premium_expires_at`` are a
    cached projection of the subscription row.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("status IN ('ACTIVE','BLOCKED','DELETED')", name="ck_users_status"),
        Index("idx_users_created_at", "created_at"),
        Index("idx_users_premium_expires_at", "premium_expires_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'ACTIVE'"))
    coin_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    is_premium: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    premium_expires_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
