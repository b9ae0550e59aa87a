from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, UtcDateTime


class AdViewDay(Base):
    __tablename__ = "ad_view_days"
    __table_args__ = (
        CheckConstraint("views_count >= 0", name="ck_ad_view_days_views_non_negative"),
        Index("idx_ad_view_days_view_date", "view_date"),
    )

    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), primary_key=True)
    view_date: Mapped[date] = mapped_column(Date, primary_key=True)
    views_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
