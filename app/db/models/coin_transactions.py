from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    event,
)
from sqlalchemy.orm import Mapped, Session, mapped_column

from app.db.models.base import Base, UtcDateTime

# SQLite only auto-increments a plain INTEGER primary key.
TransactionId = BigInteger().with_variant(Integer(), "sqlite")


class CoinTransaction(Base):
    __tablename__ = "coin_transactions"
    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_coin_transactions_amount_non_zero"),
        CheckConstraint(
            "balance_after = balance_before + amount",
            name="ck_coin_transactions_balance_chain",
        ),
        CheckConstraint(
            "type IN ('earn','spend','reward','purchase','compensation')",
            name="ck_coin_transactions_type",
        ),
        Index("idx_coin_transactions_user_id", "user_id", "id"),
        Index("idx_coin_transactions_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(TransactionId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    tx_type: Mapped[str] = mapped_column("type", String(16), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(128), nullable=True)
    balance_before: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)


@event.listens_for(Session, "before_flush")
def _reject_coin_transaction_mutations(session: Session, flush_context, instances) -> None:  # noqa: ANN001
    for instance in session.dirty:
        if isinstance(instance, CoinTransaction) and session.is_modified(instance):
            raise ValueError("coin_transactions is append-only")
    for instance in session.deleted:
        if isinstance(instance, CoinTransaction):
            raise ValueError("coin_transactions is append-only")
