"""m1_coin_ledger_core

Revision ID: 5d2e8a41c7b3
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "5d2e8a41c7b3"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("display_name", sa.String(128), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column("coin_balance", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("premium_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('ACTIVE','BLOCKED','DELETED')", name="ck_users_status"),
    )
    op.create_index("idx_users_created_at", "users", ["created_at"])
    op.create_index("idx_users_premium_expires_at", "users", ["premium_expires_at"])

    op.create_table(
        "coin_transactions",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("reason", sa.String(128), nullable=True),
        sa.Column("balance_before", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount <> 0", name="ck_coin_transactions_amount_non_zero"),
        sa.CheckConstraint(
            "balance_after = balance_before + amount",
            name="ck_coin_transactions_balance_chain",
        ),
        sa.CheckConstraint(
            "type IN ('earn','spend','reward','purchase','compensation')",
            name="ck_coin_transactions_type",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
    )
    op.create_index("idx_coin_transactions_user_id", "coin_transactions", ["user_id", "id"])
    op.create_index("idx_coin_transactions_created_at", "coin_transactions", ["created_at"])

    op.create_table(
        "unlocked_episodes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("episode_id", sa.String(64), nullable=False),
        sa.Column("unlock_method", sa.String(16), nullable=False),
        sa.Column("debit_transaction_id", sa.BigInteger(), nullable=True),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "unlock_method IN ('free','ad','coins','premium')",
            name="ck_unlocked_episodes_method",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["debit_transaction_id"], ["coin_transactions.id"]),
        sa.UniqueConstraint("user_id", "episode_id", name="uq_unlocked_episodes_user_episode"),
    )
    op.create_index(
        "idx_unlocked_episodes_user_unlocked_at",
        "unlocked_episodes",
        ["user_id", "unlocked_at"],
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("plan", sa.String(16), nullable=False),
        sa.Column("platform", sa.String(16), nullable=False),
        sa.Column("product_id", sa.String(128), nullable=False),
        sa.Column("purchase_token", sa.String(1024), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("renews_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("plan IN ('weekly','monthly','yearly')", name="ck_subscriptions_plan"),
        sa.CheckConstraint("status IN ('active','canceled','expired')", name="ck_subscriptions_status"),
        sa.CheckConstraint("platform IN ('android','ios')", name="ck_subscriptions_platform"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.UniqueConstraint("user_id"),
    )
    op.create_index("idx_subscriptions_purchase_token", "subscriptions", ["purchase_token"])
    op.create_index("idx_subscriptions_expires_at", "subscriptions", ["expires_at"])

    op.create_table(
        "ad_view_days",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("view_date", sa.Date(), nullable=False),
        sa.Column("views_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("views_count >= 0", name="ck_ad_view_days_views_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("user_id", "view_date"),
    )
    op.create_index("idx_ad_view_days_view_date", "ad_view_days", ["view_date"])

    op.create_table(
        "processed_receipts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("platform", sa.String(16), nullable=False),
        sa.Column("product_id", sa.String(128), nullable=False),
        sa.Column("purchase_token", sa.String(1024), nullable=False),
        sa.Column("coins_credited", sa.Integer(), nullable=False),
        sa.Column("credit_transaction_id", sa.BigInteger(), nullable=True),
        sa.Column("order_ref", sa.String(128), nullable=True),
        sa.Column("simulated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("platform IN ('android','ios')", name="ck_processed_receipts_platform"),
        sa.CheckConstraint("coins_credited > 0", name="ck_processed_receipts_coins_positive"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["credit_transaction_id"], ["coin_transactions.id"]),
        sa.UniqueConstraint("platform", "purchase_token", name="uq_processed_receipts_platform_token"),
    )
    op.create_index(
        "idx_processed_receipts_user_created",
        "processed_receipts",
        ["user_id", "created_at"],
    )

    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_coin_transactions_append_only()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION 'coin_transactions is append-only';
        END;
        $$;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_coin_transactions_append_only
        BEFORE UPDATE OR DELETE ON coin_transactions
        FOR EACH ROW
        EXECUTE FUNCTION fn_coin_transactions_append_only();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_coin_transactions_append_only ON coin_transactions;")
    op.execute("DROP FUNCTION IF EXISTS fn_coin_transactions_append_only();")

    op.drop_index("idx_processed_receipts_user_created", table_name="processed_receipts")
    op.drop_table("processed_receipts")
    op.drop_index("idx_ad_view_days_view_date", table_name="ad_view_days")
    op.drop_table("ad_view_days")
    op.drop_index("idx_subscriptions_expires_at", table_name="subscriptions")
    op.drop_index("idx_subscriptions_purchase_token", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("idx_unlocked_episodes_user_unlocked_at", table_name="unlocked_episodes")
    op.drop_table("unlocked_episodes")
    op.drop_index("idx_coin_transactions_created_at", table_name="coin_transactions")
    op.drop_index("idx_coin_transactions_user_id", table_name="coin_transactions")
    op.drop_table("coin_transactions")
    op.drop_index("idx_users_premium_expires_at", table_name="users")
    op.drop_index("idx_users_created_at", table_name="users")
    op.drop_table("users")
