"""monetization ledgers

Revision ID: 0002_monetization_ledgers
Revises: 0001_init
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_monetization_ledgers"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
    from sqlalchemy import inspect as sa_inspect
    inspector = sa_inspect(op.get_bind())
    existing_tables = set(inspector.get_table_names())

    def ensure_indexes(table: str, specs: list[tuple[str, list[str]]]) -> None:
        idxs = {idx["name"] for idx in inspector.get_indexes(table)} if table in existing_tables else set()
        for name, cols in specs:
            if name not in idxs:
                op.create_index(name, table, cols)

    if "unlock_history" not in existing_tables:
        op.create_table(
            "unlock_history",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("chapter_id", sa.String(), nullable=True),
            sa.Column("novel_id", sa.String(), nullable=False),
            sa.Column("unlock_method", sa.String(), nullable=False),
            sa.Column("coins_spent", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("unlocked_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    ensure_indexes(
        "unlock_history",
        [
            ("ix_unlock_history_id", ["id"]),
            ("ix_unlock_history_user_id", ["user_id"]),
            ("ix_unlock_history_chapter_id", ["chapter_id"]),
            ("ix_unlock_history_novel_id", ["novel_id"]),
            ("ix_unlock_history_unlock_method", ["unlock_method"]),
        ],
    )

    if "ad_unlock_logs" not in existing_tables:
        op.create_table(
            "ad_unlock_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("novel_id", sa.String(), nullable=False),
            sa.Column("chapter_id", sa.String(), nullable=True),
            sa.Column("unlocked_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    ensure_indexes(
        "ad_unlock_logs",
        [
            ("ix_ad_unlock_logs_id", ["id"]),
            ("ix_ad_unlock_logs_user_id", ["user_id"]),
            ("ix_ad_unlock_logs_novel_id", ["novel_id"]),
            ("ix_ad_unlock_logs_chapter_id", ["chapter_id"]),
            ("ix_ad_unlock_logs_user_novel_time", ["user_id", "novel_id", "unlocked_at"]),
        ],
    )

    if "coin_transactions" not in existing_tables:
        op.create_table(
            "coin_transactions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("type", sa.String(), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column("reason", sa.String(), nullable=False),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("balance_after", sa.Integer(), nullable=False),
            sa.Column("related_item", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.CheckConstraint("amount >= 1", name="ck_coin_transactions_amount_positive"),
            sa.CheckConstraint("balance_after >= 0", name="ck_coin_transactions_balance_non_negative"),
        )
    ensure_indexes(
        "coin_transactions",
        [
            ("ix_coin_transactions_id", ["id"]),
            ("ix_coin_transactions_user_id", ["user_id"]),
            ("ix_coin_transactions_type", ["type"]),
            ("ix_coin_transactions_related_item", ["related_item"]),
        ],
    )

    if "writer_earnings" not in existing_tables:
        op.create_table(
            "writer_earnings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("writer_id", sa.String(), nullable=False),
            sa.Column("novel_id", sa.String(), nullable=False),
            sa.Column("chapter_id", sa.String(), nullable=False),
            sa.Column("earning_type", sa.String(), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("has_subscription", sa.Boolean(), nullable=True),
            sa.Column("subscription_id", sa.Integer(), nullable=True),
            sa.Column("platform_fee_percentage", sa.Integer(), nullable=True),
            sa.Column("writer_percentage_earned", sa.Integer(), nullable=True),
            sa.Column("views_requirement_met", sa.Boolean(), nullable=True),
            sa.Column("total_views_on_free_chapters", sa.Integer(), nullable=True),
            sa.Column("coin_price", sa.Integer(), nullable=True),
            sa.Column("coins_required_to_unlock", sa.Integer(), nullable=True),
            sa.Column("chapter_number", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.UniqueConstraint("writer_id", "novel_id", "chapter_id", "earning_type", name="uq_writer_earnings_key"),
        )
    ensure_indexes(
        "writer_earnings",
        [
            ("ix_writer_earnings_id", ["id"]),
            ("ix_writer_earnings_writer_id", ["writer_id"]),
            ("ix_writer_earnings_novel_id", ["novel_id"]),
            ("ix_writer_earnings_chapter_id", ["chapter_id"]),
            ("ix_writer_earnings_earning_type", ["earning_type"]),
            ("ix_writer_earnings_writer_novel", ["writer_id", "novel_id"]),
        ],
    )

    if "subscription_plans" not in existing_tables:
        op.create_table(
            "subscription_plans",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("display_name", sa.String(), nullable=True),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("duration_days", sa.Integer(), nullable=True),
            sa.Column("price", sa.Integer(), nullable=True),
            sa.Column("recurring_price", sa.Integer(), nullable=True),
            sa.Column("currency", sa.String(), nullable=True),
            sa.Column("platform_fee_percentage", sa.Integer(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("display_order", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.UniqueConstraint("name", name="uq_subscription_plans_name"),
        )
    ensure_indexes("subscription_plans", [("ix_subscription_plans_id", ["id"]), ("ix_subscription_plans_name", ["name"])])

    if "writer_subscriptions" not in existing_tables:
        op.create_table(
            "writer_subscriptions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("writer_id", sa.String(), nullable=True),
            sa.Column("plan_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(), nullable=True),
            sa.Column("start_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("is_free_trial", sa.Boolean(), nullable=True),
            sa.Column("auto_renew", sa.Boolean(), nullable=True),
            sa.Column("payment_provider", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.UniqueConstraint("writer_id", name="uq_writer_subscriptions_writer_id"),
        )
    ensure_indexes(
        "writer_subscriptions",
        [
            ("ix_writer_subscriptions_id", ["id"]),
            ("ix_writer_subscriptions_writer_id", ["writer_id"]),
            ("ix_writer_subscriptions_plan_id", ["plan_id"]),
            ("ix_writer_subscriptions_status", ["status"]),
            ("ix_writer_subscriptions_payment_provider", ["payment_provider"]),
        ],
    )


def downgrade() -> None:
    op.drop_table("writer_subscriptions")
    op.drop_table("subscription_plans")
    op.drop_table("writer_earnings")
    op.drop_table("coin_transactions")
    op.drop_table("ad_unlock_logs")
    op.drop_table("unlock_history")
