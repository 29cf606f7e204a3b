"""entitlements_core_tables

Revision ID: 5c2e8f1a9b30
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "5c2e8f1a9b30"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("subscription_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subscription_expiration", sa.DateTime(timezone=True), nullable=True),
        sa.Column("free_resume_used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("free_download_used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("total_downloads", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_resumes_generated", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("premium_resume_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("premium_resume_month", sa.String(7), nullable=True),
        sa.Column("plan_type", sa.String(16), nullable=True),
        sa.Column("payment_provider", sa.String(16), nullable=True),
        sa.Column("payment_customer_id", sa.String(64), nullable=True),
        sa.Column("last_transaction_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("total_downloads >= 0", name="ck_users_total_downloads_non_negative"),
        sa.CheckConstraint("total_resumes_generated >= 0", name="ck_users_total_resumes_non_negative"),
        sa.CheckConstraint("premium_resume_count >= 0", name="ck_users_premium_resume_count_non_negative"),
        sa.CheckConstraint("plan_type IS NULL OR plan_type IN ('monthly','yearly')", name="ck_users_plan_type"),
    )
    op.create_index("idx_users_email", "users", ["email"])
    op.create_index("idx_users_subscription_expiration", "users", ["subscription_expiration"])

    op.create_table(
        "rate_limits",
        sa.Column("key", sa.String(256), primary_key=True),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("window_start", sa.BigInteger(), nullable=False),
        sa.Column("ttl", sa.BigInteger(), nullable=True),
        sa.CheckConstraint("count >= 0", name="ck_rate_limits_count_non_negative"),
    )
    op.create_index("idx_rate_limits_ttl", "rate_limits", ["ttl"])

    op.create_table(
        "processed_orders",
        sa.Column("order_id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("transaction_id", sa.String(64), nullable=False),
        sa.Column("plan_type", sa.String(16), nullable=False),
        sa.Column("payer_id", sa.String(64), nullable=True),
        sa.Column("captured_amount", sa.String(16), nullable=False),
        sa.Column("captured_currency", sa.String(3), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("entitlement_applied", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ttl", sa.BigInteger(), nullable=True),
    )
    op.create_index("idx_processed_orders_user", "processed_orders", ["user_id"])
    op.create_index(
        "idx_processed_orders_unapplied",
        "processed_orders",
        ["processed_at"],
        postgresql_where=sa.text("entitlement_applied = false"),
    )

    op.create_table(
        "resumes",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_resumes_user", "resumes", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_resumes_user", table_name="resumes")
    op.drop_table("resumes")
    op.drop_index("idx_processed_orders_unapplied", table_name="processed_orders")
    op.drop_index("idx_processed_orders_user", table_name="processed_orders")
    op.drop_table("processed_orders")
    op.drop_index("idx_rate_limits_ttl", table_name="rate_limits")
    op.drop_table("rate_limits")
    op.drop_index("idx_users_subscription_expiration", table_name="users")
    op.drop_index("idx_users_email", table_name="users")
    op.drop_table("users")
