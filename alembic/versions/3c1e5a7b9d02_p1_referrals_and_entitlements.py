"""p1_referrals_and_entitlements

Revision ID: 3c1e5a7b9d02
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "3c1e5a7b9d02"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("auth_subject", sa.String(255), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("seeded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("auth_subject", name="users_auth_subject_key"),
    )
    op.create_index("idx_users_created_at", "users", ["created_at"])

    op.create_table(
        "entitlements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("tier", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("is_trial", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("billing_subscription_id", sa.String(128), nullable=True),
        sa.Column("billing_subscription_item_id", sa.String(128), nullable=True),
        sa.Column("billing_plan_id", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("tier IN ('free','premium')", name="ck_entitlements_tier"),
        sa.CheckConstraint(
            "status IN ('active','past_due','canceled','incomplete')",
            name="ck_entitlements_status",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.UniqueConstraint("user_id", name="entitlements_user_id_key"),
    )

    op.create_table(
        "referral_codes",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("total_referrals", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.UniqueConstraint("code", name="referral_codes_code_key"),
    )
    op.create_index("idx_referral_codes_user", "referral_codes", ["user_id"])

    op.create_table(
        "referrals",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("referrer_user_id", sa.BigInteger(), nullable=False),
        sa.Column("referee_user_id", sa.BigInteger(), nullable=False),
        sa.Column("referral_code_id", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("signup_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rewarded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fraud_reason", sa.String(64), nullable=True),
        sa.Column("signup_ip_hash", sa.String(64), nullable=True),
        sa.Column("signup_device_hash", sa.String(64), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending','converted','rewarded','expired','fraudulent')",
            name="ck_referrals_status",
        ),
        sa.CheckConstraint("referrer_user_id <> referee_user_id", name="ck_referrals_no_self_referral"),
        sa.ForeignKeyConstraint(["referrer_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["referee_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["referral_code_id"], ["referral_codes.id"]),
        sa.UniqueConstraint("referee_user_id", name="referrals_referee_user_id_key"),
    )
    op.create_index("idx_referrals_referrer", "referrals", ["referrer_user_id"])
    op.create_index("idx_referrals_code_signup", "referrals", ["referral_code_id", "signup_at"])
    op.create_index("idx_referrals_status_signup", "referrals", ["status", "signup_at"])

    op.create_table(
        "referral_rewards",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("referral_id", sa.BigInteger(), nullable=False),
        sa.Column("reward_type", sa.String(16), nullable=False),
        sa.Column("granted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("bonus_starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("bonus_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("discount_code", sa.String(16), nullable=True),
        sa.Column("discount_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("idempotency_key", sa.String(96), nullable=False),
        sa.CheckConstraint("reward_type IN ('bonus_days','discount_code')", name="ck_referral_rewards_type"),
        sa.CheckConstraint(
            "(reward_type = 'bonus_days' AND bonus_ends_at IS NOT NULL)"
            " OR (reward_type = 'discount_code' AND discount_code IS NOT NULL)",
            name="ck_referral_rewards_payload",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["referral_id"], ["referrals.id"]),
        sa.UniqueConstraint("discount_code", name="referral_rewards_discount_code_key"),
        sa.UniqueConstraint("idempotency_key", name="referral_rewards_idempotency_key_key"),
    )
    op.create_index("idx_referral_rewards_user_granted", "referral_rewards", ["user_id", "granted_at"])
    op.create_index("idx_referral_rewards_user_bonus_end", "referral_rewards", ["user_id", "bonus_ends_at"])

    op.create_table(
        "failed_referral_rewards",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("referral_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("reward_type", sa.String(16), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending','resolved','escalated')",
            name="ck_failed_referral_rewards_status",
        ),
        sa.CheckConstraint(
            "reward_type IN ('bonus_days','discount_code')",
            name="ck_failed_referral_rewards_type",
        ),
        sa.CheckConstraint("retry_count >= 0", name="ck_failed_referral_rewards_retry_count"),
        sa.ForeignKeyConstraint(["referral_id"], ["referrals.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.UniqueConstraint("referral_id", name="failed_referral_rewards_referral_id_key"),
    )
    op.create_index(
        "idx_failed_referral_rewards_status",
        "failed_referral_rewards",
        ["status", "last_attempt_at"],
    )
    op.create_index("idx_failed_referral_rewards_user", "failed_referral_rewards", ["user_id"])

    op.create_table(
        "referral_fraud_signals",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("identifier", sa.String(64), nullable=False),
        sa.Column("signal_type", sa.String(16), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("signal_type IN ('ip_signup','device_signup')", name="ck_referral_fraud_signals_type"),
        sa.UniqueConstraint("identifier", "signal_type", name="uq_referral_fraud_signals_identifier_type"),
    )

    op.create_table(
        "daily_pick_counts",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("day_key", sa.String(10), nullable=False),
        sa.Column("pick_count", sa.Integer(), nullable=False),
        sa.CheckConstraint("pick_count >= 0", name="ck_daily_pick_counts_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.UniqueConstraint("user_id", "day_key", name="uq_daily_pick_counts_user_day"),
    )

    op.create_table(
        "user_parks",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("place_id", sa.String(255), nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.UniqueConstraint("user_id", "place_id", name="uq_user_parks_user_place"),
    )


def downgrade() -> None:
    op.drop_table("user_parks")
    op.drop_table("daily_pick_counts")
    op.drop_table("referral_fraud_signals")
    op.drop_index("idx_failed_referral_rewards_user", table_name="failed_referral_rewards")
    op.drop_index("idx_failed_referral_rewards_status", table_name="failed_referral_rewards")
    op.drop_table("failed_referral_rewards")
    op.drop_index("idx_referral_rewards_user_bonus_end", table_name="referral_rewards")
    op.drop_index("idx_referral_rewards_user_granted", table_name="referral_rewards")
    op.drop_table("referral_rewards")
    op.drop_index("idx_referrals_status_signup", table_name="referrals")
    op.drop_index("idx_referrals_code_signup", table_name="referrals")
    op.drop_index("idx_referrals_referrer", table_name="referrals")
    op.drop_table("referrals")
    op.drop_index("idx_referral_codes_user", table_name="referral_codes")
    op.drop_table("referral_codes")
    op.drop_table("entitlements")
    op.drop_index("idx_users_created_at", table_name="users")
    op.drop_table("users")
