from __future__ import annotations

from sqlalchemy import CheckConstraint, UniqueConstraint

import app.db.models  # noqa: F401
from app.db.models.base import Base


def _check_names(table_name: str) -> set[str | None]:
    table = Base.metadata.tables[table_name]
    return {constraint.name for constraint in table.constraints if isinstance(constraint, CheckConstraint)}


def _unique_column_sets(table_name: str) -> set[tuple[str, ...]]:
    table = Base.metadata.tables[table_name]
    column_sets = {
        tuple(column.name for column in constraint.columns)
        for constraint in table.constraints
        if isinstance(constraint, UniqueConstraint)
    }
    column_sets.update((column.name,) for column in table.columns if column.unique)
    return column_sets


def test_all_tables_registered() -> None:
    expected_tables = {
        "users",
        "entitlements",
        "referral_codes",
        "referrals",
        "referral_rewards",
        "failed_referral_rewards",
        "referral_fraud_signals",
        "daily_pick_counts",
        "user_parks",
    }
    assert expected_tables == set(Base.metadata.tables)


def test_referrals_constraints_present() -> None:
    assert "ck_referrals_no_self_referral" in _check_names("referrals")
    assert "ck_referrals_status" in _check_names("referrals")
    assert ("referee_user_id",) in _unique_column_sets("referrals")

    referrals_indexes = {index.name for index in Base.metadata.tables["referrals"].indexes}
    assert "idx_referrals_status_signup" in referrals_indexes
    assert "idx_referrals_code_signup" in referrals_indexes
    assert "idx_referrals_referrer" in referrals_indexes


def test_reward_tables_are_keyed_for_idempotency() -> None:
    reward_uniques = _unique_column_sets("referral_rewards")
    assert ("idempotency_key",) in reward_uniques
    assert ("discount_code",) in reward_uniques
    assert "ck_referral_rewards_payload" in _check_names("referral_rewards")

    assert ("referral_id",) in _unique_column_sets("failed_referral_rewards")
    assert "ck_failed_referral_rewards_status" in _check_names("failed_referral_rewards")


def test_counter_tables_have_upsert_targets() -> None:
    assert ("identifier", "signal_type") in _unique_column_sets("referral_fraud_signals")
    assert ("user_id", "day_key") in _unique_column_sets("daily_pick_counts")
    assert ("user_id",) in _unique_column_sets("entitlements")
    assert ("user_id", "place_id") in _unique_column_sets("user_parks")
