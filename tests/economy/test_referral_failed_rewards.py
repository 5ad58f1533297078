from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.economy.referrals.errors import FailedRewardNotFoundError, ReferralTransitionError
from app.economy.referrals.service import ReferralService
from app.economy.referrals.service.failed_rewards import format_reward_error
from tests.economy.referral_fakes import install_referral_store
from tests.helpers import DummySession

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(monkeypatch):
    store = install_referral_store(monkeypatch)
    store.add_user(1)
    return store


def test_format_reward_error_truncates() -> None:
    message = format_reward_error(ValueError("x" * 5000))
    assert message.startswith("ValueError: xxx")
    assert len(message) == 2000


async def test_record_failed_reward_is_one_record_per_referral(store) -> None:
    session = DummySession()
    first_id = await ReferralService.record_failed_reward(
        session, referral_id=5, user_id=1, reward_type="bonus_days", error="first", now_utc=NOW
    )
    store.failed[first_id].retry_count = 2
    store.failed[first_id].status = "escalated"

    second_id = await ReferralService.record_failed_reward(
        session,
        referral_id=5,
        user_id=1,
        reward_type="bonus_days",
        error="second",
        now_utc=NOW + timedelta(hours=1),
    )

    assert second_id == first_id
    record = store.failed[first_id]
    assert record.last_error == "second"
    assert record.retry_count == 0
    assert record.status == "pending"
    assert record.last_attempt_at == NOW + timedelta(hours=1)


async def test_retry_grants_and_resolves(store) -> None:
    referral = store.add_referral(referrer_user_id=1, referee_user_id=2, signup_at=NOW, status="converted")
    record = store.add_failed(referral_id=referral.id, user_id=1, reward_type="discount_code")

    outcome = await ReferralService.retry_failed_reward(DummySession(), record_id=record.id, now_utc=NOW)

    assert outcome == "succeeded"
    assert record.status == "resolved"
    assert record.resolved_at == NOW
    assert referral.status == "rewarded"
    assert len(store.rewards_for(1)) == 1


async def test_retry_skips_already_rewarded_referral(store) -> None:
    referral = store.add_referral(referrer_user_id=1, referee_user_id=2, signup_at=NOW, status="rewarded")
    record = store.add_failed(referral_id=referral.id, user_id=1, reward_type="discount_code")

    outcome = await ReferralService.retry_failed_reward(DummySession(), record_id=record.id, now_utc=NOW)

    assert outcome == "succeeded"
    assert record.status == "resolved"
    assert store.rewards == []


async def test_retry_refuses_referral_in_wrong_state(store) -> None:
    referral = store.add_referral(referrer_user_id=1, referee_user_id=2, signup_at=NOW, status="fraudulent")
    record = store.add_failed(referral_id=referral.id, user_id=1, reward_type="discount_code")

    with pytest.raises(ReferralTransitionError):
        await ReferralService.retry_failed_reward(DummySession(), record_id=record.id, now_utc=NOW)
    assert store.rewards == []


async def test_retry_ignores_missing_and_non_pending_records(store) -> None:
    record = store.add_failed(referral_id=1, user_id=1, reward_type="discount_code", status="escalated")

    assert await ReferralService.retry_failed_reward(DummySession(), record_id=404, now_utc=NOW) == "missing"
    assert await ReferralService.retry_failed_reward(DummySession(), record_id=record.id, now_utc=NOW) == "skipped"


async def test_increment_retry_count_escalates_at_max(store) -> None:
    record = store.add_failed(referral_id=1, user_id=1, reward_type="bonus_days")
    session = DummySession()

    outcomes = [
        await ReferralService.increment_retry_count(
            session, record_id=record.id, error=f"attempt {attempt}", now_utc=NOW, max_retries=3
        )
        for attempt in range(1, 5)
    ]

    assert outcomes == [(1, "pending"), (2, "pending"), (3, "escalated"), None]
    assert record.last_error == "attempt 3"


async def test_requeue_escalated_reward(store) -> None:
    escalated = store.add_failed(
        referral_id=1, user_id=1, reward_type="bonus_days", status="escalated", retry_count=3
    )
    pending = store.add_failed(referral_id=2, user_id=1, reward_type="bonus_days")

    assert await ReferralService.requeue_escalated_reward(DummySession(), record_id=escalated.id, now_utc=NOW)
    assert escalated.status == "pending"
    assert escalated.retry_count == 0
    assert not await ReferralService.requeue_escalated_reward(DummySession(), record_id=pending.id, now_utc=NOW)
    with pytest.raises(FailedRewardNotFoundError):
        await ReferralService.requeue_escalated_reward(DummySession(), record_id=404, now_utc=NOW)
