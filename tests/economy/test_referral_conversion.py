from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

import pytest

from app.economy.referrals.service import ReferralService, conversion
from tests.economy.referral_fakes import install_referral_store
from tests.helpers import DummySession

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
SIGNED_UP = NOW - timedelta(days=3)


@pytest.fixture
def store(monkeypatch):
    store = install_referral_store(monkeypatch)
    store.add_user(1)
    store.add_user(2)
    return store


@pytest.mark.parametrize(
    ("provider_status", "reason"),
    [("trialing", "trial_subscription"), ("past_due", "subscription_not_active"), ("canceled", "subscription_not_active")],
)
async def test_conversion_requires_active_subscription(store, provider_status: str, reason: str) -> None:
    referral = store.add_referral(referrer_user_id=1, referee_user_id=2, signup_at=SIGNED_UP)

    result = await ReferralService.process_referral_conversion(
        DummySession(), referee_user_id=2, provider_status=provider_status, now_utc=NOW
    )

    assert result.processed is False
    assert result.reason == reason
    assert referral.status == "pending"


async def test_conversion_without_pending_referral(store) -> None:
    store.add_referral(referrer_user_id=1, referee_user_id=2, signup_at=SIGNED_UP, status="expired")

    result = await ReferralService.process_referral_conversion(
        DummySession(), referee_user_id=2, provider_status="active", now_utc=NOW
    )

    assert result.processed is False
    assert result.reason == "no_pending_referral"


async def test_conversion_too_soon_leaves_referral_pending(store) -> None:
    referral = store.add_referral(referrer_user_id=1, referee_user_id=2, signup_at=NOW - timedelta(hours=2))

    result = await ReferralService.process_referral_conversion(
        DummySession(), referee_user_id=2, provider_status="active", now_utc=NOW
    )

    assert result.processed is False
    assert result.reason == "too_soon"
    assert result.referral_id == referral.id
    assert referral.status == "pending"


async def test_free_referrer_receives_discount_code(store) -> None:
    referral = store.add_referral(referrer_user_id=1, referee_user_id=2, signup_at=SIGNED_UP)
    session = DummySession()

    result = await ReferralService.process_referral_conversion(
        session, referee_user_id=2, provider_status="active", now_utc=NOW
    )

    assert result.processed is True
    assert result.rewarded is True
    assert result.reward_type == "discount_code"
    assert referral.status == "rewarded"
    assert referral.converted_at == NOW
    assert referral.rewarded_at == NOW
    [reward] = store.rewards_for(1)
    assert re.fullmatch(r"REF-[A-HJ-NP-Z2-9]{8}", reward.discount_code)
    assert session.rollbacks == 0


async def test_premium_referrer_receives_bonus_days(store) -> None:
    store.add_entitlement(1, tier="premium", status="active")
    store.add_referral(referrer_user_id=1, referee_user_id=2, signup_at=SIGNED_UP)

    result = await ReferralService.process_referral_conversion(
        DummySession(), referee_user_id=2, provider_status="active", now_utc=NOW
    )

    assert result.reward_type == "bonus_days"
    [reward] = store.rewards_for(1)
    assert reward.bonus_ends_at == NOW + timedelta(days=30)


async def test_choose_reward_type_counts_bonus_window_as_premium(store) -> None:
    await ReferralService.grant_bonus_days(DummySession(), user_id=1, referral_id=50, now_utc=NOW)

    reward_type = await ReferralService.choose_reward_type(
        DummySession(), referrer_user_id=1, now_utc=NOW + timedelta(days=1)
    )
    assert reward_type == "bonus_days"


async def test_limit_reached_keeps_conversion_without_reward(store) -> None:
    for referral_id in range(100, 103):
        await ReferralService.grant_discount_code(
            DummySession(), user_id=1, referral_id=referral_id, now_utc=NOW - timedelta(days=1)
        )
    referral = store.add_referral(referrer_user_id=1, referee_user_id=2, signup_at=SIGNED_UP)

    result = await ReferralService.process_referral_conversion(
        DummySession(), referee_user_id=2, provider_status="active", now_utc=NOW
    )

    assert result.processed is True
    assert result.rewarded is False
    assert result.reason == "monthly_limit_reached"
    assert referral.status == "converted"
    assert store.failed == {}


async def test_grant_failure_records_failed_reward(store, monkeypatch) -> None:
    async def broken_grant(session, **kwargs):
        raise RuntimeError("reward backend unavailable")

    monkeypatch.setattr(conversion, "grant_reward", broken_grant)
    referral = store.add_referral(referrer_user_id=1, referee_user_id=2, signup_at=SIGNED_UP)
    session = DummySession()

    result = await ReferralService.process_referral_conversion(
        session, referee_user_id=2, provider_status="active", now_utc=NOW
    )

    assert result.processed is True
    assert result.rewarded is False
    assert result.reason == "reward_grant_failed"
    assert referral.status == "converted"
    assert session.rollbacks == 1
    [record] = store.failed.values()
    assert record.referral_id == referral.id
    assert record.user_id == 1
    assert record.reward_type == "discount_code"
    assert record.status == "pending"
    assert record.last_error == "RuntimeError: reward backend unavailable"
