from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError

from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.economy.referrals.errors import DiscountCodeExhaustedError, UnsupportedRewardTypeError
from app.economy.referrals.service import ReferralService, rewards_grant
from tests.economy.referral_fakes import install_referral_store
from tests.helpers import DummySession

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
DISCOUNT_CODE_RE = re.compile(r"^REF-[A-HJ-NP-Z2-9]{8}$")


@pytest.fixture
def store(monkeypatch):
    store = install_referral_store(monkeypatch)
    store.add_user(1)
    return store


def test_idempotency_key_format() -> None:
    assert ReferralService.reward_idempotency_key(42) == "referral:reward:42"


async def test_bonus_days_start_now_without_active_window(store) -> None:
    grant = await ReferralService.grant_bonus_days(DummySession(), user_id=1, referral_id=5, now_utc=NOW)

    assert grant.reward_type == "bonus_days"
    assert grant.bonus_starts_at == NOW
    assert grant.bonus_ends_at == NOW + timedelta(days=30)
    assert grant.replayed is False
    assert store.locked_users == [1]


async def test_bonus_days_stack_on_active_window(store) -> None:
    await ReferralService.grant_bonus_days(DummySession(), user_id=1, referral_id=5, now_utc=NOW)

    second = await ReferralService.grant_bonus_days(
        DummySession(),
        user_id=1,
        referral_id=6,
        now_utc=NOW + timedelta(days=10),
    )

    assert second.bonus_starts_at == NOW + timedelta(days=30)
    assert second.bonus_ends_at == NOW + timedelta(days=60)


async def test_bonus_days_after_expired_window_start_fresh(store) -> None:
    await ReferralService.grant_bonus_days(DummySession(), user_id=1, referral_id=5, now_utc=NOW)
    later = NOW + timedelta(days=45)

    grant = await ReferralService.grant_bonus_days(DummySession(), user_id=1, referral_id=6, now_utc=later)

    assert grant.bonus_starts_at == later


async def test_grant_replay_returns_existing_grant(store) -> None:
    first = await ReferralService.grant_bonus_days(DummySession(), user_id=1, referral_id=5, now_utc=NOW)
    replay = await ReferralService.grant_bonus_days(
        DummySession(),
        user_id=1,
        referral_id=5,
        now_utc=NOW + timedelta(days=1),
    )

    assert replay.replayed is True
    assert replay.reward_id == first.reward_id
    assert replay.bonus_ends_at == first.bonus_ends_at
    assert len(store.rewards) == 1


async def test_discount_code_format(store) -> None:
    grant = await ReferralService.grant_discount_code(DummySession(), user_id=1, referral_id=5, now_utc=NOW)

    assert grant.reward_type == "discount_code"
    assert DISCOUNT_CODE_RE.match(grant.discount_code)
    assert store.rewards[0].idempotency_key == "referral:reward:5"


async def test_discount_code_retries_on_collision(store, monkeypatch) -> None:
    candidates = iter(["REF-AAAAAAAA", "REF-AAAAAAAA", "REF-BBBBBBBB"])
    monkeypatch.setattr(rewards_grant, "generate_discount_code", lambda: next(candidates))
    store.rewards.append(
        SimpleNamespace(
            id=99,
            user_id=7,
            referral_id=99,
            discount_code="REF-AAAAAAAA",
            idempotency_key="referral:reward:99",
            bonus_ends_at=None,
            granted_at=NOW,
        )
    )

    grant = await ReferralService.grant_discount_code(DummySession(), user_id=1, referral_id=5, now_utc=NOW)

    assert grant.discount_code == "REF-BBBBBBBB"


async def test_discount_code_exhaustion_raises(store, monkeypatch) -> None:
    async def always_taken(session, code: str) -> bool:
        return True

    monkeypatch.setattr(ReferralRewardsRepo, "discount_code_exists", always_taken)

    with pytest.raises(DiscountCodeExhaustedError):
        await ReferralService.grant_discount_code(DummySession(), user_id=1, referral_id=5, now_utc=NOW)


async def test_discount_code_insert_race_retries_in_savepoint(store, monkeypatch) -> None:
    original_create = ReferralRewardsRepo.create
    attempts: list[str] = []

    async def flaky_create(session, *, reward):
        attempts.append(reward.discount_code)
        if len(attempts) == 1:
            raise IntegrityError("INSERT", {}, Exception("duplicate discount_code"))
        return await original_create(session, reward=reward)

    monkeypatch.setattr(ReferralRewardsRepo, "create", flaky_create)
    session = DummySession()

    grant = await ReferralService.grant_discount_code(session, user_id=1, referral_id=5, now_utc=NOW)

    assert len(attempts) == 2
    assert session.savepoints == 2
    assert session.rollbacks == 1
    assert grant.discount_code == attempts[1]


async def test_grant_reward_rejects_unknown_type(store) -> None:
    with pytest.raises(UnsupportedRewardTypeError):
        await ReferralService.grant_reward(
            DummySession(),
            reward_type="cash",
            user_id=1,
            referral_id=5,
            now_utc=NOW,
        )


async def test_reward_limits(store) -> None:
    session = DummySession()
    assert (await ReferralService.check_reward_limits(session, user_id=1, now_utc=NOW)).can_receive_reward

    for referral_id in range(1, 4):
        await ReferralService.grant_discount_code(
            session,
            user_id=1,
            referral_id=referral_id,
            now_utc=NOW - timedelta(days=referral_id),
        )
    monthly = await ReferralService.check_reward_limits(session, user_id=1, now_utc=NOW)
    assert monthly.can_receive_reward is False
    assert monthly.reason == "monthly_limit_reached"

    for referral_id in range(4, 13):
        await ReferralService.grant_discount_code(
            session,
            user_id=1,
            referral_id=referral_id,
            now_utc=NOW - timedelta(days=40 + referral_id),
        )
    lifetime = await ReferralService.check_reward_limits(session, user_id=1, now_utc=NOW + timedelta(days=60))
    assert lifetime.reason == "max_total_reached"


async def test_referrer_stats(store) -> None:
    store.add_referral(referrer_user_id=1, referee_user_id=2, signup_at=NOW)
    store.add_referral(referrer_user_id=1, referee_user_id=3, signup_at=NOW, status="rewarded")
    store.add_referral(referrer_user_id=1, referee_user_id=4, signup_at=NOW, status="fraudulent")
    await ReferralService.grant_discount_code(DummySession(), user_id=1, referral_id=2, now_utc=NOW)

    stats = await ReferralService.get_referrer_stats(DummySession(), user_id=1, now_utc=NOW)

    assert stats.total == 3
    assert (stats.pending, stats.rewarded, stats.fraudulent) == (1, 1, 1)
    assert stats.total_rewards_earned == 1
    assert stats.active_bonus_days_until is None
    assert len(stats.unused_discount_codes) == 1
