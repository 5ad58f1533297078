from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from app.db.models.failed_referral_rewards import FailedReferralReward
from app.db.models.referral_rewards import ReferralReward
from app.db.models.referrals import Referral
from app.db.session import SessionLocal
from app.db.repo.user_parks_repo import UserParksRepo
from app.economy.entitlements.errors import EntitlementLimitError
from app.economy.entitlements.gate import (
    check_can_pick_today,
    ensure_can_add_park,
    ensure_can_pick_today,
    record_pick,
)
from app.economy.referrals.service import ReferralService
from app.economy.referrals.service import failed_rewards as failed_rewards_module
from app.services.billing_reconciliation import reconcile_billing_event
from app.services.user_onboarding import UserOnboardingService
from app.workers.tasks import referrals as referrals_tasks

UTC = timezone.utc
T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
DISCOUNT_CODE_RE = re.compile(r"^REF-[A-HJ-NP-Z2-9]{8}$")


async def _create_referrer(auth_subject: str) -> tuple[int, str]:
    async with SessionLocal.begin() as session:
        onboarded = await UserOnboardingService.ensure_user(
            session,
            auth_subject=auth_subject,
            name="Robin",
            now_utc=T0 - timedelta(days=10),
        )
        code = await ReferralService.get_or_create_referral_code(
            session,
            user_id=onboarded.user_id,
            now_utc=T0 - timedelta(days=10),
        )
    return onboarded.user_id, code.code


async def _signup_referee(auth_subject: str, *, code: str, at: datetime, ip: str = "203.0.113.7") -> int:
    async with SessionLocal.begin() as session:
        onboarded = await UserOnboardingService.ensure_user(
            session,
            auth_subject=auth_subject,
            name="Sam",
            referral_code=code,
            signup_ip=ip,
            signup_device_id=f"device-{auth_subject}",
            now_utc=at,
        )
    assert onboarded.referral is not None
    assert onboarded.referral.success is True
    return onboarded.user_id


def _activation_payload(auth_subject: str) -> dict[str, object]:
    return {
        "type": "subscriptionItem.updated",
        "data": {
            "id": f"si_{auth_subject}",
            "subscription_id": f"sub_{auth_subject}",
            "plan_id": "plan_premium",
            "plan_slug": "premium_monthly",
            "user_id": auth_subject,
            "status": "active",
            "current_period_start": (T0 + timedelta(hours=48)).isoformat(),
            "current_period_end": (T0 + timedelta(days=32)).isoformat(),
        },
    }


async def test_signup_then_paid_activation_rewards_free_referrer() -> None:
    referrer_id, code = await _create_referrer("auth|referrer")
    referee_id = await _signup_referee("auth|referee", code=code, at=T0)

    async with SessionLocal.begin() as session:
        result = await reconcile_billing_event(
            session,
            payload=_activation_payload("auth|referee"),
            now_utc=T0 + timedelta(hours=48),
        )

    assert result.entitlement.user_id == referee_id
    assert result.conversion is not None
    assert result.conversion.rewarded is True
    assert result.conversion.reward_type == "discount_code"

    async with SessionLocal.begin() as session:
        referral = await session.scalar(select(Referral).where(Referral.referee_user_id == referee_id))
        rewards = (
            await session.scalars(select(ReferralReward).where(ReferralReward.user_id == referrer_id))
        ).all()
        stats = await ReferralService.get_referrer_stats(
            session,
            user_id=referrer_id,
            now_utc=T0 + timedelta(hours=49),
        )

    assert referral is not None
    assert referral.status == "rewarded"
    assert referral.converted_at is not None
    assert referral.rewarded_at is not None
    assert len(rewards) == 1
    assert rewards[0].idempotency_key == f"referral:reward:{referral.id}"
    assert DISCOUNT_CODE_RE.match(rewards[0].discount_code or "")
    assert stats.rewarded == 1
    assert stats.unused_discount_codes == (rewards[0].discount_code,)


async def test_activation_before_48_hours_keeps_referral_pending() -> None:
    _, code = await _create_referrer("auth|early-referrer")
    referee_id = await _signup_referee("auth|early-referee", code=code, at=T0)

    async with SessionLocal.begin() as session:
        result = await reconcile_billing_event(
            session,
            payload=_activation_payload("auth|early-referee"),
            now_utc=T0 + timedelta(hours=47, minutes=59),
        )

    assert result.conversion is not None
    assert result.conversion.processed is False
    assert result.conversion.reason == "too_soon"

    async with SessionLocal.begin() as session:
        referral = await session.scalar(select(Referral).where(Referral.referee_user_id == referee_id))
    assert referral is not None
    assert referral.status == "pending"


async def test_self_referral_with_own_code_is_rejected() -> None:
    referrer_id, code = await _create_referrer("auth|self")

    async with SessionLocal.begin() as session:
        result = await ReferralService.register_referral_signup(
            session,
            referee_user_id=referrer_id,
            referral_code=code,
            now_utc=T0,
        )

    assert result.success is False
    assert result.reason == "self_referral"
    async with SessionLocal.begin() as session:
        count = len((await session.scalars(select(Referral))).all())
    assert count == 0


async def test_expiry_sweep_only_touches_referrals_older_than_90_days() -> None:
    _, code = await _create_referrer("auth|expiry-referrer")
    now_utc = T0 + timedelta(days=200)
    stale_id = await _signup_referee(
        "auth|stale", code=code, at=now_utc - timedelta(days=91), ip="198.51.100.1"
    )
    fresh_id = await _signup_referee(
        "auth|fresh", code=code, at=now_utc - timedelta(days=89), ip="198.51.100.2"
    )

    async with SessionLocal.begin() as session:
        sweep = await ReferralService.expire_stale_referrals(session, now_utc=now_utc)

    assert sweep.expired_count == 1
    assert sweep.has_more is False
    async with SessionLocal.begin() as session:
        statuses = {
            row.referee_user_id: row.status for row in (await session.scalars(select(Referral))).all()
        }
    assert statuses == {stale_id: "expired", fresh_id: "pending"}


async def test_retry_sweep_escalates_after_max_retries(monkeypatch) -> None:
    referrer_id, code = await _create_referrer("auth|retry-referrer")
    referee_id = await _signup_referee("auth|retry-referee", code=code, at=T0)

    async with SessionLocal.begin() as session:
        referral = await session.scalar(select(Referral).where(Referral.referee_user_id == referee_id))
        assert referral is not None
        converted = await ReferralService.mark_referral_converted(
            session,
            referral_id=referral.id,
            now_utc=T0 + timedelta(hours=49),
        )
        assert converted.success is True
        await ReferralService.record_failed_reward(
            session,
            referral_id=referral.id,
            user_id=referrer_id,
            reward_type="discount_code",
            error="RuntimeError: provider down",
            now_utc=T0 + timedelta(hours=49),
        )

    async def failing_grant(session, **kwargs):
        raise RuntimeError("provider down")

    alerts: list[str] = []

    async def fake_send_ops_alert(*, event: str, payload: dict[str, object]) -> bool:
        alerts.append(event)
        return True

    monkeypatch.setattr(failed_rewards_module, "grant_reward", failing_grant)
    monkeypatch.setattr(referrals_tasks, "send_ops_alert", fake_send_ops_alert)

    for _ in range(3):
        await referrals_tasks.retry_failed_referral_rewards_async(max_retries=3)
    final_sweep = await referrals_tasks.retry_failed_referral_rewards_async(max_retries=3)

    async with SessionLocal.begin() as session:
        record = await session.scalar(
            select(FailedReferralReward).where(FailedReferralReward.referral_id == referral.id)
        )
        referral_after = await session.get(Referral, referral.id)

    assert record is not None
    assert record.status == "escalated"
    assert record.retry_count == 3
    assert final_sweep["examined"] == 0
    assert alerts == ["referral_reward_escalated"]
    assert referral_after is not None
    assert referral_after.status == "converted"


async def test_free_user_second_pick_is_refused() -> None:
    user_id, _ = await _create_referrer("auth|picker")
    now_utc = T0 + timedelta(hours=3)

    async with SessionLocal.begin() as session:
        first = await check_can_pick_today(session, user_id=user_id, now_utc=now_utc)
        assert first.allowed is True
        await record_pick(session, user_id=user_id, now_utc=now_utc)
        second = await check_can_pick_today(session, user_id=user_id, now_utc=now_utc)

    assert second.allowed is False
    assert second.current_count == 1
    assert second.limit == 1
    assert second.tier == "free"


async def _add_park_guarded(user_id: int, place_id: str, now_utc: datetime) -> bool:
    try:
        async with SessionLocal.begin() as session:
            await ensure_can_add_park(session, user_id=user_id, now_utc=now_utc)
            return await UserParksRepo.add(session, user_id=user_id, place_id=place_id, added_at=now_utc)
    except EntitlementLimitError:
        return False


async def _pick_guarded(user_id: int, now_utc: datetime) -> bool:
    try:
        async with SessionLocal.begin() as session:
            await ensure_can_pick_today(session, user_id=user_id, now_utc=now_utc)
            await record_pick(session, user_id=user_id, now_utc=now_utc)
    except EntitlementLimitError:
        return False
    return True


async def test_concurrent_park_adds_cannot_exceed_free_limit() -> None:
    user_id, _ = await _create_referrer("auth|park-racer")
    now_utc = T0 + timedelta(hours=1)
    async with SessionLocal.begin() as session:
        for idx in range(4):
            await UserParksRepo.add(session, user_id=user_id, place_id=f"place-{idx}", added_at=now_utc)

    results = await asyncio.gather(
        _add_park_guarded(user_id, "place-a", now_utc),
        _add_park_guarded(user_id, "place-b", now_utc),
    )

    async with SessionLocal.begin() as session:
        total = await UserParksRepo.count_for_user(session, user_id=user_id)
    assert sorted(results) == [False, True]
    assert total == 5


async def test_concurrent_picks_cannot_exceed_free_daily_limit() -> None:
    user_id, _ = await _create_referrer("auth|pick-racer")
    now_utc = T0 + timedelta(hours=2)

    results = await asyncio.gather(_pick_guarded(user_id, now_utc), _pick_guarded(user_id, now_utc))

    async with SessionLocal.begin() as session:
        check = await check_can_pick_today(session, user_id=user_id, now_utc=now_utc)
    assert sorted(results) == [False, True]
    assert check.current_count == 1
