from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.entitlements import Entitlement
from app.db.repo.daily_pick_counts_repo import DailyPickCountsRepo
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.db.repo.user_parks_repo import UserParksRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.entitlements.constants import (
    DAILY_PICK_LIMIT_EXCEEDED,
    PARK_LIMIT_EXCEEDED,
    PAYMENT_REQUIRED,
    STATUS_ACTIVE,
    TIER_LIMITS,
)
from app.economy.entitlements.errors import EntitlementLimitError
from app.economy.entitlements.tiers import effective_tier_with_bonus, is_payment_issue


@dataclass(frozen=True, slots=True)
class EntitlementCheck:
    allowed: bool
    current_count: int
    limit: int
    tier: str
    payment_issue: bool = False


@dataclass(frozen=True, slots=True)
class ResolvedTier:
    tier: str
    entitlement: Entitlement | None
    bonus_ends_at: datetime | None


@dataclass(frozen=True, slots=True)
class UserEntitlements:
    tier: str
    status: str
    max_parks: int
    picks_per_day: int
    current_parks: int
    picks_today: int
    can_add_park: bool
    can_pick: bool
    period_end: datetime | None
    active_bonus_days_until: datetime | None
    is_trial: bool


def utc_day_key(now_utc: datetime) -> str:
    return now_utc.date().isoformat()


def next_utc_midnight(now_utc: datetime) -> datetime:
    day_start = now_utc.replace(hour=0, minute=0, second=0, microsecond=0)
    return day_start + timedelta(days=1)


async def resolve_user_tier(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> ResolvedTier:
    entitlement = await EntitlementsRepo.get_by_user_id(session, user_id)
    bonus_ends_at = await ReferralRewardsRepo.get_latest_bonus_end(
        session,
        user_id=user_id,
        now_utc=now_utc,
    )
    return ResolvedTier(
        tier=effective_tier_with_bonus(entitlement, bonus_ends_at=bonus_ends_at, now_utc=now_utc),
        entitlement=entitlement,
        bonus_ends_at=bonus_ends_at,
    )


async def check_can_add_park(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> EntitlementCheck:
    resolved = await resolve_user_tier(session, user_id=user_id, now_utc=now_utc)
    limit = TIER_LIMITS[resolved.tier].max_parks
    current_count = await UserParksRepo.count_for_user(session, user_id=user_id)
    return EntitlementCheck(
        allowed=current_count < limit,
        current_count=current_count,
        limit=limit,
        tier=resolved.tier,
        payment_issue=is_payment_issue(resolved.entitlement),
    )


async def check_can_pick_today(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> EntitlementCheck:
    resolved = await resolve_user_tier(session, user_id=user_id, now_utc=now_utc)
    limit = TIER_LIMITS[resolved.tier].picks_per_day
    current_count = await DailyPickCountsRepo.get_count(
        session,
        user_id=user_id,
        day_key=utc_day_key(now_utc),
    )
    return EntitlementCheck(
        allowed=current_count < limit,
        current_count=current_count,
        limit=limit,
        tier=resolved.tier,
        payment_issue=is_payment_issue(resolved.entitlement),
    )


async def record_pick(session: AsyncSession, *, user_id: int, now_utc: datetime) -> int:
    return await DailyPickCountsRepo.increment(
        session,
        user_id=user_id,
        day_key=utc_day_key(now_utc),
    )


async def ensure_can_add_park(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> EntitlementCheck:
    # Concurrent adds for one user queue on the user row until the caller commits.
    await UsersRepo.get_by_id_for_update(session, user_id)
    check = await check_can_add_park(session, user_id=user_id, now_utc=now_utc)
    if check.allowed:
        return check
    if check.payment_issue:
        raise EntitlementLimitError(
            code=PAYMENT_REQUIRED,
            message="Payment issue on your subscription. Update billing to keep adding parks.",
            tier=check.tier,
            limit=check.limit,
            current=check.current_count,
        )
    raise EntitlementLimitError(
        code=PARK_LIMIT_EXCEEDED,
        message=(
            f"Park limit reached ({check.current_count}/{check.limit}). "
            "Upgrade to Premium for unlimited parks."
        ),
        tier=check.tier,
        limit=check.limit,
        current=check.current_count,
    )


async def ensure_can_pick_today(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> EntitlementCheck:
    await UsersRepo.get_by_id_for_update(session, user_id)
    check = await check_can_pick_today(session, user_id=user_id, now_utc=now_utc)
    if check.allowed:
        return check
    resets_at = next_utc_midnight(now_utc)
    if check.payment_issue:
        raise EntitlementLimitError(
            code=PAYMENT_REQUIRED,
            message="Payment issue on your subscription. Update billing to keep picking.",
            tier=check.tier,
            limit=check.limit,
            current=check.current_count,
            resets_at=resets_at,
        )
    raise EntitlementLimitError(
        code=DAILY_PICK_LIMIT_EXCEEDED,
        message=(
            f"Daily pick limit reached ({check.current_count}/{check.limit}). "
            "Upgrade to Premium for unlimited picks."
        ),
        tier=check.tier,
        limit=check.limit,
        current=check.current_count,
        resets_at=resets_at,
    )


async def get_user_entitlements(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> UserEntitlements:
    resolved = await resolve_user_tier(session, user_id=user_id, now_utc=now_utc)
    limits = TIER_LIMITS[resolved.tier]
    current_parks = await UserParksRepo.count_for_user(session, user_id=user_id)
    picks_today = await DailyPickCountsRepo.get_count(
        session,
        user_id=user_id,
        day_key=utc_day_key(now_utc),
    )
    entitlement = resolved.entitlement
    return UserEntitlements(
        tier=resolved.tier,
        status=entitlement.status if entitlement is not None else STATUS_ACTIVE,
        max_parks=limits.max_parks,
        picks_per_day=limits.picks_per_day,
        current_parks=current_parks,
        picks_today=picks_today,
        can_add_park=current_parks < limits.max_parks,
        can_pick=picks_today < limits.picks_per_day,
        period_end=entitlement.period_end if entitlement is not None else None,
        active_bonus_days_until=resolved.bonus_ends_at,
        is_trial=bool(entitlement.is_trial) if entitlement is not None else False,
    )
