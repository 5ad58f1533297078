from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.referral_codes import generate_discount_code
from app.db.models.referral_rewards import ReferralReward
from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.referrals.constants import (
    BONUS_DAYS_DURATION,
    DISCOUNT_CODE_MAX_ATTEMPTS,
    REWARD_TYPE_BONUS_DAYS,
    REWARD_TYPE_DISCOUNT_CODE,
)
from app.economy.referrals.errors import DiscountCodeExhaustedError, UnsupportedRewardTypeError

from .models import RewardGrant


def reward_idempotency_key(referral_id: int) -> str:
    return f"referral:reward:{referral_id}"


def _to_grant(reward: ReferralReward, *, replayed: bool) -> RewardGrant:
    return RewardGrant(
        reward_id=reward.id,
        user_id=reward.user_id,
        referral_id=reward.referral_id,
        reward_type=reward.reward_type,
        bonus_starts_at=reward.bonus_starts_at,
        bonus_ends_at=reward.bonus_ends_at,
        discount_code=reward.discount_code,
        replayed=replayed,
    )


async def _existing_grant(session: AsyncSession, *, referral_id: int) -> RewardGrant | None:
    existing = await ReferralRewardsRepo.get_by_idempotency_key(
        session,
        reward_idempotency_key(referral_id),
    )
    if existing is None:
        return None
    return _to_grant(existing, replayed=True)


async def grant_bonus_days(
    session: AsyncSession,
    *,
    user_id: int,
    referral_id: int,
    now_utc: datetime,
) -> RewardGrant:
    # Serializes stacking for one user; two grants must not start at the same end.
    await UsersRepo.get_by_id_for_update(session, user_id)

    replay = await _existing_grant(session, referral_id=referral_id)
    if replay is not None:
        return replay

    active_end = await ReferralRewardsRepo.get_latest_bonus_end(
        session,
        user_id=user_id,
        now_utc=now_utc,
    )
    starts_at = active_end if active_end is not None else now_utc
    reward = await ReferralRewardsRepo.create(
        session,
        reward=ReferralReward(
            user_id=user_id,
            referral_id=referral_id,
            reward_type=REWARD_TYPE_BONUS_DAYS,
            granted_at=now_utc,
            bonus_starts_at=starts_at,
            bonus_ends_at=starts_at + BONUS_DAYS_DURATION,
            idempotency_key=reward_idempotency_key(referral_id),
        ),
    )
    return _to_grant(reward, replayed=False)


async def grant_discount_code(
    session: AsyncSession,
    *,
    user_id: int,
    referral_id: int,
    now_utc: datetime,
) -> RewardGrant:
    replay = await _existing_grant(session, referral_id=referral_id)
    if replay is not None:
        return replay

    for _ in range(DISCOUNT_CODE_MAX_ATTEMPTS):
        candidate = generate_discount_code()
        if await ReferralRewardsRepo.discount_code_exists(session, candidate):
            continue
        try:
            async with session.begin_nested():
                reward = await ReferralRewardsRepo.create(
                    session,
                    reward=ReferralReward(
                        user_id=user_id,
                        referral_id=referral_id,
                        reward_type=REWARD_TYPE_DISCOUNT_CODE,
                        granted_at=now_utc,
                        discount_code=candidate,
                        idempotency_key=reward_idempotency_key(referral_id),
                    ),
                )
        except IntegrityError:
            replay = await _existing_grant(session, referral_id=referral_id)
            if replay is not None:
                return replay
            continue
        return _to_grant(reward, replayed=False)

    raise DiscountCodeExhaustedError(
        f"no unique discount code after {DISCOUNT_CODE_MAX_ATTEMPTS} attempts"
    )


async def grant_reward(
    session: AsyncSession,
    *,
    reward_type: str,
    user_id: int,
    referral_id: int,
    now_utc: datetime,
) -> RewardGrant:
    if reward_type == REWARD_TYPE_BONUS_DAYS:
        return await grant_bonus_days(
            session,
            user_id=user_id,
            referral_id=referral_id,
            now_utc=now_utc,
        )
    if reward_type == REWARD_TYPE_DISCOUNT_CODE:
        return await grant_discount_code(
            session,
            user_id=user_id,
            referral_id=referral_id,
            now_utc=now_utc,
        )
    raise UnsupportedRewardTypeError(reward_type)


async def mark_discount_used(
    session: AsyncSession,
    *,
    code: str,
    now_utc: datetime,
) -> bool:
    return await ReferralRewardsRepo.mark_discount_used(
        session,
        code=code.strip().upper(),
        used_at=now_utc,
    )
