from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.economy.referrals.constants import (
    REASON_MAX_TOTAL_REACHED,
    REASON_MONTHLY_LIMIT_REACHED,
    REWARD_LIMIT_WINDOW,
    REWARD_MAX_PER_WINDOW,
    REWARD_MAX_TOTAL,
)

from .models import RewardLimitCheck


async def check_reward_limits(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> RewardLimitCheck:
    total = await ReferralRewardsRepo.count_for_user(session, user_id=user_id)
    if total >= REWARD_MAX_TOTAL:
        return RewardLimitCheck(can_receive_reward=False, reason=REASON_MAX_TOTAL_REACHED)

    recent = await ReferralRewardsRepo.count_for_user_since(
        session,
        user_id=user_id,
        since_utc=now_utc - REWARD_LIMIT_WINDOW,
    )
    if recent >= REWARD_MAX_PER_WINDOW:
        return RewardLimitCheck(can_receive_reward=False, reason=REASON_MONTHLY_LIMIT_REACHED)
    return RewardLimitCheck(can_receive_reward=True)
