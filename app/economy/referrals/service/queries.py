from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.referrals.statuses import ReferralStatus

from .models import ReferrerStats


async def get_referrer_stats(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> ReferrerStats:
    counts = await ReferralsRepo.count_by_status_for_referrer(session, referrer_user_id=user_id)
    total_rewards = await ReferralRewardsRepo.count_for_user(session, user_id=user_id)
    bonus_ends_at = await ReferralRewardsRepo.get_latest_bonus_end(
        session,
        user_id=user_id,
        now_utc=now_utc,
    )
    unused_codes = await ReferralRewardsRepo.list_unused_discount_codes(session, user_id=user_id)
    return ReferrerStats(
        total=sum(counts.values()),
        pending=counts.get(ReferralStatus.PENDING.value, 0),
        converted=counts.get(ReferralStatus.CONVERTED.value, 0),
        rewarded=counts.get(ReferralStatus.REWARDED.value, 0),
        expired=counts.get(ReferralStatus.EXPIRED.value, 0),
        fraudulent=counts.get(ReferralStatus.FRAUDULENT.value, 0),
        total_rewards_earned=total_rewards,
        active_bonus_days_until=bonus_ends_at,
        unused_discount_codes=tuple(
            reward.discount_code for reward in unused_codes if reward.discount_code is not None
        ),
    )
