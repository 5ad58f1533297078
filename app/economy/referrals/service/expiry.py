from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.referrals.constants import REFERRAL_EXPIRY_AGE, REFERRAL_EXPIRY_BATCH_SIZE

from .models import ExpirySweepResult


async def expire_stale_referrals(
    session: AsyncSession,
    *,
    now_utc: datetime,
    batch_size: int = REFERRAL_EXPIRY_BATCH_SIZE,
) -> ExpirySweepResult:
    referral_ids = await ReferralsRepo.list_expirable_ids(
        session,
        signed_up_before_utc=now_utc - REFERRAL_EXPIRY_AGE,
        limit=batch_size,
    )
    expired_count = await ReferralsRepo.expire_ids(session, referral_ids=referral_ids)
    return ExpirySweepResult(
        expired_count=expired_count,
        has_more=len(referral_ids) == batch_size,
    )
