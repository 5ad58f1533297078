from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.failed_referral_rewards_repo import FailedReferralRewardsRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.referrals.constants import (
    DEFAULT_MAX_REWARD_RETRIES,
    FAILED_REWARD_ESCALATED,
    FAILED_REWARD_PENDING,
)
from app.economy.referrals.errors import FailedRewardNotFoundError, ReferralNotFoundError
from app.economy.referrals.statuses import ReferralStatus, ensure_transition

from .lifecycle import mark_referral_rewarded
from .rewards_grant import grant_reward

MAX_ERROR_LENGTH = 2000


def format_reward_error(exc: BaseException) -> str:
    message = f"{type(exc).__name__}: {exc}"
    return message[:MAX_ERROR_LENGTH]


async def record_failed_reward(
    session: AsyncSession,
    *,
    referral_id: int,
    user_id: int,
    reward_type: str,
    error: str,
    now_utc: datetime,
) -> int:
    """One record per referral; a repeated failure resets it to a fresh pending state."""
    return await FailedReferralRewardsRepo.upsert_pending(
        session,
        referral_id=referral_id,
        user_id=user_id,
        reward_type=reward_type,
        last_error=error[:MAX_ERROR_LENGTH],
        now_utc=now_utc,
    )


async def increment_retry_count(
    session: AsyncSession,
    *,
    record_id: int,
    error: str,
    now_utc: datetime,
    max_retries: int = DEFAULT_MAX_REWARD_RETRIES,
) -> tuple[int, str] | None:
    """Returns (retry_count, status) or None when the record is no longer pending."""
    return await FailedReferralRewardsRepo.increment_retry_count(
        session,
        record_id=record_id,
        last_error=error[:MAX_ERROR_LENGTH],
        max_retries=max_retries,
        now_utc=now_utc,
    )


async def retry_failed_reward(
    session: AsyncSession,
    *,
    record_id: int,
    now_utc: datetime,
) -> str:
    record = await FailedReferralRewardsRepo.get_by_id_for_update(session, record_id=record_id)
    if record is None:
        return "missing"
    if record.status != FAILED_REWARD_PENDING:
        return "skipped"

    referral = await ReferralsRepo.get_by_id_for_update(session, referral_id=record.referral_id)
    if referral is None:
        raise ReferralNotFoundError(record.referral_id)
    if referral.status == ReferralStatus.REWARDED.value:
        await FailedReferralRewardsRepo.mark_resolved(session, record_id=record.id, now_utc=now_utc)
        return "succeeded"
    ensure_transition(referral.status, ReferralStatus.REWARDED, referral_id=referral.id)

    await grant_reward(
        session,
        reward_type=record.reward_type,
        user_id=record.user_id,
        referral_id=record.referral_id,
        now_utc=now_utc,
    )
    await mark_referral_rewarded(session, referral_id=record.referral_id, now_utc=now_utc)
    await FailedReferralRewardsRepo.mark_resolved(session, record_id=record.id, now_utc=now_utc)
    return "succeeded"


async def requeue_escalated_reward(
    session: AsyncSession,
    *,
    record_id: int,
    now_utc: datetime,
) -> bool:
    record = await FailedReferralRewardsRepo.get_by_id_for_update(session, record_id=record_id)
    if record is None:
        raise FailedRewardNotFoundError(f"failed reward {record_id} not found")
    if record.status != FAILED_REWARD_ESCALATED:
        return False
    return await FailedReferralRewardsRepo.requeue_escalated(
        session,
        record_id=record_id,
        now_utc=now_utc,
    )
