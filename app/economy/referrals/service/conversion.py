from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.entitlements.constants import PROVIDER_TRIAL_STATUS, TIER_PREMIUM
from app.economy.entitlements.gate import resolve_user_tier
from app.economy.referrals.constants import (
    REASON_NO_PENDING_REFERRAL,
    REASON_REWARD_GRANT_FAILED,
    REASON_SUBSCRIPTION_NOT_ACTIVE,
    REASON_TRIAL_SUBSCRIPTION,
    REWARD_TYPE_BONUS_DAYS,
    REWARD_TYPE_DISCOUNT_CODE,
)
from app.economy.referrals.errors import ReferralNotFoundError, ReferralTransitionError

from .failed_rewards import format_reward_error, record_failed_reward
from .lifecycle import mark_referral_converted, mark_referral_rewarded
from .limits import check_reward_limits
from .models import ProcessConversionResult
from .rewards_grant import grant_reward

logger = structlog.get_logger(__name__)


async def choose_reward_type(
    session: AsyncSession,
    *,
    referrer_user_id: int,
    now_utc: datetime,
) -> str:
    resolved = await resolve_user_tier(session, user_id=referrer_user_id, now_utc=now_utc)
    if resolved.tier == TIER_PREMIUM:
        return REWARD_TYPE_BONUS_DAYS
    return REWARD_TYPE_DISCOUNT_CODE


async def process_referral_conversion(
    session: AsyncSession,
    *,
    referee_user_id: int,
    provider_status: str,
    now_utc: datetime,
) -> ProcessConversionResult:
    """Converts the referee's pending referral and rewards the referrer.

    The conversion is kept even when the reward cannot be granted: limits
    end the flow as processed-not-rewarded, grant failures are queued for
    the retry sweep.
    """
    if provider_status == PROVIDER_TRIAL_STATUS:
        return ProcessConversionResult(processed=False, reason=REASON_TRIAL_SUBSCRIPTION)
    if provider_status != "active":
        return ProcessConversionResult(processed=False, reason=REASON_SUBSCRIPTION_NOT_ACTIVE)

    referral = await ReferralsRepo.get_pending_by_referee_user_id(
        session,
        referee_user_id=referee_user_id,
    )
    if referral is None:
        return ProcessConversionResult(processed=False, reason=REASON_NO_PENDING_REFERRAL)

    converted = await mark_referral_converted(session, referral_id=referral.id, now_utc=now_utc)
    if not converted.success:
        return ProcessConversionResult(
            processed=False,
            reason=converted.reason,
            referral_id=referral.id,
        )

    referrer_user_id = referral.referrer_user_id
    limit_check = await check_reward_limits(session, user_id=referrer_user_id, now_utc=now_utc)
    if not limit_check.can_receive_reward:
        return ProcessConversionResult(
            processed=True,
            rewarded=False,
            reason=limit_check.reason,
            referral_id=referral.id,
            referrer_user_id=referrer_user_id,
        )

    reward_type = await choose_reward_type(
        session,
        referrer_user_id=referrer_user_id,
        now_utc=now_utc,
    )
    try:
        async with session.begin_nested():
            await grant_reward(
                session,
                reward_type=reward_type,
                user_id=referrer_user_id,
                referral_id=referral.id,
                now_utc=now_utc,
            )
            await mark_referral_rewarded(session, referral_id=referral.id, now_utc=now_utc)
    except (ReferralNotFoundError, ReferralTransitionError):
        raise
    except Exception as exc:
        logger.exception(
            "referral_reward_grant_failed",
            referral_id=referral.id,
            referrer_user_id=referrer_user_id,
            reward_type=reward_type,
        )
        await record_failed_reward(
            session,
            referral_id=referral.id,
            user_id=referrer_user_id,
            reward_type=reward_type,
            error=format_reward_error(exc),
            now_utc=now_utc,
        )
        return ProcessConversionResult(
            processed=True,
            rewarded=False,
            reason=REASON_REWARD_GRANT_FAILED,
            referral_id=referral.id,
            referrer_user_id=referrer_user_id,
            reward_type=reward_type,
        )

    return ProcessConversionResult(
        processed=True,
        rewarded=True,
        referral_id=referral.id,
        referrer_user_id=referrer_user_id,
        reward_type=reward_type,
    )
