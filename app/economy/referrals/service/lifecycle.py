from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.referrals.constants import (
    CONVERSION_MIN_DELAY,
    REASON_INVALID_REFERRAL,
    REASON_TOO_SOON,
)
from app.economy.referrals.errors import ReferralNotFoundError, ReferralTransitionError
from app.economy.referrals.statuses import ReferralStatus, allowed_sources

from .models import ConversionResult


async def _raise_failed_transition(
    session: AsyncSession,
    *,
    referral_id: int,
    target: ReferralStatus,
) -> None:
    current_status = await ReferralsRepo.get_status(session, referral_id=referral_id)
    if current_status is None:
        raise ReferralNotFoundError(referral_id)
    raise ReferralTransitionError(
        referral_id=referral_id,
        current_status=current_status,
        target_status=target.value,
    )


async def mark_referral_converted(
    session: AsyncSession,
    *,
    referral_id: int,
    now_utc: datetime,
) -> ConversionResult:
    referral = await ReferralsRepo.get_by_id(session, referral_id)
    if referral is None or referral.status != ReferralStatus.PENDING.value:
        return ConversionResult(success=False, reason=REASON_INVALID_REFERRAL)
    if now_utc - referral.signup_at < CONVERSION_MIN_DELAY:
        return ConversionResult(success=False, reason=REASON_TOO_SOON)

    moved = await ReferralsRepo.transition_status(
        session,
        referral_id=referral_id,
        from_statuses=allowed_sources(ReferralStatus.CONVERTED),
        to_status=ReferralStatus.CONVERTED.value,
        values={"converted_at": now_utc},
    )
    if not moved:
        return ConversionResult(success=False, reason=REASON_INVALID_REFERRAL)
    return ConversionResult(success=True, referrer_user_id=referral.referrer_user_id)


async def mark_referral_rewarded(
    session: AsyncSession,
    *,
    referral_id: int,
    now_utc: datetime,
) -> None:
    moved = await ReferralsRepo.transition_status(
        session,
        referral_id=referral_id,
        from_statuses=allowed_sources(ReferralStatus.REWARDED),
        to_status=ReferralStatus.REWARDED.value,
        values={"rewarded_at": now_utc},
    )
    if not moved:
        await _raise_failed_transition(
            session,
            referral_id=referral_id,
            target=ReferralStatus.REWARDED,
        )


async def mark_referral_fraudulent(
    session: AsyncSession,
    *,
    referral_id: int,
    reason: str | None,
) -> None:
    moved = await ReferralsRepo.transition_status(
        session,
        referral_id=referral_id,
        from_statuses=allowed_sources(ReferralStatus.FRAUDULENT),
        to_status=ReferralStatus.FRAUDULENT.value,
        values={"fraud_reason": reason},
    )
    if not moved:
        await _raise_failed_transition(
            session,
            referral_id=referral_id,
            target=ReferralStatus.FRAUDULENT,
        )
