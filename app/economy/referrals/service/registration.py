from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.referral_codes_repo import ReferralCodesRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.referrals.constants import (
    FRAUD_SIGNAL_DEVICE,
    FRAUD_SIGNAL_IP,
    REASON_ALREADY_REFERRED,
    REASON_DEVICE_VELOCITY,
    REASON_INVALID_CODE,
    REASON_IP_VELOCITY,
    REASON_SELF_REFERRAL,
)
from app.economy.referrals.fraud import (
    check_and_update_velocity,
    check_code_velocity,
    check_self_referral,
    hash_fingerprint,
)

from .codes import normalize_referral_code
from .lifecycle import mark_referral_fraudulent
from .models import CreateReferralResult


async def create_pending_referral(
    session: AsyncSession,
    *,
    referrer_user_id: int,
    referee_user_id: int,
    now_utc: datetime,
    referral_code_id: int | None = None,
    ip_hash: str | None = None,
    device_hash: str | None = None,
) -> CreateReferralResult:
    existing = await ReferralsRepo.get_by_referee_user_id(
        session,
        referee_user_id=referee_user_id,
    )
    if existing is not None:
        return CreateReferralResult(success=False, reason=REASON_ALREADY_REFERRED)
    if referrer_user_id == referee_user_id:
        return CreateReferralResult(success=False, reason=REASON_SELF_REFERRAL)

    referral_id = await ReferralsRepo.insert_pending(
        session,
        referrer_user_id=referrer_user_id,
        referee_user_id=referee_user_id,
        referral_code_id=referral_code_id,
        signup_at=now_utc,
        signup_ip_hash=ip_hash,
        signup_device_hash=device_hash,
    )
    if referral_id is None:
        # Lost the unique race on referee_user_id to a concurrent signup.
        return CreateReferralResult(success=False, reason=REASON_ALREADY_REFERRED)
    return CreateReferralResult(success=True, referral_id=referral_id)


async def _velocity_fraud_reason(
    session: AsyncSession,
    *,
    ip_hash: str | None,
    device_hash: str | None,
    now_utc: datetime,
) -> str | None:
    reason: str | None = None
    if ip_hash is not None:
        ip_check = await check_and_update_velocity(
            session,
            identifier=ip_hash,
            signal_type=FRAUD_SIGNAL_IP,
            now_utc=now_utc,
        )
        if ip_check.blocked:
            reason = REASON_IP_VELOCITY
    if device_hash is not None:
        device_check = await check_and_update_velocity(
            session,
            identifier=device_hash,
            signal_type=FRAUD_SIGNAL_DEVICE,
            now_utc=now_utc,
        )
        if device_check.blocked and reason is None:
            reason = REASON_DEVICE_VELOCITY
    return reason


async def register_referral_signup(
    session: AsyncSession,
    *,
    referee_user_id: int,
    referral_code: str,
    now_utc: datetime,
    signup_ip: str | None = None,
    signup_device_id: str | None = None,
) -> CreateReferralResult:
    """Attaches a new user to the owner of `referral_code`.

    Code velocity throttling rejects without writing anything. Fingerprint
    signals still record the referral, then flag it as fraudulent so the
    referee can never be attached to another referrer later.
    """
    normalized_code = normalize_referral_code(referral_code)
    if normalized_code is None:
        return CreateReferralResult(success=False, reason=REASON_INVALID_CODE)

    code = await ReferralCodesRepo.get_by_code(session, normalized_code)
    if code is None or not code.is_active:
        return CreateReferralResult(success=False, reason=REASON_INVALID_CODE)

    existing = await ReferralsRepo.get_by_referee_user_id(
        session,
        referee_user_id=referee_user_id,
    )
    if existing is not None:
        return CreateReferralResult(success=False, reason=REASON_ALREADY_REFERRED)
    if code.user_id == referee_user_id:
        return CreateReferralResult(success=False, reason=REASON_SELF_REFERRAL)

    velocity = await check_code_velocity(session, referral_code_id=code.id, now_utc=now_utc)
    if velocity.throttled:
        return CreateReferralResult(success=False, reason=velocity.reason)

    ip_hash = hash_fingerprint(signup_ip)
    device_hash = hash_fingerprint(signup_device_id)

    self_check = await check_self_referral(
        session,
        referrer_user_id=code.user_id,
        ip_hash=ip_hash,
        device_hash=device_hash,
    )
    fraud_reason = self_check.reason if self_check.suspicious else None

    created = await create_pending_referral(
        session,
        referrer_user_id=code.user_id,
        referee_user_id=referee_user_id,
        referral_code_id=code.id,
        ip_hash=ip_hash,
        device_hash=device_hash,
        now_utc=now_utc,
    )
    if not created.success or created.referral_id is None:
        return created

    # Velocity counters only move for signups that were actually recorded.
    velocity_reason = await _velocity_fraud_reason(
        session,
        ip_hash=ip_hash,
        device_hash=device_hash,
        now_utc=now_utc,
    )
    if fraud_reason is None:
        fraud_reason = velocity_reason

    if fraud_reason is not None:
        await mark_referral_fraudulent(
            session,
            referral_id=created.referral_id,
            reason=fraud_reason,
        )
        return CreateReferralResult(
            success=False,
            reason=fraud_reason,
            referral_id=created.referral_id,
        )

    await ReferralCodesRepo.increment_total_referrals(session, code_id=code.id)
    return created
