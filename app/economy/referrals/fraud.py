from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.repo.fraud_signals_repo import FraudSignalsRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.referrals.constants import (
    CODE_VELOCITY_DAY_WINDOW,
    CODE_VELOCITY_HOUR_WINDOW,
    CODE_VELOCITY_MAX_PER_DAY,
    CODE_VELOCITY_MAX_PER_HOUR,
    FRAUD_MAX_SIGNUPS_PER_DEVICE,
    FRAUD_MAX_SIGNUPS_PER_IP,
    FRAUD_SIGNAL_DEVICE,
    FRAUD_SIGNAL_IP,
    FRAUD_VELOCITY_WINDOW,
    REASON_CODE_DAILY_LIMIT,
    REASON_CODE_HOURLY_LIMIT,
    REASON_DEVICE_MATCH,
    REASON_IP_MATCH,
)

SIGNAL_LIMITS = {
    FRAUD_SIGNAL_IP: FRAUD_MAX_SIGNUPS_PER_IP,
    FRAUD_SIGNAL_DEVICE: FRAUD_MAX_SIGNUPS_PER_DEVICE,
}


@dataclass(frozen=True, slots=True)
class SelfReferralCheck:
    suspicious: bool
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class VelocityCheck:
    blocked: bool
    count: int


@dataclass(frozen=True, slots=True)
class CodeVelocityCheck:
    throttled: bool
    reason: str | None = None


def hash_fingerprint(raw_value: str | None, *, pepper: str | None = None) -> str | None:
    """Peppered SHA-256 of an IP or device id. Raw values are never persisted."""
    if raw_value is None:
        return None
    normalized = raw_value.strip()
    if not normalized:
        return None
    resolved_pepper = pepper if pepper is not None else get_settings().fingerprint_pepper
    digest = hashlib.sha256(f"{resolved_pepper}:{normalized}".encode("utf-8"))
    return digest.hexdigest()


async def check_self_referral(
    session: AsyncSession,
    *,
    referrer_user_id: int,
    ip_hash: str | None,
    device_hash: str | None,
) -> SelfReferralCheck:
    if ip_hash is None and device_hash is None:
        return SelfReferralCheck(suspicious=False)

    matches = await ReferralsRepo.list_fingerprint_matches(
        session,
        referrer_user_id=referrer_user_id,
        ip_hash=ip_hash,
        device_hash=device_hash,
    )
    if ip_hash is not None and any(item.signup_ip_hash == ip_hash for item in matches):
        return SelfReferralCheck(suspicious=True, reason=REASON_IP_MATCH)
    if device_hash is not None and any(
        item.signup_device_hash == device_hash for item in matches
    ):
        return SelfReferralCheck(suspicious=True, reason=REASON_DEVICE_MATCH)
    return SelfReferralCheck(suspicious=False)


async def check_and_update_velocity(
    session: AsyncSession,
    *,
    identifier: str,
    signal_type: str,
    now_utc: datetime,
) -> VelocityCheck:
    limit = SIGNAL_LIMITS.get(signal_type)
    if limit is None:
        raise ValueError(f"unknown fraud signal type: {signal_type}")

    count = await FraudSignalsRepo.bump_counter(
        session,
        identifier=identifier,
        signal_type=signal_type,
        window_start_utc=now_utc - FRAUD_VELOCITY_WINDOW,
        now_utc=now_utc,
    )
    return VelocityCheck(blocked=count > limit, count=count)


async def check_code_velocity(
    session: AsyncSession,
    *,
    referral_code_id: int,
    now_utc: datetime,
) -> CodeVelocityCheck:
    last_hour = await ReferralsRepo.count_for_code_since(
        session,
        referral_code_id=referral_code_id,
        since_utc=now_utc - CODE_VELOCITY_HOUR_WINDOW,
    )
    if last_hour >= CODE_VELOCITY_MAX_PER_HOUR:
        return CodeVelocityCheck(throttled=True, reason=REASON_CODE_HOURLY_LIMIT)

    last_day = await ReferralsRepo.count_for_code_since(
        session,
        referral_code_id=referral_code_id,
        since_utc=now_utc - CODE_VELOCITY_DAY_WINDOW,
    )
    if last_day >= CODE_VELOCITY_MAX_PER_DAY:
        return CodeVelocityCheck(throttled=True, reason=REASON_CODE_DAILY_LIMIT)
    return CodeVelocityCheck(throttled=False)
