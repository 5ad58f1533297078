from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.referral_codes import generate_referral_code
from app.db.repo.referral_codes_repo import ReferralCodesRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.referrals.constants import (
    REASON_INVALID_CODE,
    REFERRAL_CODE_MAX_ATTEMPTS,
    REFERRAL_CODE_RE,
)
from app.economy.referrals.errors import ReferralCodeExhaustedError

from .models import ReferralCodeInfo, ReferralCodeValidation

FALLBACK_REFERRER_NAME = "A friend"


def normalize_referral_code(raw_code: str | None) -> str | None:
    if not raw_code:
        return None
    normalized = raw_code.strip().upper()
    if REFERRAL_CODE_RE.match(normalized) is None:
        return None
    return normalized


async def get_or_create_referral_code(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> ReferralCodeInfo:
    existing = await ReferralCodesRepo.get_active_for_user(session, user_id)
    if existing is not None:
        return ReferralCodeInfo(
            code=existing.code,
            total_referrals=existing.total_referrals,
            created_at=existing.created_at,
        )

    user = await UsersRepo.get_by_id(session, user_id)
    name = user.name if user is not None else None
    for _ in range(REFERRAL_CODE_MAX_ATTEMPTS):
        candidate = generate_referral_code(name)
        if await ReferralCodesRepo.code_exists(session, candidate):
            continue
        created = await ReferralCodesRepo.create(
            session,
            user_id=user_id,
            code=candidate,
            created_at=now_utc,
        )
        return ReferralCodeInfo(
            code=created.code,
            total_referrals=0,
            created_at=created.created_at,
        )
    raise ReferralCodeExhaustedError(f"could not generate a unique referral code for {user_id}")


async def get_referral_code(session: AsyncSession, *, user_id: int) -> ReferralCodeInfo | None:
    existing = await ReferralCodesRepo.get_active_for_user(session, user_id)
    if existing is None:
        return None
    return ReferralCodeInfo(
        code=existing.code,
        total_referrals=existing.total_referrals,
        created_at=existing.created_at,
    )


async def validate_referral_code(session: AsyncSession, *, code: str) -> ReferralCodeValidation:
    """Landing-page lookup: is the code usable, and whose is it."""
    normalized_code = normalize_referral_code(code)
    if normalized_code is None:
        return ReferralCodeValidation(valid=False, reason=REASON_INVALID_CODE)

    record = await ReferralCodesRepo.get_by_code(session, normalized_code)
    if record is None or not record.is_active:
        return ReferralCodeValidation(valid=False, reason=REASON_INVALID_CODE)

    referrer = await UsersRepo.get_by_id(session, record.user_id)
    referrer_name = referrer.name if referrer is not None and referrer.name else None
    return ReferralCodeValidation(valid=True, referrer_name=referrer_name or FALLBACK_REFERRER_NAME)
