from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.users import User
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.referrals.service import CreateReferralResult, ReferralService

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class OnboardingResult:
    user_id: int
    created: bool
    referral: CreateReferralResult | None = None


class UserOnboardingService:
    @staticmethod
    async def _create_user(
        session: AsyncSession,
        *,
        auth_subject: str,
        name: str | None,
        now_utc: datetime,
    ) -> tuple[User, bool]:
        try:
            async with session.begin_nested():
                user = await UsersRepo.create(
                    session,
                    auth_subject=auth_subject,
                    name=name,
                    created_at=now_utc,
                )
        except IntegrityError:
            existing = await UsersRepo.get_by_auth_subject(session, auth_subject)
            if existing is None:
                raise
            return existing, False
        return user, True

    @staticmethod
    async def _process_signup_referral(
        session: AsyncSession,
        *,
        user_id: int,
        referral_code: str,
        signup_ip: str | None,
        signup_device_id: str | None,
        now_utc: datetime,
    ) -> CreateReferralResult | None:
        # A broken referral must never block account creation.
        try:
            async with session.begin_nested():
                result = await ReferralService.register_referral_signup(
                    session,
                    referee_user_id=user_id,
                    referral_code=referral_code,
                    signup_ip=signup_ip,
                    signup_device_id=signup_device_id,
                    now_utc=now_utc,
                )
        except Exception:
            logger.exception("signup_referral_processing_failed", user_id=user_id)
            return None

        if result.success:
            logger.info("signup_referral_created", user_id=user_id, referral_id=result.referral_id)
        else:
            logger.info(
                "signup_referral_rejected",
                user_id=user_id,
                reason=result.reason,
                referral_id=result.referral_id,
            )
        return result

    @staticmethod
    async def ensure_user(
        session: AsyncSession,
        *,
        auth_subject: str,
        name: str | None = None,
        referral_code: str | None = None,
        signup_ip: str | None = None,
        signup_device_id: str | None = None,
        now_utc: datetime | None = None,
    ) -> OnboardingResult:
        resolved_now = now_utc or datetime.now(timezone.utc)

        existing = await UsersRepo.get_by_auth_subject(session, auth_subject)
        if existing is not None:
            if name is not None and existing.name != name:
                await UsersRepo.update_name(session, user_id=existing.id, name=name)
            return OnboardingResult(user_id=existing.id, created=False)

        user, created = await UserOnboardingService._create_user(
            session,
            auth_subject=auth_subject,
            name=name,
            now_utc=resolved_now,
        )
        if not created:
            return OnboardingResult(user_id=user.id, created=False)

        await EntitlementsRepo.create_default_free(session, user_id=user.id, now_utc=resolved_now)
        await UsersRepo.mark_seeded(session, user_id=user.id, seeded_at=resolved_now)

        referral: CreateReferralResult | None = None
        if referral_code:
            referral = await UserOnboardingService._process_signup_referral(
                session,
                user_id=user.id,
                referral_code=referral_code,
                signup_ip=signup_ip,
                signup_device_id=signup_device_id,
                now_utc=resolved_now,
            )
        return OnboardingResult(user_id=user.id, created=True, referral=referral)
