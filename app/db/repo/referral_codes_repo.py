from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.referral_codes import ReferralCode


class ReferralCodesRepo:
    @staticmethod
    async def get_by_code(session: AsyncSession, code: str) -> ReferralCode | None:
        stmt = select(ReferralCode).where(ReferralCode.code == code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_active_for_user(session: AsyncSession, user_id: int) -> ReferralCode | None:
        stmt = (
            select(ReferralCode)
            .where(ReferralCode.user_id == user_id, ReferralCode.is_active.is_(True))
            .order_by(ReferralCode.created_at.asc(), ReferralCode.id.asc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def code_exists(session: AsyncSession, code: str) -> bool:
        stmt = select(ReferralCode.id).where(ReferralCode.code == code).limit(1)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        user_id: int,
        code: str,
        created_at: datetime,
    ) -> ReferralCode:
        referral_code = ReferralCode(
            user_id=user_id,
            code=code,
            is_active=True,
            total_referrals=0,
            created_at=created_at,
        )
        session.add(referral_code)
        await session.flush()
        return referral_code

    @staticmethod
    async def increment_total_referrals(session: AsyncSession, *, code_id: int) -> int:
        stmt = (
            update(ReferralCode)
            .where(ReferralCode.id == code_id)
            .values(total_referrals=ReferralCode.total_referrals + 1)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def deactivate(session: AsyncSession, *, code_id: int) -> int:
        stmt = update(ReferralCode).where(ReferralCode.id == code_id).values(is_active=False)
        result = await session.execute(stmt)
        return result.rowcount or 0
