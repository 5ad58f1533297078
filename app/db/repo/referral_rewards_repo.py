from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.referral_rewards import ReferralReward


class ReferralRewardsRepo:
    @staticmethod
    async def get_by_idempotency_key(
        session: AsyncSession,
        idempotency_key: str,
    ) -> ReferralReward | None:
        stmt = select(ReferralReward).where(ReferralReward.idempotency_key == idempotency_key)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def discount_code_exists(session: AsyncSession, code: str) -> bool:
        stmt = select(ReferralReward.id).where(ReferralReward.discount_code == code).limit(1)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def get_latest_bonus_end(
        session: AsyncSession,
        *,
        user_id: int,
        now_utc: datetime,
    ) -> datetime | None:
        stmt = select(func.max(ReferralReward.bonus_ends_at)).where(
            ReferralReward.user_id == user_id,
            ReferralReward.reward_type == "bonus_days",
            ReferralReward.bonus_ends_at > now_utc,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def count_for_user(session: AsyncSession, *, user_id: int) -> int:
        stmt = select(func.count(ReferralReward.id)).where(ReferralReward.user_id == user_id)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_for_user_since(
        session: AsyncSession,
        *,
        user_id: int,
        since_utc: datetime,
    ) -> int:
        stmt = select(func.count(ReferralReward.id)).where(
            ReferralReward.user_id == user_id,
            ReferralReward.granted_at >= since_utc,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_unused_discount_codes(
        session: AsyncSession,
        *,
        user_id: int,
    ) -> list[ReferralReward]:
        stmt = (
            select(ReferralReward)
            .where(
                ReferralReward.user_id == user_id,
                ReferralReward.reward_type == "discount_code",
                ReferralReward.discount_used_at.is_(None),
            )
            .order_by(ReferralReward.granted_at.asc(), ReferralReward.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def create(session: AsyncSession, *, reward: ReferralReward) -> ReferralReward:
        session.add(reward)
        await session.flush()
        return reward

    @staticmethod
    async def mark_discount_used(
        session: AsyncSession,
        *,
        code: str,
        used_at: datetime,
    ) -> bool:
        stmt = (
            update(ReferralReward)
            .where(
                ReferralReward.discount_code == code,
                ReferralReward.discount_used_at.is_(None),
            )
            .values(discount_used_at=used_at)
            .returning(ReferralReward.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
