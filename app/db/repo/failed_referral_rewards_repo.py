from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.failed_referral_rewards import FailedReferralReward


class FailedReferralRewardsRepo:
    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession,
        *,
        record_id: int,
    ) -> FailedReferralReward | None:
        stmt = (
            select(FailedReferralReward)
            .where(FailedReferralReward.id == record_id)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def upsert_pending(
        session: AsyncSession,
        *,
        referral_id: int,
        user_id: int,
        reward_type: str,
        last_error: str,
        now_utc: datetime,
    ) -> int:
        values = {
            "user_id": user_id,
            "reward_type": reward_type,
            "last_error": last_error,
            "retry_count": 0,
            "status": "pending",
            "last_attempt_at": now_utc,
            "resolved_at": None,
        }
        stmt = (
            insert(FailedReferralReward)
            .values(referral_id=referral_id, created_at=now_utc, **values)
            .on_conflict_do_update(
                index_elements=[FailedReferralReward.referral_id],
                set_=values,
            )
            .returning(FailedReferralReward.id)
        )
        result = await session.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    async def list_pending_ids(
        session: AsyncSession,
        *,
        limit: int,
        after_id: int | None = None,
    ) -> list[int]:
        stmt = (
            select(FailedReferralReward.id)
            .where(FailedReferralReward.status == "pending")
            .order_by(FailedReferralReward.id.asc())
            .limit(max(1, int(limit)))
        )
        if after_id is not None:
            stmt = stmt.where(FailedReferralReward.id > after_id)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_by_status(
        session: AsyncSession,
        *,
        status: str,
        limit: int = 100,
    ) -> list[FailedReferralReward]:
        stmt = (
            select(FailedReferralReward)
            .where(FailedReferralReward.status == status)
            .order_by(FailedReferralReward.last_attempt_at.desc(), FailedReferralReward.id.desc())
            .limit(max(1, min(500, int(limit))))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_by_status(session: AsyncSession) -> dict[str, int]:
        stmt = select(FailedReferralReward.status, func.count(FailedReferralReward.id)).group_by(
            FailedReferralReward.status
        )
        result = await session.execute(stmt)
        return {str(status): int(count) for status, count in result.all()}

    @staticmethod
    async def mark_resolved(
        session: AsyncSession,
        *,
        record_id: int,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(FailedReferralReward)
            .where(FailedReferralReward.id == record_id)
            .values(status="resolved", resolved_at=now_utc, last_attempt_at=now_utc)
            .returning(FailedReferralReward.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def requeue_escalated(
        session: AsyncSession,
        *,
        record_id: int,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(FailedReferralReward)
            .where(
                FailedReferralReward.id == record_id,
                FailedReferralReward.status == "escalated",
            )
            .values(status="pending", retry_count=0, last_attempt_at=now_utc)
            .returning(FailedReferralReward.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def increment_retry_count(
        session: AsyncSession,
        *,
        record_id: int,
        last_error: str,
        max_retries: int,
        now_utc: datetime,
    ) -> tuple[int, str] | None:
        next_count = FailedReferralReward.retry_count + 1
        stmt = (
            update(FailedReferralReward)
            .where(
                FailedReferralReward.id == record_id,
                FailedReferralReward.status == "pending",
            )
            .values(
                retry_count=next_count,
                status=case((next_count >= max_retries, "escalated"), else_="pending"),
                last_error=last_error,
                last_attempt_at=now_utc,
            )
            .returning(FailedReferralReward.retry_count, FailedReferralReward.status)
        )
        result = await session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return int(row[0]), str(row[1])
