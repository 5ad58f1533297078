from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.referrals import Referral


class ReferralsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, referral_id: int) -> Referral | None:
        return await session.get(Referral, referral_id)

    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession,
        *,
        referral_id: int,
    ) -> Referral | None:
        stmt = select(Referral).where(Referral.id == referral_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_referee_user_id(
        session: AsyncSession,
        *,
        referee_user_id: int,
    ) -> Referral | None:
        stmt = select(Referral).where(Referral.referee_user_id == referee_user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_pending_by_referee_user_id(
        session: AsyncSession,
        *,
        referee_user_id: int,
    ) -> Referral | None:
        stmt = select(Referral).where(
            Referral.referee_user_id == referee_user_id,
            Referral.status == "pending",
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def insert_pending(
        session: AsyncSession,
        *,
        referrer_user_id: int,
        referee_user_id: int,
        referral_code_id: int | None,
        signup_at: datetime,
        signup_ip_hash: str | None,
        signup_device_hash: str | None,
    ) -> int | None:
        """Returns the new referral id, or None when the referee already has one."""
        stmt = (
            insert(Referral)
            .values(
                referrer_user_id=referrer_user_id,
                referee_user_id=referee_user_id,
                referral_code_id=referral_code_id,
                status="pending",
                signup_at=signup_at,
                signup_ip_hash=signup_ip_hash,
                signup_device_hash=signup_device_hash,
            )
            .on_conflict_do_nothing(index_elements=[Referral.referee_user_id])
            .returning(Referral.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def transition_status(
        session: AsyncSession,
        *,
        referral_id: int,
        from_statuses: Sequence[str],
        to_status: str,
        values: dict[str, object] | None = None,
    ) -> bool:
        stmt = (
            update(Referral)
            .where(Referral.id == referral_id, Referral.status.in_(tuple(from_statuses)))
            .values(status=to_status, **(values or {}))
            .returning(Referral.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_fingerprint_matches(
        session: AsyncSession,
        *,
        referrer_user_id: int,
        ip_hash: str | None,
        device_hash: str | None,
    ) -> list[Referral]:
        conditions = []
        if ip_hash is not None:
            conditions.append(Referral.signup_ip_hash == ip_hash)
        if device_hash is not None:
            conditions.append(Referral.signup_device_hash == device_hash)
        if not conditions:
            return []
        stmt = (
            select(Referral)
            .where(Referral.referrer_user_id == referrer_user_id, or_(*conditions))
            .order_by(Referral.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_for_code_since(
        session: AsyncSession,
        *,
        referral_code_id: int,
        since_utc: datetime,
    ) -> int:
        stmt = select(func.count(Referral.id)).where(
            Referral.referral_code_id == referral_code_id,
            Referral.signup_at > since_utc,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_expirable_ids(
        session: AsyncSession,
        *,
        signed_up_before_utc: datetime,
        limit: int,
    ) -> list[int]:
        stmt = (
            select(Referral.id)
            .where(Referral.status == "pending", Referral.signup_at < signed_up_before_utc)
            .order_by(Referral.signup_at.asc(), Referral.id.asc())
            .limit(max(1, int(limit)))
            .with_for_update(skip_locked=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def expire_ids(session: AsyncSession, *, referral_ids: Sequence[int]) -> int:
        ids = tuple(referral_ids)
        if not ids:
            return 0
        stmt = (
            update(Referral)
            .where(Referral.id.in_(ids), Referral.status == "pending")
            .values(status="expired")
            .returning(Referral.id)
        )
        result = await session.execute(stmt)
        return len(list(result.scalars()))

    @staticmethod
    async def count_by_status_for_referrer(
        session: AsyncSession,
        *,
        referrer_user_id: int,
    ) -> dict[str, int]:
        stmt = (
            select(Referral.status, func.count(Referral.id))
            .where(Referral.referrer_user_id == referrer_user_id)
            .group_by(Referral.status)
        )
        result = await session.execute(stmt)
        return {str(status): int(count) for status, count in result.all()}

    @staticmethod
    async def get_status(session: AsyncSession, *, referral_id: int) -> str | None:
        stmt = select(Referral.status).where(Referral.id == referral_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
