from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.entitlements import Entitlement


class EntitlementsRepo:
    @staticmethod
    async def get_by_user_id(session: AsyncSession, user_id: int) -> Entitlement | None:
        stmt = select(Entitlement).where(Entitlement.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_default_free(
        session: AsyncSession,
        *,
        user_id: int,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            insert(Entitlement)
            .values(
                user_id=user_id,
                tier="free",
                status="active",
                is_trial=False,
                created_at=now_utc,
                updated_at=now_utc,
            )
            .on_conflict_do_nothing(index_elements=[Entitlement.user_id])
            .returning(Entitlement.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def upsert_from_billing(
        session: AsyncSession,
        *,
        user_id: int,
        tier: str,
        status: str,
        is_trial: bool,
        period_start: datetime | None,
        period_end: datetime | None,
        billing_subscription_id: str | None,
        billing_subscription_item_id: str | None,
        billing_plan_id: str | None,
        now_utc: datetime,
    ) -> Entitlement:
        values = {
            "tier": tier,
            "status": status,
            "is_trial": is_trial,
            "period_start": period_start,
            "period_end": period_end,
            "billing_subscription_id": billing_subscription_id,
            "billing_subscription_item_id": billing_subscription_item_id,
            "billing_plan_id": billing_plan_id,
            "updated_at": now_utc,
        }
        stmt = (
            insert(Entitlement)
            .values(user_id=user_id, created_at=now_utc, **values)
            .on_conflict_do_update(index_elements=[Entitlement.user_id], set_=values)
            .returning(Entitlement)
        )
        result = await session.execute(stmt)
        return result.scalar_one()
