from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.daily_pick_counts import DailyPickCount


class DailyPickCountsRepo:
    @staticmethod
    async def get_count(session: AsyncSession, *, user_id: int, day_key: str) -> int:
        stmt = select(DailyPickCount.pick_count).where(
            DailyPickCount.user_id == user_id,
            DailyPickCount.day_key == day_key,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one_or_none() or 0)

    @staticmethod
    async def increment(session: AsyncSession, *, user_id: int, day_key: str) -> int:
        stmt = (
            insert(DailyPickCount)
            .values(user_id=user_id, day_key=day_key, pick_count=1)
            .on_conflict_do_update(
                index_elements=[DailyPickCount.user_id, DailyPickCount.day_key],
                set_={"pick_count": DailyPickCount.pick_count + 1},
            )
            .returning(DailyPickCount.pick_count)
        )
        result = await session.execute(stmt)
        return int(result.scalar_one())
