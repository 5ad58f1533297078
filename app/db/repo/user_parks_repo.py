from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.user_parks import UserPark


class UserParksRepo:
    @staticmethod
    async def count_for_user(session: AsyncSession, *, user_id: int) -> int:
        stmt = select(func.count(UserPark.id)).where(UserPark.user_id == user_id)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def add(
        session: AsyncSession,
        *,
        user_id: int,
        place_id: str,
        added_at: datetime,
    ) -> bool:
        stmt = (
            insert(UserPark)
            .values(user_id=user_id, place_id=place_id, added_at=added_at)
            .on_conflict_do_nothing(index_elements=[UserPark.user_id, UserPark.place_id])
            .returning(UserPark.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
