from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.users import User


class UsersRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, user_id: int) -> User | None:
        return await session.get(User, user_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, user_id: int) -> User | None:
        stmt = select(User).where(User.id == user_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_auth_subject(session: AsyncSession, auth_subject: str) -> User | None:
        stmt = select(User).where(User.auth_subject == auth_subject)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        auth_subject: str,
        name: str | None,
        created_at: datetime,
    ) -> User:
        user = User(auth_subject=auth_subject, name=name, created_at=created_at)
        session.add(user)
        await session.flush()
        return user

    @staticmethod
    async def update_name(session: AsyncSession, *, user_id: int, name: str | None) -> int:
        stmt = update(User).where(User.id == user_id).values(name=name)
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def mark_seeded(session: AsyncSession, *, user_id: int, seeded_at: datetime) -> int:
        stmt = (
            update(User)
            .where(User.id == user_id, User.seeded_at.is_(None))
            .values(seeded_at=seeded_at)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0
