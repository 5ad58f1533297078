from __future__ import annotations

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class DailyPickCount(Base):
    __tablename__ = "daily_pick_counts"
    __table_args__ = (
        CheckConstraint("pick_count >= 0", name="ck_daily_pick_counts_non_negative"),
        UniqueConstraint("user_id", "day_key", name="uq_daily_pick_counts_user_day"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    day_key: Mapped[str] = mapped_column(String(10), nullable=False)
    pick_count: Mapped[int] = mapped_column(Integer, nullable=False)
