from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class ReferralReward(Base):
    __tablename__ = "referral_rewards"
    __table_args__ = (
        CheckConstraint(
            "reward_type IN ('bonus_days','discount_code')",
            name="ck_referral_rewards_type",
        ),
        CheckConstraint(
            "(reward_type = 'bonus_days' AND bonus_ends_at IS NOT NULL)"
            " OR (reward_type = 'discount_code' AND discount_code IS NOT NULL)",
            name="ck_referral_rewards_payload",
        ),
        Index("idx_referral_rewards_user_granted", "user_id", "granted_at"),
        Index("idx_referral_rewards_user_bonus_end", "user_id", "bonus_ends_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    referral_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("referrals.id"),
        nullable=False,
    )
    reward_type: Mapped[str] = mapped_column(String(16), nullable=False)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    bonus_starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    bonus_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    discount_code: Mapped[str | None] = mapped_column(String(16), unique=True, nullable=True)
    discount_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    idempotency_key: Mapped[str] = mapped_column(String(96), unique=True, nullable=False)
