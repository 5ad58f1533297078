from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class FailedReferralReward(Base):
    __tablename__ = "failed_referral_rewards"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','resolved','escalated')",
            name="ck_failed_referral_rewards_status",
        ),
        CheckConstraint(
            "reward_type IN ('bonus_days','discount_code')",
            name="ck_failed_referral_rewards_type",
        ),
        CheckConstraint("retry_count >= 0", name="ck_failed_referral_rewards_retry_count"),
        Index("idx_failed_referral_rewards_status", "status", "last_attempt_at"),
        Index("idx_failed_referral_rewards_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    referral_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("referrals.id"),
        unique=True,
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    reward_type: Mapped[str] = mapped_column(String(16), nullable=False)
    last_error: Mapped[str] = mapped_column(Text, nullable=False)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    last_attempt_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
