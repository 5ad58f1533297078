from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class Referral(Base):
    __tablename__ = "referrals"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','converted','rewarded','expired','fraudulent')",
            name="ck_referrals_status",
        ),
        CheckConstraint(
            "referrer_user_id <> referee_user_id", name="ck_referrals_no_self_referral"
        ),
        Index("idx_referrals_referrer", "referrer_user_id"),
        Index("idx_referrals_code_signup", "referral_code_id", "signup_at"),
        Index("idx_referrals_status_signup", "status", "signup_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    referrer_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )
    referee_user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id"),
        unique=True,
        nullable=False,
    )
    referral_code_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("referral_codes.id"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    signup_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    converted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rewarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    fraud_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
    signup_ip_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    signup_device_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
