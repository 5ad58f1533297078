from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class ReferralFraudSignal(Base):
    __tablename__ = "referral_fraud_signals"
    __table_args__ = (
        CheckConstraint(
            "signal_type IN ('ip_signup','device_signup')",
            name="ck_referral_fraud_signals_type",
        ),
        UniqueConstraint(
            "identifier",
            "signal_type",
            name="uq_referral_fraud_signals_identifier_type",
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    identifier: Mapped[str] = mapped_column(String(64), nullable=False)
    signal_type: Mapped[str] = mapped_column(String(16), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
