from __future__ import annotations

from datetime import datetime

from sqlalchemy import case
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.referral_fraud_signals import ReferralFraudSignal


class FraudSignalsRepo:
    @staticmethod
    async def bump_counter(
        session: AsyncSession,
        *,
        identifier: str,
        signal_type: str,
        window_start_utc: datetime,
        now_utc: datetime,
    ) -> int:
        """Atomically counts one more signup for the identifier.

        A counter whose window started before `window_start_utc` is reset to 1
        in the same statement, so concurrent signups never lose increments.
        """
        stale = ReferralFraudSignal.first_seen_at < window_start_utc
        stmt = (
            insert(ReferralFraudSignal)
            .values(
                identifier=identifier,
                signal_type=signal_type,
                count=1,
                first_seen_at=now_utc,
                last_seen_at=now_utc,
            )
            .on_conflict_do_update(
                index_elements=[ReferralFraudSignal.identifier, ReferralFraudSignal.signal_type],
                set_={
                    "count": case((stale, 1), else_=ReferralFraudSignal.count + 1),
                    "first_seen_at": case((stale, now_utc), else_=ReferralFraudSignal.first_seen_at),
                    "last_seen_at": now_utc,
                },
            )
            .returning(ReferralFraudSignal.count)
        )
        result = await session.execute(stmt)
        return int(result.scalar_one())
