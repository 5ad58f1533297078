from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.economy.entitlements.billing_events import (
    BillingApplyResult,
    SubscriptionItemDeleted,
    apply_billing_event,
    parse_billing_event,
)
from app.economy.referrals.service import ProcessConversionResult, ReferralService

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class BillingReconcileResult:
    entitlement: BillingApplyResult
    conversion: ProcessConversionResult | None = None


async def reconcile_billing_event(
    session: AsyncSession,
    *,
    payload: dict[str, object],
    now_utc: datetime,
) -> BillingReconcileResult:
    """Syncs the entitlement from a billing event, then runs referral conversion.

    Raises pydantic.ValidationError when a known event type has a malformed body.
    """
    event = parse_billing_event(payload)
    applied = await apply_billing_event(session, event=event, now_utc=now_utc)
    logger.info(
        "billing_event_applied",
        event_type=applied.event_type,
        handled=applied.handled,
        reason=applied.reason,
        user_id=applied.user_id,
        tier=applied.tier,
        status=applied.status,
    )
    if (
        not applied.handled
        or applied.user_id is None
        or applied.provider_status is None
        or isinstance(event, SubscriptionItemDeleted)
    ):
        return BillingReconcileResult(entitlement=applied)

    conversion = await ReferralService.process_referral_conversion(
        session,
        referee_user_id=applied.user_id,
        provider_status=applied.provider_status,
        now_utc=now_utc,
    )
    logger.info(
        "referral_conversion_processed",
        user_id=applied.user_id,
        processed=conversion.processed,
        rewarded=conversion.rewarded,
        reason=conversion.reason,
        referral_id=conversion.referral_id,
        reward_type=conversion.reward_type,
    )
    return BillingReconcileResult(entitlement=applied, conversion=conversion)


def is_valid_billing_secret(*, expected_secret: str, received_secret: str | None) -> bool:
    if not expected_secret or not received_secret:
        return False
    return secrets.compare_digest(expected_secret, received_secret)
