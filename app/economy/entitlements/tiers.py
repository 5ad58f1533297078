from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from app.db.models.entitlements import Entitlement
from app.db.models.referral_rewards import ReferralReward
from app.economy.entitlements.constants import (
    PAYMENT_ISSUE_STATUSES,
    STATUS_ACTIVE,
    STATUS_CANCELED,
    TIER_FREE,
    TIER_PREMIUM,
)


def effective_tier(entitlement: Entitlement | None, *, now_utc: datetime) -> str:
    """Resolves the tier a stored subscription entitles the user to right now.

    Precedence:
      1. no entitlement row -> free
      2. premium + active -> premium, whatever the period end says
      3. premium + canceled with a period end still ahead -> premium
         (paid-through period, trials included)
      4. everything else -> free
    """
    if entitlement is None:
        return TIER_FREE
    if entitlement.tier != TIER_PREMIUM:
        return TIER_FREE
    if entitlement.status == STATUS_ACTIVE:
        return TIER_PREMIUM
    if (
        entitlement.status == STATUS_CANCELED
        and entitlement.period_end is not None
        and entitlement.period_end > now_utc
    ):
        return TIER_PREMIUM
    return TIER_FREE


def effective_tier_with_bonus(
    entitlement: Entitlement | None,
    *,
    bonus_ends_at: datetime | None,
    now_utc: datetime,
) -> str:
    if bonus_ends_at is not None and bonus_ends_at > now_utc:
        return TIER_PREMIUM
    return effective_tier(entitlement, now_utc=now_utc)


def active_bonus_end(grants: Iterable[ReferralReward], *, now_utc: datetime) -> datetime | None:
    """Returns the end of the active bonus window: the latest end still in the future."""
    latest_end: datetime | None = None
    for grant in grants:
        ends_at = grant.bonus_ends_at
        if ends_at is None or ends_at <= now_utc:
            continue
        if latest_end is None or ends_at > latest_end:
            latest_end = ends_at
    return latest_end


def is_payment_issue(entitlement: Entitlement | None) -> bool:
    return (
        entitlement is not None
        and entitlement.tier == TIER_PREMIUM
        and entitlement.status in PAYMENT_ISSUE_STATUSES
    )
