from __future__ import annotations

from dataclasses import dataclass

TIER_FREE = "free"
TIER_PREMIUM = "premium"

STATUS_ACTIVE = "active"
STATUS_PAST_DUE = "past_due"
STATUS_CANCELED = "canceled"
STATUS_INCOMPLETE = "incomplete"
PAYMENT_ISSUE_STATUSES = frozenset({STATUS_PAST_DUE, STATUS_INCOMPLETE})

# Finite stand-in for "no limit" so payloads stay JSON and int32 safe.
UNLIMITED = 2_147_483_647


@dataclass(frozen=True, slots=True)
class TierLimits:
    max_parks: int
    picks_per_day: int


TIER_LIMITS = {
    TIER_FREE: TierLimits(max_parks=5, picks_per_day=1),
    TIER_PREMIUM: TierLimits(max_parks=UNLIMITED, picks_per_day=UNLIMITED),
}

PARK_LIMIT_EXCEEDED = "PARK_LIMIT_EXCEEDED"
DAILY_PICK_LIMIT_EXCEEDED = "DAILY_PICK_LIMIT_EXCEEDED"
PAYMENT_REQUIRED = "PAYMENT_REQUIRED"

FREE_PLAN_SLUGS = ("free", "free_user", "trial")
PROVIDER_TRIAL_STATUS = "trialing"
PROVIDER_STATUS_MAP = {
    "active": STATUS_ACTIVE,
    "past_due": STATUS_PAST_DUE,
    "canceled": STATUS_CANCELED,
    "incomplete": STATUS_INCOMPLETE,
    "ended": STATUS_CANCELED,
    "upcoming": STATUS_ACTIVE,
    PROVIDER_TRIAL_STATUS: STATUS_ACTIVE,
}
