from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class CreateReferralResult:
    success: bool
    reason: str | None = None
    referral_id: int | None = None


@dataclass(frozen=True, slots=True)
class ConversionResult:
    success: bool
    reason: str | None = None
    referrer_user_id: int | None = None


@dataclass(frozen=True, slots=True)
class RewardLimitCheck:
    can_receive_reward: bool
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class ExpirySweepResult:
    expired_count: int
    has_more: bool


@dataclass(frozen=True, slots=True)
class ProcessConversionResult:
    processed: bool
    rewarded: bool = False
    reason: str | None = None
    referral_id: int | None = None
    referrer_user_id: int | None = None
    reward_type: str | None = None


@dataclass(frozen=True, slots=True)
class RewardGrant:
    reward_id: int
    user_id: int
    referral_id: int
    reward_type: str
    bonus_starts_at: datetime | None = None
    bonus_ends_at: datetime | None = None
    discount_code: str | None = None
    replayed: bool = False


@dataclass(frozen=True, slots=True)
class ReferralCodeInfo:
    code: str
    total_referrals: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ReferrerStats:
    total: int
    pending: int
    converted: int
    rewarded: int
    expired: int
    fraudulent: int
    total_rewards_earned: int
    active_bonus_days_until: datetime | None
    unused_discount_codes: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ReferralCodeValidation:
    valid: bool
    reason: str | None = None
    referrer_name: str | None = None
