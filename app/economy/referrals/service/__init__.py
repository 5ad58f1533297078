from __future__ import annotations

from .codes import (
    get_or_create_referral_code,
    get_referral_code,
    normalize_referral_code,
    validate_referral_code,
)
from .conversion import choose_reward_type, process_referral_conversion
from .expiry import expire_stale_referrals
from .failed_rewards import (
    increment_retry_count,
    record_failed_reward,
    requeue_escalated_reward,
    retry_failed_reward,
)
from .lifecycle import mark_referral_converted, mark_referral_fraudulent, mark_referral_rewarded
from .limits import check_reward_limits
from .models import (
    ConversionResult,
    CreateReferralResult,
    ExpirySweepResult,
    ProcessConversionResult,
    ReferralCodeInfo,
    ReferralCodeValidation,
    ReferrerStats,
    RewardGrant,
    RewardLimitCheck,
)
from .queries import get_referrer_stats
from .registration import create_pending_referral, register_referral_signup
from .rewards_grant import (
    grant_bonus_days,
    grant_discount_code,
    grant_reward,
    mark_discount_used,
    reward_idempotency_key,
)


class ReferralService:
    normalize_referral_code = staticmethod(normalize_referral_code)
    get_or_create_referral_code = staticmethod(get_or_create_referral_code)
    get_referral_code = staticmethod(get_referral_code)
    validate_referral_code = staticmethod(validate_referral_code)
    create_pending_referral = staticmethod(create_pending_referral)
    register_referral_signup = staticmethod(register_referral_signup)
    mark_referral_converted = staticmethod(mark_referral_converted)
    mark_referral_rewarded = staticmethod(mark_referral_rewarded)
    mark_referral_fraudulent = staticmethod(mark_referral_fraudulent)
    expire_stale_referrals = staticmethod(expire_stale_referrals)
    check_reward_limits = staticmethod(check_reward_limits)
    choose_reward_type = staticmethod(choose_reward_type)
    process_referral_conversion = staticmethod(process_referral_conversion)
    grant_bonus_days = staticmethod(grant_bonus_days)
    grant_discount_code = staticmethod(grant_discount_code)
    grant_reward = staticmethod(grant_reward)
    mark_discount_used = staticmethod(mark_discount_used)
    reward_idempotency_key = staticmethod(reward_idempotency_key)
    record_failed_reward = staticmethod(record_failed_reward)
    increment_retry_count = staticmethod(increment_retry_count)
    retry_failed_reward = staticmethod(retry_failed_reward)
    requeue_escalated_reward = staticmethod(requeue_escalated_reward)
    get_referrer_stats = staticmethod(get_referrer_stats)


__all__ = [
    "ConversionResult",
    "CreateReferralResult",
    "ExpirySweepResult",
    "ProcessConversionResult",
    "ReferralCodeInfo",
    "ReferralCodeValidation",
    "ReferralService",
    "ReferrerStats",
    "RewardGrant",
    "RewardLimitCheck",
]
