from __future__ import annotations

import re
from datetime import timedelta

REFERRAL_CODE_RE = re.compile(r"^[A-Z0-9]{4,6}-[A-Z0-9]{4}$")

CONVERSION_MIN_DELAY = timedelta(hours=48)
REFERRAL_EXPIRY_AGE = timedelta(days=90)
REFERRAL_EXPIRY_BATCH_SIZE = 100

REWARD_MAX_TOTAL = 12
REWARD_MAX_PER_WINDOW = 3
REWARD_LIMIT_WINDOW = timedelta(days=30)

REWARD_TYPE_BONUS_DAYS = "bonus_days"
REWARD_TYPE_DISCOUNT_CODE = "discount_code"
BONUS_DAYS_DURATION = timedelta(days=30)
DISCOUNT_CODE_MAX_ATTEMPTS = 10
REFERRAL_CODE_MAX_ATTEMPTS = 10

FRAUD_VELOCITY_WINDOW = timedelta(days=7)
FRAUD_MAX_SIGNUPS_PER_IP = 3
FRAUD_MAX_SIGNUPS_PER_DEVICE = 2
FRAUD_SIGNAL_IP = "ip_signup"
FRAUD_SIGNAL_DEVICE = "device_signup"
CODE_VELOCITY_HOUR_WINDOW = timedelta(hours=1)
CODE_VELOCITY_DAY_WINDOW = timedelta(days=1)
CODE_VELOCITY_MAX_PER_HOUR = 10
CODE_VELOCITY_MAX_PER_DAY = 50

FAILED_REWARD_PENDING = "pending"
FAILED_REWARD_RESOLVED = "resolved"
FAILED_REWARD_ESCALATED = "escalated"
DEFAULT_MAX_REWARD_RETRIES = 3

REASON_ALREADY_REFERRED = "already_referred"
REASON_SELF_REFERRAL = "self_referral"
REASON_INVALID_CODE = "invalid_code"
REASON_INVALID_REFERRAL = "invalid_referral"
REASON_TOO_SOON = "too_soon"
REASON_MAX_TOTAL_REACHED = "max_total_reached"
REASON_MONTHLY_LIMIT_REACHED = "monthly_limit_reached"
REASON_IP_MATCH = "ip_match_existing_referral"
REASON_DEVICE_MATCH = "device_match_existing_referral"
REASON_IP_VELOCITY = "ip_velocity_exceeded"
REASON_DEVICE_VELOCITY = "device_velocity_exceeded"
REASON_CODE_HOURLY_LIMIT = "hourly_limit_exceeded"
REASON_CODE_DAILY_LIMIT = "daily_limit_exceeded"
REASON_SUBSCRIPTION_NOT_ACTIVE = "subscription_not_active"
REASON_TRIAL_SUBSCRIPTION = "trial_subscription"
REASON_NO_PENDING_REFERRAL = "no_pending_referral"
REASON_REWARD_GRANT_FAILED = "reward_grant_failed"
