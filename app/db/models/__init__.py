from app.db.models.daily_pick_counts import DailyPickCount
from app.db.models.entitlements import Entitlement
from app.db.models.failed_referral_rewards import FailedReferralReward
from app.db.models.referral_codes import ReferralCode
from app.db.models.referral_fraud_signals import ReferralFraudSignal
from app.db.models.referral_rewards import ReferralReward
from app.db.models.referrals import Referral
from app.db.models.user_parks import UserPark
from app.db.models.users import User

__all__ = [
    "DailyPickCount",
    "Entitlement",
    "FailedReferralReward",
    "Referral",
    "ReferralCode",
    "ReferralFraudSignal",
    "ReferralReward",
    "User",
    "UserPark",
]
