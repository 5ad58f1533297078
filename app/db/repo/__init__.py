from app.db.repo.daily_pick_counts_repo import DailyPickCountsRepo
from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.repo.failed_referral_rewards_repo import FailedReferralRewardsRepo
from app.db.repo.fraud_signals_repo import FraudSignalsRepo
from app.db.repo.referral_codes_repo import ReferralCodesRepo
from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.db.repo.user_parks_repo import UserParksRepo
from app.db.repo.users_repo import UsersRepo

__all__ = [
    "DailyPickCountsRepo",
    "EntitlementsRepo",
    "FailedReferralRewardsRepo",
    "FraudSignalsRepo",
    "ReferralCodesRepo",
    "ReferralRewardsRepo",
    "ReferralsRepo",
    "UserParksRepo",
    "UsersRepo",
]
