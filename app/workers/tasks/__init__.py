from app.workers.tasks.referrals import expire_stale_referrals, retry_failed_referral_rewards

__all__ = [
    "expire_stale_referrals",
    "retry_failed_referral_rewards",
]
