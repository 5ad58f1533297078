from app.economy.referrals.service import ReferralService

__all__ = [
    "ReferralService",
]
