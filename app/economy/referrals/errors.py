class ReferralError(Exception):
    pass


class ReferralNotFoundError(ReferralError):
    def __init__(self, referral_id: int) -> None:
        super().__init__(f"referral {referral_id} not found")
        self.referral_id = referral_id


class ReferralTransitionError(ReferralError):
    def __init__(
        self,
        *,
        referral_id: int | None,
        current_status: str,
        target_status: str,
    ) -> None:
        super().__init__(
            f"referral {referral_id}: cannot move from {current_status!r} to {target_status!r}"
        )
        self.referral_id = referral_id
        self.current_status = current_status
        self.target_status = target_status


class DiscountCodeExhaustedError(ReferralError):
    pass


class ReferralCodeExhaustedError(ReferralError):
    pass


class FailedRewardNotFoundError(ReferralError):
    pass


class UnsupportedRewardTypeError(ReferralError):
    pass
