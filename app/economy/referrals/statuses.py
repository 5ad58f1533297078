from __future__ import annotations

from enum import Enum

from app.economy.referrals.errors import ReferralTransitionError


class ReferralStatus(str, Enum):
    PENDING = "pending"
    CONVERTED = "converted"
    REWARDED = "rewarded"
    EXPIRED = "expired"
    FRAUDULENT = "fraudulent"


ALLOWED_TRANSITIONS: dict[ReferralStatus, frozenset[ReferralStatus]] = {
    ReferralStatus.PENDING: frozenset(
        {ReferralStatus.CONVERTED, ReferralStatus.EXPIRED, ReferralStatus.FRAUDULENT}
    ),
    ReferralStatus.CONVERTED: frozenset({ReferralStatus.REWARDED, ReferralStatus.FRAUDULENT}),
    ReferralStatus.REWARDED: frozenset(),
    ReferralStatus.EXPIRED: frozenset(),
    ReferralStatus.FRAUDULENT: frozenset(),
}


def allowed_sources(target: ReferralStatus) -> tuple[str, ...]:
    """Statuses a referral may be in for a move to `target` to be legal."""
    return tuple(
        source.value
        for source, targets in ALLOWED_TRANSITIONS.items()
        if target in targets
    )


def can_transition(current: str, target: ReferralStatus) -> bool:
    try:
        current_status = ReferralStatus(current)
    except ValueError:
        return False
    return target in ALLOWED_TRANSITIONS[current_status]


def ensure_transition(
    current: str,
    target: ReferralStatus,
    *,
    referral_id: int | None = None,
) -> None:
    if not can_transition(current, target):
        raise ReferralTransitionError(
            referral_id=referral_id,
            current_status=str(current),
            target_status=target.value,
        )
