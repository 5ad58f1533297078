from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.entitlements_repo import EntitlementsRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.entitlements.constants import (
    FREE_PLAN_SLUGS,
    PROVIDER_STATUS_MAP,
    PROVIDER_TRIAL_STATUS,
    STATUS_ACTIVE,
    STATUS_CANCELED,
    TIER_FREE,
    TIER_PREMIUM,
)


class SubscriptionItemData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    subscription_id: str | None = None
    plan_id: str | None = None
    plan_slug: str | None = None
    user_id: str | None = None
    status: str
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None


class SubscriptionData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str | None = None
    status: str
    items: list[SubscriptionItemData] = Field(default_factory=list)


class SubscriptionItemUpserted(BaseModel):
    type: Literal["subscriptionItem.created", "subscriptionItem.updated"]
    data: SubscriptionItemData


class SubscriptionItemDeleted(BaseModel):
    type: Literal["subscriptionItem.deleted"]
    data: SubscriptionItemData


class SubscriptionChanged(BaseModel):
    type: Literal[
        "subscription.created",
        "subscription.updated",
        "subscription.active",
        "subscription.pastDue",
    ]
    data: SubscriptionData


class UnhandledBillingEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str


KnownBillingEvent = Annotated[
    SubscriptionItemUpserted | SubscriptionItemDeleted | SubscriptionChanged,
    Field(discriminator="type"),
]
_KNOWN_EVENT_ADAPTER: TypeAdapter[KnownBillingEvent] = TypeAdapter(KnownBillingEvent)
KNOWN_EVENT_TYPES = frozenset(
    {
        "subscriptionItem.created",
        "subscriptionItem.updated",
        "subscriptionItem.deleted",
        "subscription.created",
        "subscription.updated",
        "subscription.active",
        "subscription.pastDue",
    }
)


@dataclass(frozen=True, slots=True)
class BillingApplyResult:
    event_type: str
    handled: bool
    reason: str | None = None
    user_id: int | None = None
    tier: str | None = None
    status: str | None = None
    provider_status: str | None = None


def parse_billing_event(
    payload: dict[str, object],
) -> SubscriptionItemUpserted | SubscriptionItemDeleted | SubscriptionChanged | UnhandledBillingEvent:
    """Raises pydantic.ValidationError for a malformed known event."""
    event_type = payload.get("type")
    if isinstance(event_type, str) and event_type in KNOWN_EVENT_TYPES:
        return _KNOWN_EVENT_ADAPTER.validate_python(payload)
    return UnhandledBillingEvent.model_validate(payload)


def map_provider_status(provider_status: str) -> tuple[str, bool]:
    """Maps a provider status to (internal status, is_trial). Unknown maps to active."""
    normalized = provider_status.strip().lower()
    return PROVIDER_STATUS_MAP.get(normalized, STATUS_ACTIVE), normalized == PROVIDER_TRIAL_STATUS


def tier_from_plan_slug(plan_slug: str | None) -> str:
    slug = (plan_slug or "").lower()
    if any(free_slug in slug for free_slug in FREE_PLAN_SLUGS):
        return TIER_FREE
    return TIER_PREMIUM


async def _upsert_item(
    session: AsyncSession,
    *,
    event_type: str,
    item: SubscriptionItemData,
    user_subject: str | None,
    provider_status: str,
    now_utc: datetime,
) -> BillingApplyResult:
    if not user_subject:
        return BillingApplyResult(event_type=event_type, handled=False, reason="missing_user_id")

    user = await UsersRepo.get_by_auth_subject(session, user_subject)
    if user is None:
        return BillingApplyResult(event_type=event_type, handled=False, reason="user_not_found")

    status, is_trial = map_provider_status(provider_status)
    tier = tier_from_plan_slug(item.plan_slug)
    await EntitlementsRepo.upsert_from_billing(
        session,
        user_id=user.id,
        tier=tier,
        status=status,
        is_trial=is_trial,
        period_start=item.current_period_start,
        period_end=item.current_period_end,
        billing_subscription_id=item.subscription_id,
        billing_subscription_item_id=item.id,
        billing_plan_id=item.plan_id,
        now_utc=now_utc,
    )
    return BillingApplyResult(
        event_type=event_type,
        handled=True,
        user_id=user.id,
        tier=tier,
        status=status,
        provider_status=provider_status.strip().lower(),
    )


async def apply_billing_event(
    session: AsyncSession,
    *,
    event: SubscriptionItemUpserted
    | SubscriptionItemDeleted
    | SubscriptionChanged
    | UnhandledBillingEvent,
    now_utc: datetime,
) -> BillingApplyResult:
    match event:
        case SubscriptionItemUpserted(data=item):
            return await _upsert_item(
                session,
                event_type=event.type,
                item=item,
                user_subject=item.user_id,
                provider_status=item.status,
                now_utc=now_utc,
            )
        case SubscriptionItemDeleted(data=item):
            return await _upsert_item(
                session,
                event_type=event.type,
                item=item.model_copy(
                    update={"current_period_start": None, "current_period_end": None}
                ),
                user_subject=item.user_id,
                provider_status=STATUS_CANCELED,
                now_utc=now_utc,
            )
        case SubscriptionChanged(data=subscription):
            if not subscription.items:
                return BillingApplyResult(
                    event_type=event.type,
                    handled=False,
                    reason="no_subscription_items",
                )
            item = subscription.items[0]
            return await _upsert_item(
                session,
                event_type=event.type,
                item=item.model_copy(
                    update={"subscription_id": item.subscription_id or subscription.id}
                ),
                user_subject=item.user_id or subscription.user_id,
                provider_status=item.status or subscription.status,
                now_utc=now_utc,
            )
        case _:
            return BillingApplyResult(event_type=event.type, handled=False, reason="ignored")
