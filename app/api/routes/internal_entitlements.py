from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.db.repo.user_parks_repo import UserParksRepo
from app.db.session import SessionLocal
from app.economy.entitlements.constants import PAYMENT_REQUIRED
from app.economy.entitlements.errors import EntitlementLimitError
from app.economy.entitlements.gate import (
    EntitlementCheck,
    check_can_add_park,
    check_can_pick_today,
    ensure_can_add_park,
    ensure_can_pick_today,
    get_user_entitlements,
    record_pick,
)

from .internal_access import assert_internal_access

router = APIRouter(tags=["internal", "entitlements"])


class EntitlementLimitsResponse(BaseModel):
    max_parks: int = Field(ge=0)
    picks_per_day: int = Field(ge=0)


class EntitlementUsageResponse(BaseModel):
    current_parks: int = Field(ge=0)
    picks_today: int = Field(ge=0)


class UserEntitlementsResponse(BaseModel):
    tier: str
    status: str
    is_trial: bool
    limits: EntitlementLimitsResponse
    usage: EntitlementUsageResponse
    can_add_park: bool
    can_pick: bool
    period_end: datetime | None = None
    active_bonus_days_until: datetime | None = None


class EntitlementCheckResponse(BaseModel):
    allowed: bool
    current_count: int = Field(ge=0)
    limit: int = Field(ge=0)
    tier: str


class AddParkRequest(BaseModel):
    place_id: str = Field(min_length=1, max_length=255)


class ParkAddedResponse(BaseModel):
    place_id: str
    added: bool
    current_parks: int = Field(ge=0)
    limit: int = Field(ge=0)


class PickRecordedResponse(BaseModel):
    picks_today: int = Field(ge=1)
    limit: int = Field(ge=0)
    tier: str


def _as_check(check: EntitlementCheck) -> EntitlementCheckResponse:
    return EntitlementCheckResponse(
        allowed=check.allowed,
        current_count=check.current_count,
        limit=check.limit,
        tier=check.tier,
    )


def _limit_exception(exc: EntitlementLimitError) -> HTTPException:
    status_code = 402 if exc.code == PAYMENT_REQUIRED else 403
    return HTTPException(status_code=status_code, detail=exc.to_payload())


@router.get("/internal/entitlements/users/{user_id}", response_model=UserEntitlementsResponse)
async def get_entitlements(user_id: int, request: Request) -> UserEntitlementsResponse:
    assert_internal_access(request, settings=get_settings(), scope="entitlements")

    async with SessionLocal.begin() as session:
        overview = await get_user_entitlements(
            session,
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    return UserEntitlementsResponse(
        tier=overview.tier,
        status=overview.status,
        is_trial=overview.is_trial,
        limits=EntitlementLimitsResponse(
            max_parks=overview.max_parks,
            picks_per_day=overview.picks_per_day,
        ),
        usage=EntitlementUsageResponse(
            current_parks=overview.current_parks,
            picks_today=overview.picks_today,
        ),
        can_add_park=overview.can_add_park,
        can_pick=overview.can_pick,
        period_end=overview.period_end,
        active_bonus_days_until=overview.active_bonus_days_until,
    )


@router.get(
    "/internal/entitlements/users/{user_id}/can-add-park",
    response_model=EntitlementCheckResponse,
)
async def can_add_park(user_id: int, request: Request) -> EntitlementCheckResponse:
    assert_internal_access(request, settings=get_settings(), scope="entitlements")

    async with SessionLocal.begin() as session:
        check = await check_can_add_park(
            session,
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    return _as_check(check)


@router.get(
    "/internal/entitlements/users/{user_id}/can-pick",
    response_model=EntitlementCheckResponse,
)
async def can_pick(user_id: int, request: Request) -> EntitlementCheckResponse:
    assert_internal_access(request, settings=get_settings(), scope="entitlements")

    async with SessionLocal.begin() as session:
        check = await check_can_pick_today(
            session,
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    return _as_check(check)


@router.post("/internal/entitlements/users/{user_id}/picks", response_model=PickRecordedResponse)
async def record_user_pick(user_id: int, request: Request) -> PickRecordedResponse:
    assert_internal_access(request, settings=get_settings(), scope="entitlements")

    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            check = await ensure_can_pick_today(session, user_id=user_id, now_utc=now_utc)
            picks_today = await record_pick(session, user_id=user_id, now_utc=now_utc)
    except EntitlementLimitError as exc:
        raise _limit_exception(exc) from exc
    return PickRecordedResponse(picks_today=picks_today, limit=check.limit, tier=check.tier)


@router.post("/internal/entitlements/users/{user_id}/parks", response_model=ParkAddedResponse)
async def add_user_park(user_id: int, payload: AddParkRequest, request: Request) -> ParkAddedResponse:
    assert_internal_access(request, settings=get_settings(), scope="entitlements")

    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            check = await ensure_can_add_park(session, user_id=user_id, now_utc=now_utc)
            added = await UserParksRepo.add(
                session,
                user_id=user_id,
                place_id=payload.place_id,
                added_at=now_utc,
            )
    except EntitlementLimitError as exc:
        raise _limit_exception(exc) from exc
    return ParkAddedResponse(
        place_id=payload.place_id,
        added=added,
        current_parks=check.current_count + int(added),
        limit=check.limit,
    )
