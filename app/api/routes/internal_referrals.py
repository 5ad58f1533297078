from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.db.models.failed_referral_rewards import FailedReferralReward
from app.db.repo.failed_referral_rewards_repo import FailedReferralRewardsRepo
from app.db.session import SessionLocal
from app.economy.referrals.constants import (
    FAILED_REWARD_ESCALATED,
    FAILED_REWARD_PENDING,
    FAILED_REWARD_RESOLVED,
)
from app.economy.referrals.errors import FailedRewardNotFoundError
from app.economy.referrals.service import ReferralService
from app.services.user_onboarding import UserOnboardingService

from .internal_access import assert_internal_access

router = APIRouter(tags=["internal", "referrals"])
logger = structlog.get_logger(__name__)
FAILED_REWARD_STATUSES = {FAILED_REWARD_PENDING, FAILED_REWARD_RESOLVED, FAILED_REWARD_ESCALATED}


class SignupRequest(BaseModel):
    auth_subject: str = Field(min_length=1, max_length=255)
    name: str | None = Field(default=None, max_length=255)
    referral_code: str | None = Field(default=None, max_length=32)
    signup_ip: str | None = Field(default=None, max_length=64)
    signup_device_id: str | None = Field(default=None, max_length=255)


class SignupReferralResponse(BaseModel):
    success: bool
    reason: str | None = None
    referral_id: int | None = None


class SignupResponse(BaseModel):
    user_id: int
    created: bool
    referral: SignupReferralResponse | None = None


class ReferralCodeResponse(BaseModel):
    code: str
    total_referrals: int = Field(ge=0)
    created_at: datetime


class ReferralCodeValidationResponse(BaseModel):
    valid: bool
    reason: str | None = None
    referrer_name: str | None = None


class ReferrerStatsResponse(BaseModel):
    total: int = Field(ge=0)
    pending: int = Field(ge=0)
    converted: int = Field(ge=0)
    rewarded: int = Field(ge=0)
    expired: int = Field(ge=0)
    fraudulent: int = Field(ge=0)
    total_rewards_earned: int = Field(ge=0)
    active_bonus_days_until: datetime | None = None
    unused_discount_codes: list[str]


class FailedRewardResponse(BaseModel):
    id: int
    referral_id: int
    user_id: int
    reward_type: str
    last_error: str
    retry_count: int = Field(ge=0)
    status: str
    last_attempt_at: datetime
    resolved_at: datetime | None = None
    created_at: datetime


class FailedRewardsListResponse(BaseModel):
    status_counts: dict[str, int]
    items: list[FailedRewardResponse]


class RequeueResponse(BaseModel):
    id: int
    requeued: bool


class DiscountUseResponse(BaseModel):
    code: str
    marked_used: bool


def _as_failed_reward(record: FailedReferralReward) -> FailedRewardResponse:
    return FailedRewardResponse(
        id=record.id,
        referral_id=record.referral_id,
        user_id=record.user_id,
        reward_type=record.reward_type,
        last_error=record.last_error,
        retry_count=record.retry_count,
        status=record.status,
        last_attempt_at=record.last_attempt_at,
        resolved_at=record.resolved_at,
        created_at=record.created_at,
    )


@router.post("/internal/referrals/signup", response_model=SignupResponse)
async def register_signup(payload: SignupRequest, request: Request) -> SignupResponse:
    assert_internal_access(request, settings=get_settings(), scope="referrals")

    async with SessionLocal.begin() as session:
        result = await UserOnboardingService.ensure_user(
            session,
            auth_subject=payload.auth_subject,
            name=payload.name,
            referral_code=payload.referral_code,
            signup_ip=payload.signup_ip,
            signup_device_id=payload.signup_device_id,
        )

    referral = None
    if result.referral is not None:
        referral = SignupReferralResponse(
            success=result.referral.success,
            reason=result.referral.reason,
            referral_id=result.referral.referral_id,
        )
    return SignupResponse(user_id=result.user_id, created=result.created, referral=referral)


@router.post("/internal/referrals/users/{user_id}/code", response_model=ReferralCodeResponse)
async def get_or_create_code(user_id: int, request: Request) -> ReferralCodeResponse:
    assert_internal_access(request, settings=get_settings(), scope="referrals")

    async with SessionLocal.begin() as session:
        code = await ReferralService.get_or_create_referral_code(
            session,
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    return ReferralCodeResponse(
        code=code.code,
        total_referrals=code.total_referrals,
        created_at=code.created_at,
    )


@router.get("/internal/referrals/users/{user_id}/code", response_model=ReferralCodeResponse)
async def get_code(user_id: int, request: Request) -> ReferralCodeResponse:
    assert_internal_access(request, settings=get_settings(), scope="referrals")

    async with SessionLocal.begin() as session:
        code = await ReferralService.get_referral_code(session, user_id=user_id)
    if code is None:
        raise HTTPException(status_code=404, detail={"code": "E_REFERRAL_CODE_NOT_FOUND"})
    return ReferralCodeResponse(
        code=code.code,
        total_referrals=code.total_referrals,
        created_at=code.created_at,
    )


# Public: backs the referral landing page, so no internal guard.
@router.get("/referrals/codes/{code}/validation", response_model=ReferralCodeValidationResponse)
async def validate_code(code: str) -> ReferralCodeValidationResponse:
    async with SessionLocal.begin() as session:
        result = await ReferralService.validate_referral_code(session, code=code)
    return ReferralCodeValidationResponse(
        valid=result.valid,
        reason=result.reason,
        referrer_name=result.referrer_name,
    )


@router.get("/internal/referrals/users/{user_id}/stats", response_model=ReferrerStatsResponse)
async def get_referrer_stats(user_id: int, request: Request) -> ReferrerStatsResponse:
    assert_internal_access(request, settings=get_settings(), scope="referrals")

    async with SessionLocal.begin() as session:
        stats = await ReferralService.get_referrer_stats(
            session,
            user_id=user_id,
            now_utc=datetime.now(timezone.utc),
        )
    return ReferrerStatsResponse(
        total=stats.total,
        pending=stats.pending,
        converted=stats.converted,
        rewarded=stats.rewarded,
        expired=stats.expired,
        fraudulent=stats.fraudulent,
        total_rewards_earned=stats.total_rewards_earned,
        active_bonus_days_until=stats.active_bonus_days_until,
        unused_discount_codes=list(stats.unused_discount_codes),
    )


@router.get("/internal/referrals/failed-rewards", response_model=FailedRewardsListResponse)
async def list_failed_rewards(
    request: Request,
    status: str = Query(default=FAILED_REWARD_ESCALATED),
    limit: int = Query(default=50, ge=1, le=500),
) -> FailedRewardsListResponse:
    assert_internal_access(request, settings=get_settings(), scope="referrals")
    normalized_status = status.strip().lower()
    if normalized_status not in FAILED_REWARD_STATUSES:
        raise HTTPException(status_code=422, detail={"code": "E_FAILED_REWARD_STATUS_INVALID"})

    async with SessionLocal.begin() as session:
        counts = await FailedReferralRewardsRepo.count_by_status(session)
        records = await FailedReferralRewardsRepo.list_by_status(
            session,
            status=normalized_status,
            limit=limit,
        )
        items = [_as_failed_reward(record) for record in records]
    return FailedRewardsListResponse(status_counts=counts, items=items)


@router.post(
    "/internal/referrals/failed-rewards/{record_id}/requeue",
    response_model=RequeueResponse,
)
async def requeue_failed_reward(record_id: int, request: Request) -> RequeueResponse:
    assert_internal_access(request, settings=get_settings(), scope="referrals")

    try:
        async with SessionLocal.begin() as session:
            requeued = await ReferralService.requeue_escalated_reward(
                session,
                record_id=record_id,
                now_utc=datetime.now(timezone.utc),
            )
    except FailedRewardNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_FAILED_REWARD_NOT_FOUND"}) from exc

    if not requeued:
        raise HTTPException(status_code=409, detail={"code": "E_FAILED_REWARD_NOT_ESCALATED"})
    logger.info("failed_referral_reward_requeued", failed_reward_id=record_id)
    return RequeueResponse(id=record_id, requeued=True)


@router.post("/internal/referrals/discount-codes/{code}/use", response_model=DiscountUseResponse)
async def mark_discount_code_used(code: str, request: Request) -> DiscountUseResponse:
    assert_internal_access(request, settings=get_settings(), scope="referrals")

    async with SessionLocal.begin() as session:
        marked = await ReferralService.mark_discount_used(
            session,
            code=code,
            now_utc=datetime.now(timezone.utc),
        )
    if not marked:
        raise HTTPException(status_code=409, detail={"code": "E_DISCOUNT_CODE_UNAVAILABLE"})
    return DiscountUseResponse(code=code.strip().upper(), marked_used=True)
