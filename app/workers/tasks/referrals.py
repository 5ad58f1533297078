from __future__ import annotations

from datetime import datetime, timezone

import structlog
from celery.schedules import crontab

from app.core.config import get_settings
from app.db.repo.failed_referral_rewards_repo import FailedReferralRewardsRepo
from app.db.session import SessionLocal
from app.economy.referrals.constants import FAILED_REWARD_ESCALATED, REFERRAL_EXPIRY_BATCH_SIZE
from app.economy.referrals.service import ReferralService
from app.economy.referrals.service.failed_rewards import format_reward_error
from app.services.alerts import send_ops_alert
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


async def _retry_single_reward(record_id: int, *, now_utc: datetime) -> str:
    async with SessionLocal.begin() as session:
        return await ReferralService.retry_failed_reward(
            session,
            record_id=record_id,
            now_utc=now_utc,
        )


async def _register_retry_failure(
    record_id: int,
    *,
    error: str,
    max_retries: int,
    now_utc: datetime,
) -> str | None:
    async with SessionLocal.begin() as session:
        updated = await ReferralService.increment_retry_count(
            session,
            record_id=record_id,
            error=error,
            max_retries=max_retries,
            now_utc=now_utc,
        )
    if updated is None:
        return None
    _, status = updated
    return status


async def retry_failed_referral_rewards_async(
    *,
    batch_size: int | None = None,
    max_retries: int | None = None,
) -> dict[str, int]:
    settings = get_settings()
    resolved_batch_size = batch_size or settings.referral_reward_retry_batch_size
    resolved_max_retries = max_retries or settings.referral_reward_max_retries
    now_utc = datetime.now(timezone.utc)

    summary: dict[str, int] = {
        "examined": 0,
        "retried": 0,
        "succeeded": 0,
        "failed": 0,
        "escalated": 0,
        "skipped": 0,
        "missing": 0,
        "errors": 0,
    }
    escalated_record_ids: list[int] = []

    after_id: int | None = None
    while True:
        async with SessionLocal.begin() as session:
            record_ids = await FailedReferralRewardsRepo.list_pending_ids(
                session,
                limit=resolved_batch_size,
                after_id=after_id,
            )
        if not record_ids:
            break
        after_id = record_ids[-1]
        summary["examined"] += len(record_ids)

        for record_id in record_ids:
            try:
                outcome = await _retry_single_reward(record_id, now_utc=now_utc)
            except Exception as exc:
                summary["retried"] += 1
                logger.exception("referral_reward_retry_failed", failed_reward_id=record_id)
                try:
                    status = await _register_retry_failure(
                        record_id,
                        error=format_reward_error(exc),
                        max_retries=resolved_max_retries,
                        now_utc=now_utc,
                    )
                except Exception:
                    summary["errors"] += 1
                    summary["failed"] += 1
                    logger.exception(
                        "referral_reward_retry_bookkeeping_failed",
                        failed_reward_id=record_id,
                    )
                    continue
                if status == FAILED_REWARD_ESCALATED:
                    summary["escalated"] += 1
                    escalated_record_ids.append(record_id)
                else:
                    summary["failed"] += 1
                continue

            if outcome == "succeeded":
                summary["retried"] += 1
            summary[outcome] = summary.get(outcome, 0) + 1

        if len(record_ids) < resolved_batch_size:
            break

    if escalated_record_ids:
        await send_ops_alert(
            event="referral_reward_escalated",
            payload={**summary, "failed_reward_ids": escalated_record_ids},
        )
    if summary["errors"] > 0:
        await send_ops_alert(event="referral_reward_retry_errors", payload=summary)

    logger.info("referral_reward_retry_sweep_finished", **summary)
    return summary


async def expire_stale_referrals_async(
    *,
    batch_size: int = REFERRAL_EXPIRY_BATCH_SIZE,
    max_rounds: int | None = None,
) -> dict[str, int | bool]:
    resolved_max_rounds = max_rounds or get_settings().referral_expiry_max_rounds
    now_utc = datetime.now(timezone.utc)

    expired_total = 0
    rounds = 0
    has_more = True
    while has_more and rounds < resolved_max_rounds:
        async with SessionLocal.begin() as session:
            result = await ReferralService.expire_stale_referrals(
                session,
                now_utc=now_utc,
                batch_size=batch_size,
            )
        rounds += 1
        expired_total += result.expired_count
        has_more = result.has_more

    summary: dict[str, int | bool] = {
        "expired": expired_total,
        "rounds": rounds,
        "has_more": has_more,
    }
    if has_more:
        await send_ops_alert(event="referral_expiry_backlog", payload=summary)
        logger.warning("referral_expiry_sweep_backlog", **summary)
    else:
        logger.info("referral_expiry_sweep_finished", **summary)
    return summary


@celery_app.task(name="app.workers.tasks.referrals.retry_failed_referral_rewards")
def retry_failed_referral_rewards(batch_size: int | None = None) -> dict[str, int]:
    return run_async_job(
        retry_failed_referral_rewards_async(batch_size=batch_size),
        job_name="retry_failed_referral_rewards",
    )


@celery_app.task(name="app.workers.tasks.referrals.expire_stale_referrals")
def expire_stale_referrals(batch_size: int = REFERRAL_EXPIRY_BATCH_SIZE) -> dict[str, int | bool]:
    return run_async_job(
        expire_stale_referrals_async(batch_size=batch_size),
        job_name="expire_stale_referrals",
    )


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "referral-reward-retry-hourly": {
            "task": "app.workers.tasks.referrals.retry_failed_referral_rewards",
            "schedule": crontab(minute=15),
            "options": {"queue": "q_normal"},
        },
        "referral-expiry-daily-0300-utc": {
            "task": "app.workers.tasks.referrals.expire_stale_referrals",
            "schedule": crontab(hour=3, minute=0),
            "options": {"queue": "q_normal"},
        },
    }
)
