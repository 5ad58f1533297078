from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)


async def _check_database() -> dict[str, Any]:
    async with SessionLocal() as session:
        await session.execute(text("SELECT 1"))
    return {}


async def _check_broker() -> dict[str, Any]:
    redis_client = Redis.from_url(get_settings().redis_url)
    try:
        pong = await redis_client.ping()
        if pong is not True:
            raise RuntimeError(f"unexpected redis ping response: {pong!r}")
    finally:
        await redis_client.aclose()
    return {}


def _ping_workers() -> dict[str, Any]:
    inspector = celery_app.control.inspect(timeout=1.0)
    if inspector is None:
        raise RuntimeError("celery inspector is unavailable")
    replies = inspector.ping() or {}
    if not replies:
        raise RuntimeError("no celery workers responded to ping")
    return {"workers": len(replies)}


async def _check_workers() -> dict[str, Any]:
    return await asyncio.to_thread(_ping_workers)


async def _timed(name: str, probe: Callable[[], Awaitable[dict[str, Any]]]) -> dict[str, Any]:
    started = time.perf_counter()
    try:
        extra = await probe()
    except Exception as exc:
        logger.warning("health_check_failed", check=name, error=str(exc))
        return {"status": "failed", "error": str(exc)}
    latency_ms = round((time.perf_counter() - started) * 1000, 1)
    return {"status": "ok", "latency_ms": latency_ms, **extra}


async def _collect_checks(*, include_workers: bool) -> dict[str, dict[str, Any]]:
    probes: dict[str, Callable[[], Awaitable[dict[str, Any]]]] = {
        "database": _check_database,
        "broker": _check_broker,
    }
    if include_workers:
        probes["workers"] = _check_workers
    results = await asyncio.gather(*(_timed(name, probe) for name, probe in probes.items()))
    return dict(zip(probes.keys(), results))


def _respond(checks: dict[str, dict[str, Any]], *, ok_label: str, failed_label: str) -> JSONResponse:
    healthy = all(check.get("status") == "ok" for check in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": ok_label if healthy else failed_label, "checks": checks},
    )


@router.get("/health")
async def health() -> JSONResponse:
    checks = await _collect_checks(include_workers=True)
    return _respond(checks, ok_label="ok", failed_label="degraded")


@router.get("/ready")
async def ready() -> JSONResponse:
    # Readiness only needs what request handling touches.
    checks = await _collect_checks(include_workers=False)
    return _respond(checks, ok_label="ready", failed_label="not_ready")


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}
