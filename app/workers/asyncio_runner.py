from __future__ import annotations

import asyncio
import time
from collections.abc import Coroutine
from typing import Any, TypeVar

import structlog

from app.db.session import dispose_engine

T = TypeVar("T")

logger = structlog.get_logger(__name__)


async def _run_with_fresh_db_pool(job: Coroutine[Any, Any, T]) -> T:
    # Each Celery invocation gets its own event loop; pooled asyncpg connections cannot cross loops.
    await dispose_engine()
    try:
        return await job
    finally:
        await dispose_engine()


def run_async_job(job: Coroutine[Any, Any, T], *, job_name: str | None = None) -> T:
    started = time.perf_counter()
    try:
        return asyncio.run(_run_with_fresh_db_pool(job))
    finally:
        logger.info(
            "async_job_finished",
            job=job_name or getattr(job, "__name__", "unknown"),
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
