"""Runs an async worker job on its own event loop and database pool."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

import structlog

from app.db.session import dispose_engine

T = TypeVar("T")

logger = structlog.get_logger(__name__)


async def _run_job(
    job: str,
    awaitable: Awaitable[T],
    *,
    reset_pool: Callable[[], Awaitable[None]],
) -> T:
    with structlog.contextvars.bound_contextvars(job=job, job_run_id=uuid.uuid4().hex):
        started = time.monotonic()
        await reset_pool()
        try:
            result = await awaitable
        except Exception:
            logger.exception("worker_job_failed", duration_ms=int((time.monotonic() - started) * 1000))
            raise
        finally:
            await reset_pool()
        logger.info("worker_job_finished", duration_ms=int((time.monotonic() - started) * 1000))
        return result


def run_async_job(
    job: str,
    awaitable: Coroutine[Any, Any, T],
    *,
    reset_pool: Callable[[], Awaitable[None]] = dispose_engine,
) -> T:
    return asyncio.run(_run_job(job, awaitable, reset_pool=reset_pool))
