from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone

import structlog

from app.core.config import get_settings
from app.db.kv_store import SqlKeyValueStore
from app.db.session import SessionLocal
from app.economy.payments.reconciliation import reconcile_unapplied_orders
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

RECONCILE_BATCH_SIZE = 100


async def run_payments_reconciliation_async(*, batch_size: int = RECONCILE_BATCH_SIZE) -> dict[str, int]:
    settings = get_settings()
    summary = await reconcile_unapplied_orders(
        SqlKeyValueStore(SessionLocal),
        now_utc=datetime.now(timezone.utc),
        grace_seconds=settings.order_reconcile_grace_seconds,
        batch_size=batch_size,
    )
    result = asdict(summary)
    logger.info("payments_reconciliation_finished", **result)
    return result


@celery_app.task(name="app.workers.tasks.payments_reconciliation.run_payments_reconciliation")
def run_payments_reconciliation(batch_size: int = RECONCILE_BATCH_SIZE) -> dict[str, int]:
    return run_async_job(
        "payments_reconciliation",
        run_payments_reconciliation_async(batch_size=batch_size),
    )


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "payments-reconciliation-every-5-minutes": {
            "task": "app.workers.tasks.payments_reconciliation.run_payments_reconciliation",
            "schedule": 300.0,
            "options": {"queue": "q_high"},
        },
    }
)
