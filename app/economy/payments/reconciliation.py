from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from app.core.errors import EngineError
from app.db.kv_store import KeyValueStore
from app.db.repo.processed_orders_repo import ProcessedOrdersRepo
from app.economy.payments.types import ReconciliationSummary
from app.economy.payments.upgrade import apply_order_entitlement

logger = structlog.get_logger(__name__)


async def reconcile_unapplied_orders(
    store: KeyValueStore,
    *,
    now_utc: datetime,
    grace_seconds: int,
    batch_size: int = 100,
    max_pages: int = 20,
) -> ReconciliationSummary:
    """Re-applies captured orders whose upgrade never finished.

    Markers younger than ``grace_seconds`` belong to captures that may still
    be in flight and are left alone. Markers that keep failing are paged past,
    so up to ``batch_size`` healthy markers are applied per run.
    """
    summary = ReconciliationSummary()
    processed_before = now_utc - timedelta(seconds=grace_seconds)
    cursor: str | None = None

    for _ in range(max_pages):
        markers = await ProcessedOrdersRepo.list_unapplied(
            store,
            processed_before=processed_before,
            limit=batch_size,
            after_order_id=cursor,
        )
        summary.scanned += len(markers)

        for marker in markers:
            try:
                await apply_order_entitlement(store, marker=marker, now_utc=now_utc)
            except EngineError:
                summary.failed += 1
                logger.exception(
                    "billing_reconcile_order_failed",
                    order_id=marker.order_id,
                    user_id=marker.user_id,
                )
                continue
            summary.applied += 1
            logger.warning(
                "billing_reconcile_order_applied",
                order_id=marker.order_id,
                user_id=marker.user_id,
            )

        if len(markers) < batch_size or summary.applied >= batch_size:
            break
        cursor = markers[-1].order_id
    return summary
