from __future__ import annotations

from datetime import datetime

from app.db.kv_store import (
    PROCESSED_ORDERS_TABLE,
    Condition,
    ConditionFailedError,
    KeyValueStore,
)
from app.db.records import ProcessedOrderMarker


class ProcessedOrdersRepo:
    @staticmethod
    async def get(store: KeyValueStore, order_id: str) -> ProcessedOrderMarker | None:
        item = await store.get(PROCESSED_ORDERS_TABLE, order_id)
        if item is None:
            return None
        return ProcessedOrderMarker.from_item(item)

    @staticmethod
    async def mark_entitlement_applied(
        store: KeyValueStore,
        *,
        order_id: str,
        applied_at: datetime,
    ) -> bool:
        try:
            await store.update(
                PROCESSED_ORDERS_TABLE,
                order_id,
                set_fields={"entitlement_applied": True, "applied_at": applied_at},
                conditions=(Condition("entitlement_applied", "eq", False),),
            )
        except ConditionFailedError:
            return False
        return True

    @staticmethod
    async def list_unapplied(
        store: KeyValueStore,
        *,
        processed_before: datetime,
        limit: int,
        after_order_id: str | None = None,
    ) -> list[ProcessedOrderMarker]:
        """Unapplied markers in order id order, starting after ``after_order_id``."""
        conditions = [
            Condition("entitlement_applied", "eq", False),
            Condition("processed_at", "le", processed_before),
        ]
        if after_order_id is not None:
            conditions.append(Condition("order_id", "gt", after_order_id))
        items = await store.scan(PROCESSED_ORDERS_TABLE, conditions=conditions, limit=limit)
        return [ProcessedOrderMarker.from_item(item) for item in items]
