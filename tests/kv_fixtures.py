from __future__ import annotations

import asyncio
import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from app.core.errors import GatewayNotFoundError, GatewayTimeoutError, TransientStoreError
from app.db.kv_store import (
    RESUMES_TABLE,
    TABLES,
    USERS_TABLE,
    Condition,
    ConditionFailedError,
    Item,
    table_key_field,
)
from app.db.records import ProcessedOrderMarker, UserRecord
from app.economy.payments.catalog import PlanSpec
from app.economy.payments.types import CaptureOutcome, GatewayOrder, OrderDetails, OrderMetadata

UTC = timezone.utc
NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)


class InMemoryKeyValueStore:
    """Single-process store with the same conditional-write semantics as SQL.

    Every operation yields to the event loop before touching state and then
    runs without awaiting, so concurrent callers interleave between operations
    but never inside one.
    """

    def __init__(self, *, now_epoch: float = 0.0) -> None:
        self.tables: dict[str, dict[str, Item]] = {name: {} for name in TABLES}
        self.now_epoch = now_epoch
        self.failing_ops: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    async def _enter(self, op: str, table: str) -> None:
        await asyncio.sleep(0)
        self.calls.append((op, table))
        if table not in self.tables:
            raise ValueError(f"unknown table: {table}")
        if {op, f"{op}:{table}", "*"} & self.failing_ops:
            raise TransientStoreError

    def _is_live(self, item: Mapping[str, Any]) -> bool:
        ttl = item.get("ttl")
        return ttl is None or ttl > self.now_epoch

    def _live(self, table: str, key: str) -> Item | None:
        item = self.tables[table].get(key)
        if item is None or not self._is_live(item):
            return None
        return item

    def seed(self, table: str, item: Mapping[str, Any]) -> None:
        self.tables[table][str(item[table_key_field(table)])] = dict(item)

    def raw(self, table: str, key: str) -> Item | None:
        item = self.tables[table].get(key)
        return copy.deepcopy(item) if item is not None else None

    async def get(self, table: str, key: str) -> Item | None:
        await self._enter("get", table)
        item = self._live(table, key)
        return copy.deepcopy(item) if item is not None else None

    async def put(self, table: str, item: Mapping[str, Any]) -> None:
        await self._enter("put", table)
        self.seed(table, item)

    async def put_if_absent(self, table: str, item: Mapping[str, Any]) -> None:
        await self._enter("put_if_absent", table)
        key = str(item[table_key_field(table)])
        if self._live(table, key) is not None:
            raise ConditionFailedError(table, key)
        self.tables[table][key] = dict(item)

    async def update(
        self,
        table: str,
        key: str,
        *,
        set_fields: Mapping[str, Any] | None = None,
        increments: Mapping[str, int] | None = None,
        conditions: Sequence[Condition] = (),
    ) -> Item:
        await self._enter("update", table)
        if not set_fields and not increments:
            raise ValueError("update requires set_fields or increments")
        item = self._live(table, key)
        if item is None or not all(condition.matches(item) for condition in conditions):
            raise ConditionFailedError(table, key)

        item.update(set_fields or {})
        for name, delta in (increments or {}).items():
            item[name] = int(item.get(name) or 0) + delta
        return copy.deepcopy(item)

    async def scan(
        self,
        table: str,
        *,
        conditions: Sequence[Condition] = (),
        limit: int = 100,
    ) -> list[Item]:
        await self._enter("scan", table)
        matched = [
            copy.deepcopy(item)
            for _, item in sorted(self.tables[table].items())
            if self._is_live(item) and all(condition.matches(item) for condition in conditions)
        ]
        return matched[: max(1, limit)]


def seed_user(store: InMemoryKeyValueStore, user_id: str = "user-1", **fields: Any) -> UserRecord:
    item: Item = {
        "id": user_id,
        "email": f"{user_id}@example.com",
        "is_premium": False,
        "subscription_start_date": None,
        "subscription_expiration": None,
        "free_resume_used": False,
        "free_download_used": False,
        "total_downloads": 0,
        "total_resumes_generated": 0,
        "premium_resume_count": 0,
        "premium_resume_month": None,
        "plan_type": None,
        "payment_provider": None,
        "payment_customer_id": None,
        "last_transaction_id": None,
        "created_at": NOW - timedelta(days=90),
        "updated_at": None,
    }
    item.update(fields)
    store.seed(USERS_TABLE, item)
    return UserRecord.from_item(item)


def seed_premium_user(
    store: InMemoryKeyValueStore,
    user_id: str = "user-1",
    *,
    expires_at: datetime,
    **fields: Any,
) -> UserRecord:
    fields.setdefault("plan_type", "monthly")
    return seed_user(
        store,
        user_id,
        is_premium=True,
        subscription_start_date=expires_at - timedelta(days=30),
        subscription_expiration=expires_at,
        **fields,
    )


def seed_resume(store: InMemoryKeyValueStore, resume_id: str, *, user_id: str) -> None:
    store.seed(RESUMES_TABLE, {"id": resume_id, "user_id": user_id, "title": "CV"})


def stored_user(store: InMemoryKeyValueStore, user_id: str = "user-1") -> UserRecord:
    item = store.raw(USERS_TABLE, user_id)
    assert item is not None
    return UserRecord.from_item(item)


def unapplied_marker(
    order_id: str = "ORDER-1",
    *,
    user_id: str = "user-1",
    plan_type: str = "monthly",
    processed_at: datetime = NOW,
) -> ProcessedOrderMarker:
    return ProcessedOrderMarker(
        order_id=order_id,
        user_id=user_id,
        transaction_id=f"TX-{order_id}",
        plan_type=plan_type,
        captured_amount="10.00" if plan_type == "monthly" else "60.00",
        captured_currency="USD",
        processed_at=processed_at,
        payer_id="PAYER-1",
        entitlement_applied=False,
    )


@dataclass
class _FakeOrder:
    status: str
    metadata: OrderMetadata | None
    amount: str
    currency: str
    capture: CaptureOutcome | None = None


@dataclass
class FakePaymentGateway:
    """Provider double whose capture replays the first result, like a real idempotent capture."""

    orders: dict[str, _FakeOrder] = field(default_factory=dict)
    created: list[tuple[str, str]] = field(default_factory=list)
    capture_calls: int = 0
    create_error: Exception | None = None
    capture_error: Exception | None = None
    lose_capture_response: bool = False

    def approve(
        self,
        order_id: str,
        *,
        user_id: str = "user-1",
        plan_type: str = "monthly",
        amount: str = "10.00",
        currency: str = "USD",
        status: str = "APPROVED",
    ) -> None:
        self.orders[order_id] = _FakeOrder(
            status=status,
            metadata=OrderMetadata(user_id=user_id, plan_type=plan_type),
            amount=amount,
            currency=currency,
        )

    async def create_order(self, plan: PlanSpec, *, user_id: str) -> GatewayOrder:
        await asyncio.sleep(0)
        if self.create_error is not None:
            raise self.create_error
        order_id = f"ORDER-{len(self.created) + 1}"
        self.created.append((user_id, plan.plan_type))
        self.approve(order_id, user_id=user_id, plan_type=plan.plan_type, amount=plan.amount)
        return GatewayOrder(
            order_id=order_id,
            approval_url=f"https://pay.example.com/checkoutnow?token={order_id}",
            status="CREATED",
        )

    async def get_order_details(self, order_id: str) -> OrderDetails:
        await asyncio.sleep(0)
        order = self.orders.get(order_id)
        if order is None:
            raise GatewayNotFoundError("Invalid or expired order.")
        return OrderDetails(order_id=order_id, status=order.status, metadata=order.metadata)

    async def capture_order(self, order_id: str) -> CaptureOutcome:
        await asyncio.sleep(0)
        self.capture_calls += 1
        if self.capture_error is not None:
            raise self.capture_error
        order = self.orders.get(order_id)
        if order is None:
            raise GatewayNotFoundError("Invalid or expired order.")
        if order.capture is None:
            order.status = "COMPLETED"
            order.capture = CaptureOutcome(
                status="COMPLETED",
                captured_amount=order.amount,
                captured_currency=order.currency,
                transaction_id=f"TX-{order_id}",
                payer_id="PAYER-1",
                metadata=order.metadata,
            )
        if self.lose_capture_response:
            raise GatewayTimeoutError()
        return order.capture


def timing_out_gateway() -> FakePaymentGateway:
    gateway = FakePaymentGateway()
    gateway.capture_error = GatewayTimeoutError()
    return gateway


@dataclass
class RecordingNotifier:
    sent: list[tuple[str, str]] = field(default_factory=list)
    error: Exception | None = None

    async def premium_activated(self, *, user: UserRecord, marker: ProcessedOrderMarker) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append((user.id, marker.order_id))
