from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import pytest

from app.core.errors import (
    GatewayTimeoutError,
    IntegrityViolationError,
    NotFoundError,
    ValidationError,
)
from app.db.kv_store import PROCESSED_ORDERS_TABLE
from app.economy.payments.service import PaymentService
from tests.kv_fixtures import (
    NOW,
    UTC,
    FakePaymentGateway,
    RecordingNotifier,
    seed_premium_user,
    seed_user,
    stored_user,
    timing_out_gateway,
    unapplied_marker,
)


async def _capture(
    store,
    gateway,
    *,
    order_id: str = "ORDER-1",
    caller: str = "user-1",
    now=NOW,
    notifier=None,
):
    return await PaymentService.capture_order(
        store,
        gateway,
        order_id=order_id,
        caller_user_id=caller,
        now_utc=now,
        retention_days=30,
        reconcile_grace_seconds=60,
        notifier=notifier,
    )


async def test_capture_upgrades_user_once(store) -> None:
    seed_user(store)
    gateway = FakePaymentGateway()
    gateway.approve("ORDER-1")
    notifier = RecordingNotifier()

    result = await _capture(store, gateway, notifier=notifier)

    assert result.success is True
    assert result.duplicate is False
    assert result.transaction_id == "TX-ORDER-1"
    assert result.plan_type == "monthly"
    assert result.subscription_expiration == datetime(2026, 4, 15, 12, 0, tzinfo=UTC)
    user = stored_user(store)
    assert user.is_premium is True
    assert user.plan_type == "monthly"
    assert user.subscription_start_date == NOW
    assert user.payment_provider == "paypal"
    assert user.payment_customer_id == "PAYER-1"
    assert user.last_transaction_id == "TX-ORDER-1"
    marker = store.raw(PROCESSED_ORDERS_TABLE, "ORDER-1")
    assert marker["entitlement_applied"] is True
    assert marker["ttl"] == int(NOW.timestamp()) + 30 * 86400
    assert notifier.sent == [("user-1", "ORDER-1")]


async def test_repeated_capture_is_a_duplicate(store) -> None:
    seed_user(store)
    gateway = FakePaymentGateway()
    gateway.approve("ORDER-1")
    await _capture(store, gateway)

    again = await _capture(store, gateway, now=NOW + timedelta(minutes=5))

    assert again.success is True
    assert again.duplicate is True
    assert again.message == "Payment was already processed"
    assert gateway.capture_calls == 1
    assert stored_user(store).subscription_expiration == datetime(2026, 4, 15, 12, 0, tzinfo=UTC)


async def test_concurrent_captures_upgrade_exactly_once(store) -> None:
    seed_user(store)
    gateway = FakePaymentGateway()
    gateway.approve("ORDER-1", plan_type="yearly", amount="60.00")
    notifier = RecordingNotifier()

    results = await asyncio.gather(*(_capture(store, gateway, notifier=notifier) for _ in range(5)))

    assert all(result.success for result in results)
    assert sum(not result.duplicate for result in results) == 1
    assert notifier.sent == [("user-1", "ORDER-1")]
    user = stored_user(store)
    assert user.plan_type == "yearly"
    assert user.subscription_expiration == datetime(2027, 3, 15, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize("order_id", ["", "ORDER 1", "../etc", "x" * 65])
async def test_malformed_order_id_is_rejected(store, order_id: str) -> None:
    gateway = FakePaymentGateway()

    with pytest.raises(ValidationError):
        await _capture(store, gateway, order_id=order_id)
    assert store.calls == []


async def test_unknown_order_is_rejected(store) -> None:
    seed_user(store)

    with pytest.raises(ValidationError, match="Invalid or expired order"):
        await _capture(store, FakePaymentGateway())


async def test_unapproved_order_is_not_captured(store) -> None:
    seed_user(store)
    gateway = FakePaymentGateway()
    gateway.approve("ORDER-1", status="CREATED")

    with pytest.raises(ValidationError, match="not ready"):
        await _capture(store, gateway)
    assert gateway.capture_calls == 0


async def test_order_of_another_user_is_rejected(store) -> None:
    seed_user(store)
    seed_user(store, "user-2")
    gateway = FakePaymentGateway()
    gateway.approve("ORDER-1", user_id="user-2")

    with pytest.raises(IntegrityViolationError):
        await _capture(store, gateway, caller="user-1")

    assert gateway.capture_calls == 0
    assert gateway.orders["ORDER-1"].status == "APPROVED"
    assert store.raw(PROCESSED_ORDERS_TABLE, "ORDER-1") is None
    assert stored_user(store).is_premium is False
    assert stored_user(store, "user-2").is_premium is False


async def test_underpaid_order_is_rejected(store) -> None:
    seed_user(store)
    gateway = FakePaymentGateway()
    gateway.approve("ORDER-1", plan_type="yearly", amount="10.00")

    with pytest.raises(ValidationError, match="amount verification"):
        await _capture(store, gateway)

    assert store.raw(PROCESSED_ORDERS_TABLE, "ORDER-1") is None
    assert stored_user(store).is_premium is False


async def test_wrong_currency_is_rejected(store) -> None:
    seed_user(store)
    gateway = FakePaymentGateway()
    gateway.approve("ORDER-1", currency="EUR")

    with pytest.raises(ValidationError):
        await _capture(store, gateway)


async def test_gateway_timeout_leaves_no_marker(store) -> None:
    seed_user(store)
    gateway = timing_out_gateway()
    gateway.approve("ORDER-1")

    with pytest.raises(GatewayTimeoutError):
        await _capture(store, gateway)

    assert store.raw(PROCESSED_ORDERS_TABLE, "ORDER-1") is None
    assert stored_user(store).is_premium is False


async def test_retry_after_timeout_completes(store) -> None:
    seed_user(store)
    gateway = timing_out_gateway()
    gateway.approve("ORDER-1")
    with pytest.raises(GatewayTimeoutError):
        await _capture(store, gateway)

    gateway.capture_error = None
    result = await _capture(store, gateway)

    assert result.duplicate is False
    assert stored_user(store).is_premium is True


async def test_retry_after_lost_capture_response_upgrades_user(store) -> None:
    seed_user(store)
    gateway = FakePaymentGateway(lose_capture_response=True)
    gateway.approve("ORDER-1")
    with pytest.raises(GatewayTimeoutError):
        await _capture(store, gateway)
    assert gateway.orders["ORDER-1"].status == "COMPLETED"
    assert store.raw(PROCESSED_ORDERS_TABLE, "ORDER-1") is None

    gateway.lose_capture_response = False
    result = await _capture(store, gateway)

    assert result.success is True
    assert result.duplicate is False
    assert result.transaction_id == "TX-ORDER-1"
    assert gateway.capture_calls == 2
    assert stored_user(store).is_premium is True
    assert store.raw(PROCESSED_ORDERS_TABLE, "ORDER-1")["entitlement_applied"] is True


async def test_completed_order_of_another_user_is_not_replayed(store) -> None:
    seed_user(store)
    seed_user(store, "user-2")
    gateway = FakePaymentGateway(lose_capture_response=True)
    gateway.approve("ORDER-1", user_id="user-2")
    with pytest.raises(GatewayTimeoutError):
        await _capture(store, gateway, caller="user-2")
    gateway.lose_capture_response = False

    with pytest.raises(IntegrityViolationError):
        await _capture(store, gateway, caller="user-1")

    assert gateway.capture_calls == 1
    assert store.raw(PROCESSED_ORDERS_TABLE, "ORDER-1") is None
    assert stored_user(store).is_premium is False


@dataclass
class _HeldDetailsGateway(FakePaymentGateway):
    """Blocks the second order lookup until ``release`` is set."""

    release: asyncio.Event = field(default_factory=asyncio.Event)
    details_calls: int = 0

    async def get_order_details(self, order_id: str):
        self.details_calls += 1
        if self.details_calls == 2:
            await self.release.wait()
        return await super().get_order_details(order_id)


async def test_capture_that_sees_completed_order_after_winner_is_duplicate(store) -> None:
    seed_user(store)
    gateway = _HeldDetailsGateway()
    gateway.approve("ORDER-1")

    first = asyncio.create_task(_capture(store, gateway))
    second = asyncio.create_task(_capture(store, gateway))
    winner = await first
    gateway.release.set()
    late = await second

    assert (winner.success, winner.duplicate) == (True, False)
    assert (late.success, late.duplicate) == (True, True)
    assert gateway.capture_calls == 1
    assert stored_user(store).subscription_expiration == datetime(2026, 4, 15, 12, 0, tzinfo=UTC)


async def test_notifier_failure_does_not_fail_capture(store) -> None:
    seed_user(store)
    gateway = FakePaymentGateway()
    gateway.approve("ORDER-1")

    result = await _capture(store, gateway, notifier=RecordingNotifier(error=RuntimeError("smtp down")))

    assert result.duplicate is False
    assert stored_user(store).is_premium is True


async def test_capture_never_shortens_longer_subscription(store) -> None:
    longer = NOW + timedelta(days=200)
    seed_premium_user(store, expires_at=longer, plan_type="yearly")
    gateway = FakePaymentGateway()
    gateway.approve("ORDER-1")

    result = await _capture(store, gateway)

    assert result.subscription_expiration == longer
    assert stored_user(store).plan_type == "yearly"
    assert store.raw(PROCESSED_ORDERS_TABLE, "ORDER-1")["entitlement_applied"] is True


async def test_duplicate_call_reapplies_stale_unapplied_marker(store) -> None:
    seed_user(store)
    marker = unapplied_marker(processed_at=NOW - timedelta(minutes=5))
    store.seed(PROCESSED_ORDERS_TABLE, marker.as_item())
    gateway = FakePaymentGateway()

    result = await _capture(store, gateway)

    assert result.duplicate is True
    assert gateway.capture_calls == 0
    user = stored_user(store)
    assert user.is_premium is True
    assert user.subscription_expiration == marker.processed_at.replace(month=4)
    assert store.raw(PROCESSED_ORDERS_TABLE, "ORDER-1")["entitlement_applied"] is True


async def test_duplicate_call_leaves_fresh_marker_to_its_capture(store) -> None:
    seed_user(store)
    store.seed(PROCESSED_ORDERS_TABLE, unapplied_marker(processed_at=NOW - timedelta(seconds=5)).as_item())

    result = await _capture(store, FakePaymentGateway())

    assert result.duplicate is True
    assert stored_user(store).is_premium is False


async def test_duplicate_call_by_other_user_does_not_apply(store) -> None:
    seed_user(store)
    seed_user(store, "user-2")
    store.seed(PROCESSED_ORDERS_TABLE, unapplied_marker(processed_at=NOW - timedelta(hours=1)).as_item())

    result = await _capture(store, FakePaymentGateway(), caller="user-2")

    assert result.duplicate is True
    assert stored_user(store).is_premium is False
    assert stored_user(store, "user-2").is_premium is False


async def test_capture_for_missing_user_keeps_marker_for_reconciliation(store) -> None:
    gateway = FakePaymentGateway()
    gateway.approve("ORDER-1")

    with pytest.raises(NotFoundError):
        await _capture(store, gateway)

    assert store.raw(PROCESSED_ORDERS_TABLE, "ORDER-1")["entitlement_applied"] is False
