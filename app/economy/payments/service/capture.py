from __future__ import annotations

import re
from datetime import datetime, timedelta

import structlog

from app.core.errors import (
    GatewayNotFoundError,
    GatewayTimeoutError,
    IntegrityViolationError,
    ValidationError,
)
from app.db.kv_store import PROCESSED_ORDERS_TABLE, KeyValueStore
from app.db.records import ProcessedOrderMarker, UserRecord
from app.db.repo.processed_orders_repo import ProcessedOrdersRepo
from app.economy.idempotency.gate import MarkerGate
from app.economy.payments.catalog import amount_matches, get_plan
from app.economy.payments.types import CaptureResult, OrderMetadata
from app.economy.payments.upgrade import apply_order_entitlement
from app.services.notifications import ConfirmationNotifier
from app.services.payment_gateway import PaymentGateway

logger = structlog.get_logger(__name__)

ORDER_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]{1,64}$")
SECONDS_PER_DAY = 86400

ALREADY_PROCESSED_MESSAGE = "Payment was already processed"
COMPLETED_MESSAGE = "Payment completed successfully"


async def _duplicate_result(
    store: KeyValueStore,
    *,
    marker: ProcessedOrderMarker,
    caller_user_id: str,
    now_utc: datetime,
    reconcile_grace_seconds: int,
) -> CaptureResult:
    stale_before = now_utc - timedelta(seconds=reconcile_grace_seconds)
    if (
        not marker.entitlement_applied
        and marker.user_id == caller_user_id
        and marker.processed_at <= stale_before
    ):
        logger.warning(
            "billing_capture_reapplying_unapplied_order",
            order_id=marker.order_id,
            user_id=marker.user_id,
        )
        await apply_order_entitlement(store, marker=marker, now_utc=now_utc)

    logger.info("billing_capture_duplicate", order_id=marker.order_id)
    return CaptureResult(success=True, duplicate=True, message=ALREADY_PROCESSED_MESSAGE)


def _require_order_owner(
    order_id: str,
    *,
    metadata: OrderMetadata | None,
    caller_user_id: str,
) -> OrderMetadata:
    if metadata is None or metadata.user_id != caller_user_id:
        logger.error(
            "billing_capture_user_mismatch",
            order_id=order_id,
            caller_user_id=caller_user_id,
            order_user_id=metadata.user_id if metadata is not None else None,
        )
        raise IntegrityViolationError("Payment verification failed.")
    return metadata


async def _notify(
    notifier: ConfirmationNotifier | None,
    *,
    marker: ProcessedOrderMarker,
    user: UserRecord,
) -> None:
    if notifier is None:
        return
    try:
        await notifier.premium_activated(user=user, marker=marker)
    except Exception:
        logger.exception(
            "billing_confirmation_notify_failed",
            order_id=marker.order_id,
            user_id=marker.user_id,
        )


async def capture_order(
    store: KeyValueStore,
    gateway: PaymentGateway,
    *,
    order_id: str,
    caller_user_id: str,
    now_utc: datetime,
    retention_days: int,
    reconcile_grace_seconds: int,
    notifier: ConfirmationNotifier | None = None,
) -> CaptureResult:
    if not isinstance(order_id, str) or not ORDER_ID_PATTERN.fullmatch(order_id):
        raise ValidationError("Invalid order ID.")

    existing = await ProcessedOrdersRepo.get(store, order_id)
    if existing is not None:
        return await _duplicate_result(
            store,
            marker=existing,
            caller_user_id=caller_user_id,
            now_utc=now_utc,
            reconcile_grace_seconds=reconcile_grace_seconds,
        )

    try:
        details = await gateway.get_order_details(order_id)
    except GatewayNotFoundError as exc:
        logger.warning("billing_capture_order_not_found", order_id=order_id)
        raise ValidationError("Invalid or expired order.") from exc
    _require_order_owner(order_id, metadata=details.metadata, caller_user_id=caller_user_id)

    if details.status != "APPROVED":
        # A concurrent or earlier capture may have finished after the first marker read.
        existing = await ProcessedOrdersRepo.get(store, order_id)
        if existing is not None:
            return await _duplicate_result(
                store,
                marker=existing,
                caller_user_id=caller_user_id,
                now_utc=now_utc,
                reconcile_grace_seconds=reconcile_grace_seconds,
            )
        if details.status != "COMPLETED":
            logger.warning("billing_capture_order_not_approved", order_id=order_id, status=details.status)
            raise ValidationError("Order is not ready for capture.")
        # Captured at the provider but never recorded here; the capture call replays it.
        logger.warning("billing_capture_replaying_completed_order", order_id=order_id, user_id=caller_user_id)

    try:
        outcome = await gateway.capture_order(order_id)
    except GatewayTimeoutError:
        logger.warning("billing_capture_timeout", order_id=order_id, user_id=caller_user_id)
        raise
    except GatewayNotFoundError as exc:
        raise ValidationError("Invalid or expired order.") from exc
    if outcome.status != "COMPLETED":
        logger.error("billing_capture_not_completed", order_id=order_id, status=outcome.status)
        raise ValidationError("Payment capture failed.")

    metadata = _require_order_owner(order_id, metadata=outcome.metadata, caller_user_id=caller_user_id)

    plan = get_plan(metadata.plan_type)
    if plan is None or not amount_matches(
        plan,
        amount=outcome.captured_amount,
        currency=outcome.captured_currency,
    ):
        logger.error(
            "billing_capture_amount_mismatch",
            order_id=order_id,
            plan_type=metadata.plan_type,
            expected_amount=plan.amount if plan is not None else None,
            expected_currency=plan.currency if plan is not None else None,
            captured_amount=outcome.captured_amount,
            captured_currency=outcome.captured_currency,
        )
        raise ValidationError("Payment amount verification failed.")

    marker = ProcessedOrderMarker(
        order_id=order_id,
        user_id=caller_user_id,
        transaction_id=outcome.transaction_id or order_id,
        plan_type=plan.plan_type,
        captured_amount=str(outcome.captured_amount),
        captured_currency=str(outcome.captured_currency),
        processed_at=now_utc,
        payer_id=outcome.payer_id,
        entitlement_applied=False,
        ttl=int(now_utc.timestamp()) + retention_days * SECONDS_PER_DAY,
    )
    gate = await MarkerGate(store, table=PROCESSED_ORDERS_TABLE).try_acquire(
        order_id,
        marker.as_item(),
    )
    if not gate.acquired:
        logger.info("billing_capture_duplicate", order_id=order_id)
        return CaptureResult(success=True, duplicate=True, message=ALREADY_PROCESSED_MESSAGE)

    user = await apply_order_entitlement(store, marker=marker, now_utc=now_utc)
    logger.info(
        "billing_capture_completed",
        order_id=order_id,
        user_id=caller_user_id,
        plan_type=plan.plan_type,
        transaction_id=marker.transaction_id,
    )
    await _notify(notifier, marker=marker, user=user)

    return CaptureResult(
        success=True,
        duplicate=False,
        message=COMPLETED_MESSAGE,
        transaction_id=marker.transaction_id,
        plan_type=plan.plan_type,
        subscription_expiration=user.subscription_expiration,
        user=user,
    )
