from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.api.deps import get_current_user_id, get_notifier, get_payment_gateway, get_store
from app.core.config import get_settings
from app.db.kv_store import KeyValueStore
from app.economy.payments.service import PaymentService
from app.economy.payments.types import CaptureResult
from app.services.notifications import ConfirmationNotifier
from app.services.payment_gateway import PaymentGateway

from .billing_models import CapturedUser, CaptureRequest, CaptureResponse, OrderRequest, OrderResponse

router = APIRouter(prefix="/billing", tags=["billing"])


def _as_capture_response(result: CaptureResult) -> CaptureResponse:
    user = None
    if result.user is not None:
        user = CapturedUser(
            id=result.user.id,
            email=result.user.email,
            is_premium=result.user.is_premium,
            plan_type=result.user.plan_type,
            subscription_expiration=result.user.subscription_expiration,
        )
    return CaptureResponse(
        success=result.success,
        duplicate=result.duplicate,
        message=result.message,
        transaction_id=result.transaction_id,
        plan_type=result.plan_type,
        subscription_expiration=result.subscription_expiration,
        user=user,
    )


@router.post("/order", response_model=OrderResponse)
async def create_order(
    payload: OrderRequest,
    user_id: str = Depends(get_current_user_id),
    store: KeyValueStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> OrderResponse:
    order = await PaymentService.create_order(
        store,
        gateway,
        plan_type=payload.plan_type,
        user_id=user_id,
        now_utc=datetime.now(timezone.utc),
    )
    return OrderResponse(order_id=order.order_id, approval_url=order.approval_url, status=order.status)


@router.post("/capture", response_model=CaptureResponse, response_model_exclude_none=True)
async def capture_order(
    payload: CaptureRequest,
    user_id: str = Depends(get_current_user_id),
    store: KeyValueStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: ConfirmationNotifier = Depends(get_notifier),
) -> CaptureResponse:
    settings = get_settings()
    result = await PaymentService.capture_order(
        store,
        gateway,
        order_id=payload.order_id,
        caller_user_id=user_id,
        now_utc=datetime.now(timezone.utc),
        retention_days=settings.processed_order_retention_days,
        reconcile_grace_seconds=settings.order_reconcile_grace_seconds,
        notifier=notifier,
    )
    return _as_capture_response(result)
