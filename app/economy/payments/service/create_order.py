from __future__ import annotations

from datetime import datetime

import structlog

from app.core.errors import GatewayError, GatewayTimeoutError, NotFoundError, ValidationError
from app.db.kv_store import KeyValueStore
from app.db.repo.users_repo import UsersRepo
from app.economy.entitlements.validator import EntitlementValidator
from app.economy.payments.catalog import get_plan
from app.economy.payments.types import GatewayOrder
from app.economy.rate_limit.rules import BILLING_ORDER, get_rule
from app.economy.rate_limit.service import WindowedRateLimiter
from app.services.payment_gateway import PaymentGateway

logger = structlog.get_logger(__name__)


async def create_order(
    store: KeyValueStore,
    gateway: PaymentGateway,
    *,
    plan_type: str,
    user_id: str,
    now_utc: datetime,
) -> GatewayOrder:
    plan = get_plan(plan_type)
    if plan is None:
        raise ValidationError("Invalid plan type.")

    await WindowedRateLimiter.enforce(
        store,
        subject=user_id,
        rule=get_rule(BILLING_ORDER),
        now_utc=now_utc,
    )

    user = await UsersRepo.get_by_id(store, user_id)
    if user is None:
        raise NotFoundError("User not found.")

    status = EntitlementValidator.check_status(user, now_utc=now_utc)
    if status.is_premium and status.expires_at is not None:
        raise ValidationError("You already have an active premium subscription.")

    try:
        order = await gateway.create_order(plan, user_id=user_id)
    except GatewayTimeoutError:
        # The order may exist at the provider; the attempt stays counted.
        logger.warning("billing_order_gateway_timeout", user_id=user_id, plan_type=plan_type)
        raise
    except GatewayError:
        logger.warning("billing_order_gateway_failed", user_id=user_id, plan_type=plan_type)
        await WindowedRateLimiter.refund(store, subject=user_id, endpoint=BILLING_ORDER)
        raise

    logger.info(
        "billing_order_created",
        user_id=user_id,
        order_id=order.order_id,
        plan_type=plan_type,
        status=order.status,
    )
    return order
