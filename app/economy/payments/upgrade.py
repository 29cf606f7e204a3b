from __future__ import annotations

import calendar
from datetime import datetime

import structlog

from app.core.errors import NotFoundError, TransientStoreError, ValidationError
from app.db.kv_store import KeyValueStore
from app.db.records import ProcessedOrderMarker, UserRecord
from app.db.repo.processed_orders_repo import ProcessedOrdersRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.payments.catalog import PAYMENT_PROVIDER, get_plan

logger = structlog.get_logger(__name__)

MAX_UPGRADE_WRITE_ATTEMPTS = 3


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def subscription_expiration_for(marker: ProcessedOrderMarker) -> datetime:
    plan = get_plan(marker.plan_type)
    if plan is None:
        raise ValidationError("Invalid plan type.")
    return add_months(marker.processed_at, plan.duration_months)


async def apply_order_entitlement(
    store: KeyValueStore,
    *,
    marker: ProcessedOrderMarker,
    now_utc: datetime,
) -> UserRecord:
    """Grants the subscription recorded by ``marker`` and flags the marker applied.

    The granted window depends only on the marker, so applying the same
    marker again leaves the user unchanged. A user already entitled past the
    marker's window is never shortened.
    """
    expiration = subscription_expiration_for(marker)
    user: UserRecord | None = None
    for _ in range(MAX_UPGRADE_WRITE_ATTEMPTS):
        current = await UsersRepo.get_by_id(store, marker.user_id)
        if current is None:
            raise NotFoundError("User not found.")

        observed = current.subscription_expiration
        if current.is_premium and observed is not None and observed >= expiration:
            user = current
            break

        user = await UsersRepo.apply_premium_upgrade(
            store,
            user_id=marker.user_id,
            observed_expiration=observed,
            plan_type=marker.plan_type,
            subscription_start=marker.processed_at,
            subscription_expiration=expiration,
            payment_provider=PAYMENT_PROVIDER,
            transaction_id=marker.transaction_id,
            payer_id=marker.payer_id,
            now_utc=now_utc,
        )
        if user is not None:
            logger.info(
                "premium_upgrade_applied",
                user_id=marker.user_id,
                order_id=marker.order_id,
                plan_type=marker.plan_type,
                subscription_expiration=expiration.isoformat(),
            )
            break
    else:
        logger.warning("premium_upgrade_contention_exhausted", order_id=marker.order_id)
        raise TransientStoreError

    await ProcessedOrdersRepo.mark_entitlement_applied(
        store,
        order_id=marker.order_id,
        applied_at=now_utc,
    )
    return user
