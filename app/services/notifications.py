from __future__ import annotations

import asyncio
from typing import Protocol

from app.db.records import ProcessedOrderMarker, UserRecord


class ConfirmationNotifier(Protocol):
    async def premium_activated(self, *, user: UserRecord, marker: ProcessedOrderMarker) -> None: ...


def build_confirmation_payload(
    *,
    user: UserRecord,
    marker: ProcessedOrderMarker,
) -> dict[str, object]:
    expiration = user.subscription_expiration
    return {
        "user_id": user.id,
        "email": user.email,
        "order_id": marker.order_id,
        "plan_type": marker.plan_type,
        "transaction_id": marker.transaction_id,
        "amount": marker.captured_amount,
        "currency": marker.captured_currency,
        "paid_at": marker.processed_at.isoformat(),
        "subscription_expiration": expiration.isoformat() if expiration is not None else None,
    }


class CeleryConfirmationNotifier:
    async def premium_activated(self, *, user: UserRecord, marker: ProcessedOrderMarker) -> None:
        from app.workers.tasks.notifications import send_premium_confirmation_email

        payload = build_confirmation_payload(user=user, marker=marker)
        # Task.delay talks to the broker synchronously.
        await asyncio.to_thread(send_premium_confirmation_email.delay, payload)
