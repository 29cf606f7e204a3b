from __future__ import annotations

import asyncio

import httpx
import structlog
from celery import Task

from app.core.config import get_settings
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

EMAIL_TASK_MAX_RETRIES = 3
EMAIL_RETRY_BASE_SECONDS = 30
EMAIL_RETRY_MAX_SECONDS = 600
PLAN_NAMES = {
    "monthly": "Premium Monthly",
    "yearly": "Premium Yearly",
}


def build_premium_confirmation_email(
    payload: dict[str, object],
    *,
    sender: str,
    frontend_url: str,
) -> dict[str, object]:
    plan_name = PLAN_NAMES.get(str(payload.get("plan_type")), "Premium")
    expiration = str(payload.get("subscription_expiration") or "")
    text = "\n".join(
        [
            f"Thank you for upgrading to {plan_name}!",
            "Your subscription is now active and you have access to all premium features.",
            "",
            f"Transaction ID: {payload.get('transaction_id')}",
            f"Amount: {payload.get('amount')} {payload.get('currency')}",
            f"Valid until: {expiration[:10]}",
            "",
            f"Start building: {frontend_url.rstrip('/')}/dashboard",
        ]
    )
    return {
        "from": sender,
        "to": [payload.get("email")],
        "subject": f"Welcome to GetQuickResume {plan_name}",
        "text": text,
    }


async def send_premium_confirmation_email_async(payload: dict[str, object]) -> str:
    settings = get_settings()
    if not settings.email_api_url:
        logger.info("premium_confirmation_email_skipped", reason="email_api_not_configured")
        return "skipped"
    if not isinstance(payload.get("email"), str) or not payload.get("email"):
        logger.info(
            "premium_confirmation_email_skipped",
            reason="missing_recipient",
            user_id=payload.get("user_id"),
        )
        return "skipped"

    message = build_premium_confirmation_email(
        payload,
        sender=settings.email_from,
        frontend_url=settings.frontend_url,
    )
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.post(
            settings.email_api_url,
            json=message,
            headers={"Authorization": f"Bearer {settings.email_api_key}"},
        )
        response.raise_for_status()

    logger.info(
        "premium_confirmation_email_sent",
        user_id=payload.get("user_id"),
        order_id=payload.get("order_id"),
    )
    return "sent"


@celery_app.task(
    name="app.workers.tasks.notifications.send_premium_confirmation_email",
    bind=True,
    max_retries=EMAIL_TASK_MAX_RETRIES,
)
def send_premium_confirmation_email(self: Task, payload: dict[str, object]) -> str:
    try:
        return asyncio.run(send_premium_confirmation_email_async(payload))
    except httpx.HTTPError as exc:
        current_retries = max(0, int(getattr(self.request, "retries", 0)))
        if current_retries >= EMAIL_TASK_MAX_RETRIES:
            logger.exception(
                "premium_confirmation_email_failed_final",
                user_id=payload.get("user_id"),
                order_id=payload.get("order_id"),
                retries=current_retries,
            )
            raise
        retry_in_seconds = min(
            EMAIL_RETRY_MAX_SECONDS,
            EMAIL_RETRY_BASE_SECONDS * 2**current_retries,
        )
        logger.warning(
            "premium_confirmation_email_retry_scheduled",
            order_id=payload.get("order_id"),
            retry_attempt=current_retries + 1,
            retry_in_seconds=retry_in_seconds,
        )
        raise self.retry(exc=exc, countdown=retry_in_seconds, max_retries=EMAIL_TASK_MAX_RETRIES)
