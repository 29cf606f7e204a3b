from __future__ import annotations

from datetime import datetime

import structlog

from app.core.errors import RateLimitedError, TransientStoreError
from app.db.kv_store import KeyValueStore
from app.db.repo.rate_limits_repo import RateLimitsRepo
from app.economy.rate_limit.rules import RateLimitRule
from app.economy.rate_limit.types import RateLimitDecision

logger = structlog.get_logger(__name__)

MAX_WRITE_ATTEMPTS = 3


def build_rate_limit_key(*, endpoint: str, subject: str) -> str:
    return f"ratelimit:{endpoint}:{subject}"


async def _consume(
    store: KeyValueStore,
    *,
    key: str,
    max_requests: int,
    window_seconds: int,
    now: int,
) -> RateLimitDecision | None:
    ttl = now + 2 * window_seconds
    for _ in range(MAX_WRITE_ATTEMPTS):
        record = await RateLimitsRepo.get(store, key)
        if record is None:
            if await RateLimitsRepo.try_open_window(store, key=key, window_start=now, ttl=ttl):
                return RateLimitDecision(
                    allowed=True,
                    remaining=max_requests - 1,
                    reset_at=now + window_seconds,
                )
            continue

        if record.window_start < now - window_seconds:
            restarted = await RateLimitsRepo.try_restart_window(
                store,
                key=key,
                observed_window_start=record.window_start,
                window_start=now,
                ttl=ttl,
            )
            if restarted:
                return RateLimitDecision(
                    allowed=True,
                    remaining=max_requests - 1,
                    reset_at=now + window_seconds,
                )
            continue

        reset_at = record.window_start + window_seconds
        if record.count >= max_requests:
            return RateLimitDecision(allowed=False, remaining=0, reset_at=reset_at)

        updated = await RateLimitsRepo.try_increment(
            store,
            key=key,
            observed_window_start=record.window_start,
            max_requests=max_requests,
        )
        if updated is not None:
            return RateLimitDecision(
                allowed=True,
                remaining=max(0, max_requests - updated.count),
                reset_at=reset_at,
            )
    return None


class WindowedRateLimiter:
    @staticmethod
    async def check(
        store: KeyValueStore,
        *,
        subject: str,
        endpoint: str,
        max_requests: int,
        window_seconds: int,
        now_utc: datetime,
        fail_open: bool = True,
    ) -> RateLimitDecision:
        if not subject or not endpoint:
            return RateLimitDecision(allowed=False, remaining=0, reset_at=0)

        now = int(now_utc.timestamp())
        if max_requests < 1:
            return RateLimitDecision(allowed=False, remaining=0, reset_at=now + window_seconds)

        key = build_rate_limit_key(endpoint=endpoint, subject=subject)
        try:
            decision = await _consume(
                store,
                key=key,
                max_requests=max_requests,
                window_seconds=window_seconds,
                now=now,
            )
        except TransientStoreError:
            logger.warning(
                "rate_limit_store_unavailable",
                endpoint=endpoint,
                subject=subject,
                fail_open=fail_open,
            )
            if fail_open:
                return RateLimitDecision(
                    allowed=True,
                    remaining=max_requests,
                    reset_at=now + window_seconds,
                )
            return RateLimitDecision(allowed=False, remaining=0, reset_at=now + window_seconds)

        if decision is None:
            # Every attempt lost to a concurrent writer: the window is busy.
            logger.info("rate_limit_contention_denied", endpoint=endpoint, subject=subject)
            return RateLimitDecision(allowed=False, remaining=0, reset_at=now + window_seconds)
        return decision

    @staticmethod
    async def refund(store: KeyValueStore, *, subject: str, endpoint: str) -> bool:
        key = build_rate_limit_key(endpoint=endpoint, subject=subject)
        try:
            refunded = await RateLimitsRepo.try_decrement(store, key=key)
        except TransientStoreError:
            logger.warning("rate_limit_refund_failed", endpoint=endpoint, subject=subject)
            return False
        if refunded:
            logger.info("rate_limit_refunded", endpoint=endpoint, subject=subject)
        return refunded

    @staticmethod
    async def enforce(
        store: KeyValueStore,
        *,
        subject: str,
        rule: RateLimitRule,
        now_utc: datetime,
        is_premium: bool = False,
    ) -> RateLimitDecision:
        max_requests = rule.limit_for(is_premium=is_premium)
        decision = await WindowedRateLimiter.check(
            store,
            subject=subject,
            endpoint=rule.endpoint,
            max_requests=max_requests,
            window_seconds=rule.window_seconds,
            now_utc=now_utc,
            fail_open=rule.fail_open,
        )
        if not decision.allowed:
            logger.info(
                "rate_limit_denied",
                endpoint=rule.endpoint,
                subject=subject,
                reset_at=decision.reset_at,
            )
            raise RateLimitedError(
                reset_at=decision.reset_at,
                message=(
                    "Too many requests. Please wait before trying again. "
                    f"(Limit: {max_requests} per {rule.window_seconds} seconds)"
                ),
            )
        return decision
