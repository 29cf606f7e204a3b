from __future__ import annotations

from app.db.kv_store import RATE_LIMITS_TABLE, Condition, ConditionFailedError, KeyValueStore
from app.db.records import RateLimitState


class RateLimitsRepo:
    @staticmethod
    async def get(store: KeyValueStore, key: str) -> RateLimitState | None:
        item = await store.get(RATE_LIMITS_TABLE, key)
        if item is None:
            return None
        return RateLimitState.from_item(item)

    @staticmethod
    async def try_open_window(
        store: KeyValueStore,
        *,
        key: str,
        window_start: int,
        ttl: int,
    ) -> bool:
        try:
            await store.put_if_absent(
                RATE_LIMITS_TABLE,
                {"key": key, "count": 1, "window_start": window_start, "ttl": ttl},
            )
        except ConditionFailedError:
            return False
        return True

    @staticmethod
    async def try_restart_window(
        store: KeyValueStore,
        *,
        key: str,
        observed_window_start: int,
        window_start: int,
        ttl: int,
    ) -> bool:
        try:
            await store.update(
                RATE_LIMITS_TABLE,
                key,
                set_fields={"count": 1, "window_start": window_start, "ttl": ttl},
                conditions=(Condition("window_start", "eq", observed_window_start),),
            )
        except ConditionFailedError:
            return False
        return True

    @staticmethod
    async def try_increment(
        store: KeyValueStore,
        *,
        key: str,
        observed_window_start: int,
        max_requests: int,
    ) -> RateLimitState | None:
        try:
            item = await store.update(
                RATE_LIMITS_TABLE,
                key,
                increments={"count": 1},
                conditions=(
                    Condition("window_start", "eq", observed_window_start),
                    Condition("count", "lt", max_requests),
                ),
            )
        except ConditionFailedError:
            return None
        return RateLimitState.from_item(item)

    @staticmethod
    async def try_decrement(store: KeyValueStore, *, key: str) -> bool:
        try:
            await store.update(
                RATE_LIMITS_TABLE,
                key,
                increments={"count": -1},
                conditions=(Condition("count", "gt", 0),),
            )
        except ConditionFailedError:
            return False
        return True
