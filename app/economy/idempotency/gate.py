"""Exactly-once gates built on the store's conditional writes.

A gate answers one question per key: did *this* caller win the right to
perform the guarded effect? Losers are told so and must not perform it.

``MarkerGate`` wins by creating a new item (``put_if_absent``).
``FlagGate`` wins by flipping a write-once boolean on an existing item,
applying companion counter deltas in the same statement.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from app.db.kv_store import Condition, ConditionFailedError, KeyValueStore, table_key_field

K_contra = TypeVar("K_contra", contravariant=True)


@dataclass(frozen=True, slots=True)
class GateResult:
    acquired: bool
    item: dict[str, Any] | None = field(default=None)


class IdempotencyGate(Protocol[K_contra]):
    async def try_acquire(
        self,
        key: K_contra,
        payload: Mapping[str, Any] | None = None,
    ) -> GateResult: ...

    async def peek(self, key: K_contra) -> dict[str, Any] | None: ...


class MarkerGate:
    def __init__(self, store: KeyValueStore, *, table: str) -> None:
        self._store = store
        self._table = table
        self._key_field = table_key_field(table)

    async def peek(self, key: str) -> dict[str, Any] | None:
        return await self._store.get(self._table, key)

    async def try_acquire(
        self,
        key: str,
        payload: Mapping[str, Any] | None = None,
    ) -> GateResult:
        item = {**(payload or {}), self._key_field: key}
        try:
            await self._store.put_if_absent(self._table, item)
        except ConditionFailedError:
            return GateResult(acquired=False)
        return GateResult(acquired=True, item=item)


class FlagGate:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        table: str,
        flag_field: str,
        increments: Mapping[str, int] | None = None,
        conditions: Sequence[Condition] = (),
    ) -> None:
        self._store = store
        self._table = table
        self._flag_field = flag_field
        self._increments = dict(increments or {})
        self._conditions = tuple(conditions)

    async def peek(self, key: str) -> dict[str, Any] | None:
        return await self._store.get(self._table, key)

    async def try_acquire(
        self,
        key: str,
        payload: Mapping[str, Any] | None = None,
    ) -> GateResult:
        # payload carries extra fields written together with the flag.
        try:
            item = await self._store.update(
                self._table,
                key,
                set_fields={**(payload or {}), self._flag_field: True},
                increments=self._increments,
                conditions=(Condition(self._flag_field, "eq", False), *self._conditions),
            )
        except ConditionFailedError:
            return GateResult(acquired=False)
        return GateResult(acquired=True, item=item)
