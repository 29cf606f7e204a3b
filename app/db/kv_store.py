"""Key-value store used by the entitlement engine.

Every piece of shared state (users, rate-limit counters, processed-order
markers) lives behind the four operations of :class:`KeyValueStore`. The only
synchronization primitive is the conditional write: ``put_if_absent`` has a
single winner per key, and ``update`` with ``conditions`` has a single winner
per condition.

:class:`SqlKeyValueStore` maps each logical table onto a PostgreSQL table and
expresses every operation as one SQL statement, so no conditional write can be
observed half-applied.
"""

from __future__ import annotations

import operator
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import structlog
from sqlalchemy import and_, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import TransientStoreError
from app.db.models import ProcessedOrder, RateLimitRecord, Resume, User
from app.db.models.base import Base

logger = structlog.get_logger(__name__)

Item = dict[str, Any]
ConditionOp = Literal["eq", "ne", "lt", "le", "gt", "ge"]

USERS_TABLE = "users"
RATE_LIMITS_TABLE = "rate_limits"
PROCESSED_ORDERS_TABLE = "processed_orders"
RESUMES_TABLE = "resumes"

TABLES: dict[str, type[Base]] = {
    USERS_TABLE: User,
    RATE_LIMITS_TABLE: RateLimitRecord,
    PROCESSED_ORDERS_TABLE: ProcessedOrder,
    RESUMES_TABLE: Resume,
}

_ORDERING_OPS: dict[str, Callable[[Any, Any], bool]] = {
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
}


class ConditionFailedError(Exception):
    """A conditional write lost: the key exists, or a condition did not hold."""

    def __init__(self, table: str, key: str) -> None:
        super().__init__(f"condition failed for {table}:{key}")
        self.table = table
        self.key = key


@dataclass(frozen=True, slots=True)
class Condition:
    field: str
    op: ConditionOp
    value: Any

    def matches(self, item: Mapping[str, Any]) -> bool:
        current = item.get(self.field)
        if self.op == "eq":
            return current == self.value
        if self.op == "ne":
            return current != self.value
        if current is None or self.value is None:
            return False
        return _ORDERING_OPS[self.op](current, self.value)


class KeyValueStore(Protocol):
    async def get(self, table: str, key: str) -> Item | None: ...

    async def put(self, table: str, item: Mapping[str, Any]) -> None: ...

    async def put_if_absent(self, table: str, item: Mapping[str, Any]) -> None: ...

    async def update(
        self,
        table: str,
        key: str,
        *,
        set_fields: Mapping[str, Any] | None = None,
        increments: Mapping[str, int] | None = None,
        conditions: Sequence[Condition] = (),
    ) -> Item: ...

    async def scan(
        self,
        table: str,
        *,
        conditions: Sequence[Condition] = (),
        limit: int = 100,
    ) -> list[Item]: ...


def table_key_field(table: str) -> str:
    model = _model_for(table)
    return _primary_key_column(model).key


def _model_for(table: str) -> type[Base]:
    try:
        return TABLES[table]
    except KeyError as exc:
        raise ValueError(f"unknown table: {table}") from exc


def _primary_key_column(model: type[Base]) -> Any:
    return model.__table__.primary_key.columns.values()[0]


def _has_ttl(model: type[Base]) -> bool:
    return "ttl" in model.__table__.columns


def _condition_clause(model: type[Base], condition: Condition) -> Any:
    column = getattr(model, condition.field)
    if condition.op == "eq":
        return column.is_not_distinct_from(condition.value)
    if condition.op == "ne":
        return column.is_distinct_from(condition.value)
    return _ORDERING_OPS[condition.op](column, condition.value)


def _live_clause(model: type[Base], now_epoch: int) -> Any:
    return or_(model.ttl.is_(None), model.ttl > now_epoch)


class SqlKeyValueStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def _now_epoch(self) -> int:
        return int(self._clock())

    @contextmanager
    def _translate_errors(self, *, table: str, op: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError:
            raise
        except (DBAPIError, OSError, TimeoutError) as exc:
            logger.warning("kv_store_operation_failed", table=table, op=op, exc_info=exc)
            raise TransientStoreError from exc

    async def get(self, table: str, key: str) -> Item | None:
        model = _model_for(table)
        stmt = select(model.__table__).where(_primary_key_column(model) == key)
        if _has_ttl(model):
            stmt = stmt.where(_live_clause(model, self._now_epoch()))

        with self._translate_errors(table=table, op="get"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                row = result.mappings().one_or_none()
        return dict(row) if row is not None else None

    async def put(self, table: str, item: Mapping[str, Any]) -> None:
        model = _model_for(table)
        pk = _primary_key_column(model)
        values = dict(item)
        stmt = postgresql_insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[pk],
            set_={name: stmt.excluded[name] for name in values if name != pk.key},
        )

        with self._translate_errors(table=table, op="put"):
            async with self._session_factory.begin() as session:
                await session.execute(stmt)

    async def put_if_absent(self, table: str, item: Mapping[str, Any]) -> None:
        model = _model_for(table)
        pk = _primary_key_column(model)
        values = dict(item)
        stmt = postgresql_insert(model).values(**values)
        if _has_ttl(model):
            # An expired item counts as absent even before it is purged.
            stmt = stmt.on_conflict_do_update(
                index_elements=[pk],
                set_={name: stmt.excluded[name] for name in values if name != pk.key},
                where=and_(model.ttl.is_not(None), model.ttl <= self._now_epoch()),
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=[pk])
        stmt = stmt.returning(pk)

        with self._translate_errors(table=table, op="put_if_absent"):
            async with self._session_factory.begin() as session:
                result = await session.execute(stmt)
                inserted_key = result.scalar_one_or_none()
        if inserted_key is None:
            raise ConditionFailedError(table, str(values[pk.key]))

    async def update(
        self,
        table: str,
        key: str,
        *,
        set_fields: Mapping[str, Any] | None = None,
        increments: Mapping[str, int] | None = None,
        conditions: Sequence[Condition] = (),
    ) -> Item:
        model = _model_for(table)
        values: dict[str, Any] = dict(set_fields or {})
        for field, delta in (increments or {}).items():
            values[field] = getattr(model, field) + delta
        if not values:
            raise ValueError("update requires set_fields or increments")

        clauses = [_primary_key_column(model) == key]
        clauses.extend(_condition_clause(model, condition) for condition in conditions)
        if _has_ttl(model):
            clauses.append(_live_clause(model, self._now_epoch()))
        stmt = (
            update(model.__table__)
            .where(*clauses)
            .values(**values)
            .returning(*model.__table__.columns)
        )

        with self._translate_errors(table=table, op="update"):
            async with self._session_factory.begin() as session:
                result = await session.execute(stmt)
                row = result.mappings().one_or_none()
        if row is None:
            raise ConditionFailedError(table, key)
        return dict(row)

    async def scan(
        self,
        table: str,
        *,
        conditions: Sequence[Condition] = (),
        limit: int = 100,
    ) -> list[Item]:
        model = _model_for(table)
        stmt = select(model.__table__).where(
            *(_condition_clause(model, condition) for condition in conditions)
        )
        if _has_ttl(model):
            stmt = stmt.where(_live_clause(model, self._now_epoch()))
        stmt = stmt.order_by(_primary_key_column(model).asc()).limit(max(1, int(limit)))

        with self._translate_errors(table=table, op="scan"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.mappings().all()
        return [dict(row) for row in rows]
