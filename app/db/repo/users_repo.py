from __future__ import annotations

from datetime import datetime

from app.db.kv_store import USERS_TABLE, Condition, ConditionFailedError, KeyValueStore
from app.db.records import UserRecord


class UsersRepo:
    @staticmethod
    async def get_by_id(store: KeyValueStore, user_id: str) -> UserRecord | None:
        item = await store.get(USERS_TABLE, user_id)
        if item is None:
            return None
        return UserRecord.from_item(item)

    @staticmethod
    async def create(
        store: KeyValueStore,
        *,
        user_id: str,
        email: str | None,
        now_utc: datetime,
    ) -> UserRecord:
        item = {
            "id": user_id,
            "email": email,
            "is_premium": False,
            "free_resume_used": False,
            "free_download_used": False,
            "total_downloads": 0,
            "total_resumes_generated": 0,
            "premium_resume_count": 0,
            "created_at": now_utc,
        }
        await store.put_if_absent(USERS_TABLE, item)
        return UserRecord.from_item(item)

    @staticmethod
    async def downgrade_expired(
        store: KeyValueStore,
        *,
        user_id: str,
        observed_expiration: datetime,
        now_utc: datetime,
    ) -> UserRecord | None:
        try:
            item = await store.update(
                USERS_TABLE,
                user_id,
                set_fields={"is_premium": False, "updated_at": now_utc},
                conditions=(
                    Condition("is_premium", "eq", True),
                    Condition("subscription_expiration", "eq", observed_expiration),
                ),
            )
        except ConditionFailedError:
            return None
        return UserRecord.from_item(item)

    @staticmethod
    async def increment_downloads(
        store: KeyValueStore,
        *,
        user_id: str,
        now_utc: datetime,
    ) -> UserRecord:
        item = await store.update(
            USERS_TABLE,
            user_id,
            set_fields={"updated_at": now_utc},
            increments={"total_downloads": 1},
        )
        return UserRecord.from_item(item)

    @staticmethod
    async def consume_premium_resume(
        store: KeyValueStore,
        *,
        user_id: str,
        month: str,
        monthly_limit: int,
        now_utc: datetime,
    ) -> UserRecord | None:
        try:
            item = await store.update(
                USERS_TABLE,
                user_id,
                set_fields={"updated_at": now_utc},
                increments={"premium_resume_count": 1, "total_resumes_generated": 1},
                conditions=(
                    Condition("premium_resume_month", "eq", month),
                    Condition("premium_resume_count", "lt", monthly_limit),
                ),
            )
        except ConditionFailedError:
            return None
        return UserRecord.from_item(item)

    @staticmethod
    async def start_premium_resume_month(
        store: KeyValueStore,
        *,
        user_id: str,
        observed_month: str | None,
        month: str,
        now_utc: datetime,
    ) -> UserRecord | None:
        try:
            item = await store.update(
                USERS_TABLE,
                user_id,
                set_fields={
                    "premium_resume_month": month,
                    "premium_resume_count": 1,
                    "updated_at": now_utc,
                },
                increments={"total_resumes_generated": 1},
                conditions=(Condition("premium_resume_month", "eq", observed_month),),
            )
        except ConditionFailedError:
            return None
        return UserRecord.from_item(item)

    @staticmethod
    async def apply_premium_upgrade(
        store: KeyValueStore,
        *,
        user_id: str,
        observed_expiration: datetime | None,
        plan_type: str,
        subscription_start: datetime,
        subscription_expiration: datetime,
        payment_provider: str,
        transaction_id: str,
        payer_id: str | None,
        now_utc: datetime,
    ) -> UserRecord | None:
        try:
            item = await store.update(
                USERS_TABLE,
                user_id,
                set_fields={
                    "is_premium": True,
                    "plan_type": plan_type,
                    "subscription_start_date": subscription_start,
                    "subscription_expiration": subscription_expiration,
                    "payment_provider": payment_provider,
                    "payment_customer_id": payer_id,
                    "last_transaction_id": transaction_id,
                    "updated_at": now_utc,
                },
                conditions=(Condition("subscription_expiration", "eq", observed_expiration),),
            )
        except ConditionFailedError:
            return None
        return UserRecord.from_item(item)
