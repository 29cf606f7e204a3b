"""One-time free grants and the premium monthly resume allowance.

Every grant is a single conditional write on the user item, so a grant is
either fully recorded (flag plus counter) or not recorded at all, and two
racing requests can never both consume the same grant.
"""

from __future__ import annotations

from datetime import datetime

import structlog

from app.core.errors import EntitlementDeniedError, NotFoundError, TransientStoreError
from app.db.kv_store import USERS_TABLE, KeyValueStore
from app.db.records import UserRecord
from app.db.repo.resumes_repo import ResumesRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.entitlements.validator import EntitlementValidator
from app.economy.idempotency.gate import FlagGate
from app.economy.quota.messages import (
    FREE_DOWNLOAD_USED_MESSAGE,
    FREE_QUOTA_DISABLED_MESSAGE,
    FREE_RESUME_USED_MESSAGE,
    SUBSCRIPTION_EXPIRED_DOWNLOAD_MESSAGE,
    SUBSCRIPTION_EXPIRED_RESUME_MESSAGE,
    monthly_limit_message,
)
from app.economy.quota.types import DownloadResult, ResumeGrant

logger = structlog.get_logger(__name__)

MAX_MONTHLY_WRITE_ATTEMPTS = 3
FREE_QUOTA_EXHAUSTED = "FREE_QUOTA_EXHAUSTED"
PREMIUM_EXPIRED = "PREMIUM_EXPIRED"


def usage_month(now_utc: datetime) -> str:
    return now_utc.strftime("%Y-%m")


async def _load_user(store: KeyValueStore, user_id: str) -> UserRecord:
    user = await UsersRepo.get_by_id(store, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


def _denial(
    user: UserRecord,
    *,
    now_utc: datetime,
    message: str,
    expired_message: str,
) -> tuple[str, str]:
    # A lapsed subscriber is offered renewal rather than an upgrade.
    expiration = user.subscription_expiration
    if expiration is not None and expiration <= now_utc:
        return expired_message, PREMIUM_EXPIRED
    return message, FREE_QUOTA_EXHAUSTED


def _download_denial(user: UserRecord, *, now_utc: datetime, message: str) -> DownloadResult:
    message, code = _denial(
        user,
        now_utc=now_utc,
        message=message,
        expired_message=SUBSCRIPTION_EXPIRED_DOWNLOAD_MESSAGE,
    )
    return DownloadResult(
        allowed=False,
        quota_used=user.free_download_used,
        total_count=user.total_downloads,
        message=message,
        code=code,
    )


def _resume_denial(user: UserRecord, *, now_utc: datetime, message: str) -> EntitlementDeniedError:
    message, code = _denial(
        user,
        now_utc=now_utc,
        message=message,
        expired_message=SUBSCRIPTION_EXPIRED_RESUME_MESSAGE,
    )
    return EntitlementDeniedError(message, code=code)


def _free_download_gate(store: KeyValueStore) -> FlagGate:
    return FlagGate(
        store,
        table=USERS_TABLE,
        flag_field="free_download_used",
        increments={"total_downloads": 1},
    )


def _free_resume_gate(store: KeyValueStore) -> FlagGate:
    return FlagGate(
        store,
        table=USERS_TABLE,
        flag_field="free_resume_used",
        increments={"total_resumes_generated": 1},
    )


class QuotaTracker:
    @staticmethod
    async def track_download(
        store: KeyValueStore,
        *,
        user_id: str,
        resource_id: str,
        now_utc: datetime,
        free_quota_enabled: bool = True,
    ) -> DownloadResult:
        if not user_id or not resource_id:
            raise NotFoundError("Resume not found.")

        user = await _load_user(store, user_id)
        resume = await ResumesRepo.get_by_id(store, resource_id)
        if resume is None or resume.user_id != user_id:
            raise NotFoundError("Resume not found.")

        status = EntitlementValidator.check_status(user, now_utc=now_utc)
        if status.is_premium:
            updated = await UsersRepo.increment_downloads(store, user_id=user_id, now_utc=now_utc)
            return DownloadResult(
                allowed=True,
                quota_used=updated.free_download_used,
                total_count=updated.total_downloads,
            )

        if not free_quota_enabled:
            return _download_denial(user, now_utc=now_utc, message=FREE_QUOTA_DISABLED_MESSAGE)
        if user.free_download_used:
            return _download_denial(user, now_utc=now_utc, message=FREE_DOWNLOAD_USED_MESSAGE)

        result = await _free_download_gate(store).try_acquire(
            user_id,
            {"updated_at": now_utc},
        )
        if not result.acquired:
            logger.info("free_download_race_lost", user_id=user_id, resume_id=resource_id)
            fresh = await _load_user(store, user_id)
            return _download_denial(fresh, now_utc=now_utc, message=FREE_DOWNLOAD_USED_MESSAGE)

        assert result.item is not None
        updated = UserRecord.from_item(result.item)
        logger.info("free_download_granted", user_id=user_id, resume_id=resource_id)
        return DownloadResult(
            allowed=True,
            quota_used=True,
            total_count=max(0, updated.total_downloads),
        )

    @staticmethod
    def check_resume_quota(
        user: UserRecord,
        *,
        now_utc: datetime,
        monthly_limit: int,
        free_quota_enabled: bool = True,
    ) -> None:
        status = EntitlementValidator.check_status(user, now_utc=now_utc)
        if status.is_premium:
            if (
                user.premium_resume_month == usage_month(now_utc)
                and user.premium_resume_count >= monthly_limit
            ):
                raise EntitlementDeniedError(
                    monthly_limit_message(monthly_limit),
                    code="MONTHLY_QUOTA_EXHAUSTED",
                )
            return

        if not free_quota_enabled:
            raise _resume_denial(user, now_utc=now_utc, message=FREE_QUOTA_DISABLED_MESSAGE)
        if user.free_resume_used:
            raise _resume_denial(user, now_utc=now_utc, message=FREE_RESUME_USED_MESSAGE)

    @staticmethod
    async def track_resume_generation(
        store: KeyValueStore,
        *,
        user_id: str,
        now_utc: datetime,
        monthly_limit: int,
        free_quota_enabled: bool = True,
    ) -> ResumeGrant:
        user = await _load_user(store, user_id)
        QuotaTracker.check_resume_quota(
            user,
            now_utc=now_utc,
            monthly_limit=monthly_limit,
            free_quota_enabled=free_quota_enabled,
        )

        status = EntitlementValidator.check_status(user, now_utc=now_utc)
        if status.is_premium:
            return await _consume_monthly_allowance(
                store,
                user=user,
                now_utc=now_utc,
                monthly_limit=monthly_limit,
            )

        result = await _free_resume_gate(store).try_acquire(user_id, {"updated_at": now_utc})
        if not result.acquired:
            logger.info("free_resume_race_lost", user_id=user_id)
            raise _resume_denial(user, now_utc=now_utc, message=FREE_RESUME_USED_MESSAGE)

        assert result.item is not None
        updated = UserRecord.from_item(result.item)
        logger.info("free_resume_granted", user_id=user_id)
        return ResumeGrant(kind="free", total_resumes_generated=updated.total_resumes_generated)


async def _consume_monthly_allowance(
    store: KeyValueStore,
    *,
    user: UserRecord,
    now_utc: datetime,
    monthly_limit: int,
) -> ResumeGrant:
    month = usage_month(now_utc)
    observed = user
    for _ in range(MAX_MONTHLY_WRITE_ATTEMPTS):
        if observed.premium_resume_month == month:
            if observed.premium_resume_count >= monthly_limit:
                raise EntitlementDeniedError(
                    monthly_limit_message(monthly_limit),
                    code="MONTHLY_QUOTA_EXHAUSTED",
                )
            updated = await UsersRepo.consume_premium_resume(
                store,
                user_id=user.id,
                month=month,
                monthly_limit=monthly_limit,
                now_utc=now_utc,
            )
        else:
            updated = await UsersRepo.start_premium_resume_month(
                store,
                user_id=user.id,
                observed_month=observed.premium_resume_month,
                month=month,
                now_utc=now_utc,
            )

        if updated is not None:
            logger.info(
                "premium_resume_consumed",
                user_id=user.id,
                month=month,
                monthly_used=updated.premium_resume_count,
            )
            return ResumeGrant(
                kind="premium_monthly",
                total_resumes_generated=updated.total_resumes_generated,
                monthly_used=updated.premium_resume_count,
                monthly_limit=monthly_limit,
            )
        observed = await _load_user(store, user.id)

    if observed.premium_resume_month == month and observed.premium_resume_count >= monthly_limit:
        raise EntitlementDeniedError(
            monthly_limit_message(monthly_limit),
            code="MONTHLY_QUOTA_EXHAUSTED",
        )
    logger.warning("premium_resume_contention_exhausted", user_id=user.id, month=month)
    raise TransientStoreError
