"""Premium validity derived from the stored subscription expiration.

Expiration is evaluated lazily: nothing sweeps expired users. A request that
observes a premium user past their expiration persists the downgrade itself.
"""

from __future__ import annotations

import math
from datetime import datetime

import structlog

from app.core.errors import EntitlementDeniedError
from app.db.kv_store import KeyValueStore
from app.db.records import UserRecord
from app.db.repo.users_repo import UsersRepo
from app.economy.entitlements.types import PremiumStatus

logger = structlog.get_logger(__name__)

SECONDS_PER_DAY = 86400

PREMIUM_REQUIRED_MESSAGE = "This feature requires a premium subscription. Upgrade to continue."
PREMIUM_EXPIRED_MESSAGE = "Your premium subscription has expired. Renew to continue."


class EntitlementValidator:
    @staticmethod
    def check_status(user: UserRecord, *, now_utc: datetime) -> PremiumStatus:
        if not user.is_premium:
            return PremiumStatus(is_premium=False, is_expired=False)

        expires_at = user.subscription_expiration
        if expires_at is None:
            # Premium granted before expirations were tracked.
            return PremiumStatus(is_premium=True, is_expired=False)

        is_expired = expires_at <= now_utc
        days_remaining = (
            0
            if is_expired
            else math.ceil((expires_at - now_utc).total_seconds() / SECONDS_PER_DAY)
        )
        return PremiumStatus(
            is_premium=not is_expired,
            is_expired=is_expired,
            expires_at=expires_at,
            days_remaining=days_remaining,
        )

    @staticmethod
    async def validate_and_downgrade(
        store: KeyValueStore,
        *,
        user: UserRecord,
        now_utc: datetime,
    ) -> UserRecord:
        status = EntitlementValidator.check_status(user, now_utc=now_utc)
        if not (user.is_premium and status.is_expired):
            return user

        assert user.subscription_expiration is not None
        downgraded = await UsersRepo.downgrade_expired(
            store,
            user_id=user.id,
            observed_expiration=user.subscription_expiration,
            now_utc=now_utc,
        )
        if downgraded is not None:
            logger.info(
                "premium_expired_downgraded",
                user_id=user.id,
                expired_at=user.subscription_expiration.isoformat(),
            )
            return downgraded

        # Lost to a concurrent renewal or downgrade; the stored record wins.
        fresh = await UsersRepo.get_by_id(store, user.id)
        return fresh if fresh is not None else user

    @staticmethod
    def require_premium(user: UserRecord, *, now_utc: datetime) -> PremiumStatus:
        status = EntitlementValidator.check_status(user, now_utc=now_utc)
        if status.is_premium:
            return status

        expiration = user.subscription_expiration
        if status.is_expired or (expiration is not None and expiration <= now_utc):
            raise EntitlementDeniedError(PREMIUM_EXPIRED_MESSAGE, code="PREMIUM_EXPIRED")
        raise EntitlementDeniedError(PREMIUM_REQUIRED_MESSAGE, code="PREMIUM_REQUIRED")
