from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.api.deps import get_current_user_id, get_store
from app.core.errors import NotFoundError
from app.db.kv_store import KeyValueStore
from app.db.repo.users_repo import UsersRepo
from app.economy.entitlements.validator import EntitlementValidator

from .schemas import CamelModel

router = APIRouter(prefix="/users", tags=["users"])


class EntitlementResponse(CamelModel):
    is_premium: bool
    is_expired: bool
    expires_at: datetime | None = None
    days_remaining: int | None = None
    plan_type: str | None = None
    free_resume_used: bool
    free_download_used: bool
    total_downloads: int


@router.get("/me/entitlement", response_model=EntitlementResponse)
async def get_entitlement(
    user_id: str = Depends(get_current_user_id),
    store: KeyValueStore = Depends(get_store),
) -> EntitlementResponse:
    now_utc = datetime.now(timezone.utc)
    user = await UsersRepo.get_by_id(store, user_id)
    if user is None:
        raise NotFoundError("User not found.")

    user = await EntitlementValidator.validate_and_downgrade(store, user=user, now_utc=now_utc)
    status = EntitlementValidator.check_status(user, now_utc=now_utc)
    expiration = user.subscription_expiration
    # A downgraded user still reports the lapsed subscription.
    is_expired = not status.is_premium and expiration is not None and expiration <= now_utc
    return EntitlementResponse(
        is_premium=status.is_premium,
        is_expired=is_expired,
        expires_at=expiration,
        days_remaining=status.days_remaining,
        plan_type=user.plan_type,
        free_resume_used=user.free_resume_used,
        free_download_used=user.free_download_used,
        total_downloads=user.total_downloads,
    )
