from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.api.deps import get_current_user_id, get_store
from app.core.config import get_settings
from app.core.errors import EntitlementDeniedError, NotFoundError, TransientStoreError
from app.db.kv_store import KeyValueStore
from app.db.repo.users_repo import UsersRepo
from app.economy.entitlements.validator import EntitlementValidator
from app.economy.quota.tracker import QuotaTracker
from app.economy.rate_limit.rules import DOWNLOAD_RESUME, get_rule
from app.economy.rate_limit.service import WindowedRateLimiter

from .resumes_models import DownloadResponse

router = APIRouter(prefix="/resumes", tags=["resumes"])


@router.post("/{resume_id}/download", response_model=DownloadResponse)
async def track_download(
    resume_id: str,
    user_id: str = Depends(get_current_user_id),
    store: KeyValueStore = Depends(get_store),
) -> DownloadResponse:
    now_utc = datetime.now(timezone.utc)
    user = await UsersRepo.get_by_id(store, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    user = await EntitlementValidator.validate_and_downgrade(store, user=user, now_utc=now_utc)

    await WindowedRateLimiter.enforce(
        store,
        subject=user_id,
        rule=get_rule(DOWNLOAD_RESUME),
        now_utc=now_utc,
        is_premium=EntitlementValidator.check_status(user, now_utc=now_utc).is_premium,
    )

    try:
        result = await QuotaTracker.track_download(
            store,
            user_id=user_id,
            resource_id=resume_id,
            now_utc=now_utc,
            free_quota_enabled=get_settings().free_quota_enabled,
        )
    except TransientStoreError:
        await WindowedRateLimiter.refund(store, subject=user_id, endpoint=DOWNLOAD_RESUME)
        raise

    if not result.allowed:
        raise EntitlementDeniedError(result.message, code=result.code or "FREE_QUOTA_EXHAUSTED")
    return DownloadResponse(
        allowed=True,
        quota_used=result.quota_used,
        total_downloads=result.total_count,
    )
