from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends

from app.api.deps import get_ai_client, get_current_user_id, get_store
from app.core.config import get_settings
from app.core.errors import AiServiceError, NotFoundError, TransientStoreError
from app.db.kv_store import KeyValueStore
from app.db.repo.users_repo import UsersRepo
from app.economy.entitlements.validator import EntitlementValidator
from app.economy.quota.tracker import QuotaTracker
from app.economy.rate_limit.rules import GENERATE_RESUME, get_rule
from app.economy.rate_limit.service import WindowedRateLimiter
from app.services.ai_client import AiResumeClient

from .resumes_models import AiResumeRequest, AiResumeResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/resume", response_model=AiResumeResponse)
async def generate_resume(
    payload: AiResumeRequest,
    user_id: str = Depends(get_current_user_id),
    store: KeyValueStore = Depends(get_store),
    ai_client: AiResumeClient = Depends(get_ai_client),
) -> AiResumeResponse:
    settings = get_settings()
    now_utc = datetime.now(timezone.utc)

    user = await UsersRepo.get_by_id(store, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    user = await EntitlementValidator.validate_and_downgrade(store, user=user, now_utc=now_utc)
    QuotaTracker.check_resume_quota(
        user,
        now_utc=now_utc,
        monthly_limit=settings.premium_monthly_resume_limit,
        free_quota_enabled=settings.free_quota_enabled,
    )

    status = EntitlementValidator.check_status(user, now_utc=now_utc)
    await WindowedRateLimiter.enforce(
        store,
        subject=user_id,
        rule=get_rule(GENERATE_RESUME),
        now_utc=now_utc,
        is_premium=status.is_premium,
    )

    try:
        resume = await ai_client.generate_resume(
            user_id=user_id,
            resume_data=payload.resume_data,
            language=payload.language,
        )
    except AiServiceError:
        await WindowedRateLimiter.refund(store, subject=user_id, endpoint=GENERATE_RESUME)
        raise

    try:
        grant = await QuotaTracker.track_resume_generation(
            store,
            user_id=user_id,
            now_utc=now_utc,
            monthly_limit=settings.premium_monthly_resume_limit,
            free_quota_enabled=settings.free_quota_enabled,
        )
    except TransientStoreError:
        await WindowedRateLimiter.refund(store, subject=user_id, endpoint=GENERATE_RESUME)
        raise

    logger.info("ai_resume_generated", user_id=user_id, grant=grant.kind)
    return AiResumeResponse(
        resume=resume,
        grant=grant.kind,
        total_resumes_generated=grant.total_resumes_generated,
        monthly_used=grant.monthly_used,
        monthly_limit=grant.monthly_limit,
    )
