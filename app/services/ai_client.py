from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from app.core.config import Settings
from app.core.errors import AiServiceError

logger = structlog.get_logger(__name__)


class AiResumeClient(Protocol):
    async def generate_resume(
        self,
        *,
        user_id: str,
        resume_data: dict[str, Any],
        language: str,
    ) -> dict[str, Any]: ...


class HttpAiResumeClient:
    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpAiResumeClient:
        return cls(
            base_url=settings.ai_service_url,
            token=settings.ai_service_token,
            timeout_seconds=settings.ai_service_timeout_seconds,
        )

    async def generate_resume(
        self,
        *,
        user_id: str,
        resume_data: dict[str, Any],
        language: str,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    "/v1/resumes/generate",
                    json={"userId": user_id, "language": language, "resumeData": resume_data},
                    headers=headers,
                )
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("ai_resume_generation_failed", user_id=user_id, error=str(exc))
            raise AiServiceError from exc

        if not isinstance(body, dict):
            raise AiServiceError
        return body
