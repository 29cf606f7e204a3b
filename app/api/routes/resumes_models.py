from __future__ import annotations

from typing import Any

from pydantic import Field

from .schemas import CamelModel


class DownloadResponse(CamelModel):
    allowed: bool
    quota_used: bool
    total_downloads: int = Field(ge=0)


class AiResumeRequest(CamelModel):
    resume_data: dict[str, Any]
    language: str = Field(default="en", min_length=2, max_length=8)


class AiResumeResponse(CamelModel):
    resume: dict[str, Any]
    grant: str
    total_resumes_generated: int = Field(ge=0)
    monthly_used: int | None = None
    monthly_limit: int | None = None
