from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

GrantKind = Literal["free", "premium_monthly"]


@dataclass(frozen=True, slots=True)
class DownloadResult:
    allowed: bool
    quota_used: bool
    total_count: int
    message: str | None = None
    code: str | None = None


@dataclass(frozen=True, slots=True)
class ResumeGrant:
    kind: GrantKind
    total_resumes_generated: int
    monthly_used: int | None = None
    monthly_limit: int | None = None
