from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class PremiumStatus:
    is_premium: bool
    is_expired: bool
    expires_at: datetime | None = None
    days_remaining: int | None = None
