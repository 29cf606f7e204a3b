from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.db.records import UserRecord


@dataclass(frozen=True, slots=True)
class OrderMetadata:
    user_id: str
    plan_type: str


@dataclass(frozen=True, slots=True)
class GatewayOrder:
    order_id: str
    approval_url: str | None
    status: str


@dataclass(frozen=True, slots=True)
class OrderDetails:
    order_id: str
    status: str
    metadata: OrderMetadata | None = None


@dataclass(frozen=True, slots=True)
class CaptureOutcome:
    status: str
    captured_amount: str | None
    captured_currency: str | None
    transaction_id: str | None
    payer_id: str | None
    metadata: OrderMetadata | None


@dataclass(slots=True)
class CaptureResult:
    success: bool
    duplicate: bool
    message: str
    transaction_id: str | None = None
    plan_type: str | None = None
    subscription_expiration: datetime | None = None
    user: UserRecord | None = None


@dataclass(slots=True)
class ReconciliationSummary:
    scanned: int = 0
    applied: int = 0
    failed: int = 0
