from __future__ import annotations

from datetime import datetime

from pydantic import Field

from .schemas import CamelModel


class OrderRequest(CamelModel):
    plan_type: str = Field(min_length=1, max_length=16)


class OrderResponse(CamelModel):
    order_id: str
    approval_url: str | None = None
    status: str


class CaptureRequest(CamelModel):
    order_id: str = Field(min_length=1, max_length=64)


class CapturedUser(CamelModel):
    id: str
    email: str | None = None
    is_premium: bool
    plan_type: str | None = None
    subscription_expiration: datetime | None = None


class CaptureResponse(CamelModel):
    success: bool
    duplicate: bool
    message: str
    transaction_id: str | None = None
    plan_type: str | None = None
    subscription_expiration: datetime | None = None
    user: CapturedUser | None = None
