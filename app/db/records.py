from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class UserRecord:
    id: str
    email: str | None = None
    is_premium: bool = False
    subscription_start_date: datetime | None = None
    subscription_expiration: datetime | None = None
    free_resume_used: bool = False
    free_download_used: bool = False
    total_downloads: int = 0
    total_resumes_generated: int = 0
    premium_resume_count: int = 0
    premium_resume_month: str | None = None
    plan_type: str | None = None
    payment_provider: str | None = None
    payment_customer_id: str | None = None
    last_transaction_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> UserRecord:
        return cls(
            id=str(item["id"]),
            email=item.get("email"),
            is_premium=bool(item.get("is_premium", False)),
            subscription_start_date=item.get("subscription_start_date"),
            subscription_expiration=item.get("subscription_expiration"),
            free_resume_used=bool(item.get("free_resume_used", False)),
            free_download_used=bool(item.get("free_download_used", False)),
            total_downloads=int(item.get("total_downloads") or 0),
            total_resumes_generated=int(item.get("total_resumes_generated") or 0),
            premium_resume_count=int(item.get("premium_resume_count") or 0),
            premium_resume_month=item.get("premium_resume_month"),
            plan_type=item.get("plan_type"),
            payment_provider=item.get("payment_provider"),
            payment_customer_id=item.get("payment_customer_id"),
            last_transaction_id=item.get("last_transaction_id"),
            created_at=item.get("created_at"),
            updated_at=item.get("updated_at"),
        )


@dataclass(frozen=True, slots=True)
class RateLimitState:
    key: str
    count: int
    window_start: int
    ttl: int | None = None

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> RateLimitState:
        return cls(
            key=str(item["key"]),
            count=int(item["count"]),
            window_start=int(item["window_start"]),
            ttl=int(item["ttl"]) if item.get("ttl") is not None else None,
        )


@dataclass(frozen=True, slots=True)
class ProcessedOrderMarker:
    order_id: str
    user_id: str
    transaction_id: str
    plan_type: str
    captured_amount: str
    captured_currency: str
    processed_at: datetime
    payer_id: str | None = None
    entitlement_applied: bool = False
    applied_at: datetime | None = None
    ttl: int | None = None

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> ProcessedOrderMarker:
        return cls(
            order_id=str(item["order_id"]),
            user_id=str(item["user_id"]),
            transaction_id=str(item["transaction_id"]),
            plan_type=str(item["plan_type"]),
            captured_amount=str(item["captured_amount"]),
            captured_currency=str(item["captured_currency"]),
            processed_at=item["processed_at"],
            payer_id=item.get("payer_id"),
            entitlement_applied=bool(item.get("entitlement_applied", False)),
            applied_at=item.get("applied_at"),
            ttl=int(item["ttl"]) if item.get("ttl") is not None else None,
        )

    def as_item(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "user_id": self.user_id,
            "transaction_id": self.transaction_id,
            "plan_type": self.plan_type,
            "payer_id": self.payer_id,
            "captured_amount": self.captured_amount,
            "captured_currency": self.captured_currency,
            "processed_at": self.processed_at,
            "entitlement_applied": self.entitlement_applied,
            "applied_at": self.applied_at,
            "ttl": self.ttl,
        }


@dataclass(frozen=True, slots=True)
class ResumeRecord:
    id: str
    user_id: str
    title: str | None = None

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> ResumeRecord:
        return cls(id=str(item["id"]), user_id=str(item["user_id"]), title=item.get("title"))
