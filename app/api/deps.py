from __future__ import annotations

from functools import lru_cache

from fastapi import Header

from app.core.config import get_settings
from app.db.kv_store import KeyValueStore, SqlKeyValueStore
from app.services.ai_client import AiResumeClient, HttpAiResumeClient
from app.services.auth_tokens import decode_user_id, extract_bearer_token
from app.services.notifications import CeleryConfirmationNotifier, ConfirmationNotifier
from app.services.payment_gateway import PaymentGateway, PayPalGatewayClient


@lru_cache(maxsize=1)
def get_store() -> KeyValueStore:
    from app.db.session import SessionLocal

    return SqlKeyValueStore(SessionLocal)


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    # One client per process so the access token cache is shared.
    return PayPalGatewayClient.from_settings(get_settings())


def get_notifier() -> ConfirmationNotifier:
    return CeleryConfirmationNotifier()


@lru_cache(maxsize=1)
def get_ai_client() -> AiResumeClient:
    return HttpAiResumeClient.from_settings(get_settings())


def get_current_user_id(authorization: str | None = Header(default=None)) -> str:
    settings = get_settings()
    token = extract_bearer_token(authorization)
    return decode_user_id(token, secret=settings.jwt_secret, algorithm=settings.jwt_algorithm)
