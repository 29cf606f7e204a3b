from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_ai_client, get_notifier, get_payment_gateway, get_store
from app.core.config import get_settings
from app.core.errors import AiServiceError
from app.main import app
from app.services.auth_tokens import issue_access_token
from tests.kv_fixtures import FakePaymentGateway, InMemoryKeyValueStore, RecordingNotifier


@dataclass
class FakeAiClient:
    calls: list[str] = field(default_factory=list)
    error: AiServiceError | None = None

    async def generate_resume(
        self,
        *,
        user_id: str,
        resume_data: dict[str, Any],
        language: str,
    ) -> dict[str, Any]:
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return {"language": language, "summary": f"Resume for {resume_data.get('name', 'anonymous')}"}


@dataclass
class ApiHarness:
    client: TestClient
    store: InMemoryKeyValueStore
    gateway: FakePaymentGateway
    notifier: RecordingNotifier
    ai_client: FakeAiClient

    def auth(self, user_id: str = "user-1") -> dict[str, str]:
        settings = get_settings()
        token = issue_access_token(
            user_id=user_id,
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            now_utc=datetime.now(timezone.utc),
        )
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api(store: InMemoryKeyValueStore) -> Iterator[ApiHarness]:
    harness = ApiHarness(
        client=TestClient(app),
        store=store,
        gateway=FakePaymentGateway(),
        notifier=RecordingNotifier(),
        ai_client=FakeAiClient(),
    )
    app.dependency_overrides[get_store] = lambda: harness.store
    app.dependency_overrides[get_payment_gateway] = lambda: harness.gateway
    app.dependency_overrides[get_notifier] = lambda: harness.notifier
    app.dependency_overrides[get_ai_client] = lambda: harness.ai_client
    try:
        yield harness
    finally:
        app.dependency_overrides.clear()
