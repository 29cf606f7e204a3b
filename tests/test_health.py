import pytest
from fastapi.testclient import TestClient

from app.api.routes import health as health_routes
from app.main import app


async def _ok_check() -> dict[str, str]:
    return {"status": "ok"}


def _patch_checks(monkeypatch, **overrides) -> None:
    checks = {
        "_check_database": _ok_check,
        "_check_redis": _ok_check,
        "_check_celery_worker": _ok_check,
        **overrides,
    }
    for name, check in checks.items():
        monkeypatch.setattr(health_routes, name, check)


def test_live_ok() -> None:
    response = TestClient(app).get("/live")

    assert response.status_code == 200
    assert response.json() == {"status": "live"}


def test_health_ok(monkeypatch) -> None:
    _patch_checks(monkeypatch)

    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "checks": {
            "database": {"status": "ok"},
            "redis": {"status": "ok"},
            "celery": {"status": "ok"},
        },
    }


def test_health_degrades_when_celery_is_down(monkeypatch) -> None:
    async def _failed_celery() -> dict[str, str]:
        return {"status": "failed", "error": "celery_no_workers"}

    _patch_checks(monkeypatch, _check_celery_worker=_failed_celery)

    response = TestClient(app).get("/health")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["checks"]["celery"] == {"status": "failed", "error": "celery_no_workers"}


def test_ready_ignores_celery(monkeypatch) -> None:
    async def _failed_celery() -> dict[str, str]:
        raise AssertionError("readiness must not wait on workers")

    _patch_checks(monkeypatch, _check_celery_worker=_failed_celery)

    response = TestClient(app).get("/ready")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ready",
        "checks": {
            "database": {"status": "ok"},
            "redis": {"status": "ok"},
        },
    }


def test_ready_fails_without_database(monkeypatch) -> None:
    async def _failed_database() -> dict[str, str]:
        return {"status": "failed", "error": "database_unavailable"}

    _patch_checks(monkeypatch, _check_database=_failed_database)

    response = TestClient(app).get("/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


@pytest.mark.asyncio
async def test_database_check_sanitizes_exception(monkeypatch) -> None:
    class _BrokenSession:
        async def __aenter__(self):
            raise RuntimeError("password=secret")

        async def __aexit__(self, exc_type, exc, tb) -> bool:
            return False

    monkeypatch.setattr(health_routes, "SessionLocal", lambda: _BrokenSession())

    result = await health_routes._check_database()
    assert result == {"status": "failed", "error": "database_unavailable"}


@pytest.mark.asyncio
async def test_redis_check_sanitizes_exception(monkeypatch) -> None:
    class _BrokenRedis:
        @classmethod
        def from_url(cls, url: str):
            raise RuntimeError(f"cannot reach {url}")

    monkeypatch.setattr(health_routes, "Redis", _BrokenRedis)

    result = await health_routes._check_redis()
    assert result == {"status": "failed", "error": "redis_unavailable"}


def test_celery_check_reports_missing_workers(monkeypatch) -> None:
    class _Inspector:
        def ping(self):
            return {}

    class _Control:
        def inspect(self, timeout: float):
            return _Inspector()

    monkeypatch.setattr(health_routes.celery_app, "control", _Control())

    assert health_routes._check_celery_worker_sync() == {
        "status": "failed",
        "error": "celery_no_workers",
    }


def test_celery_check_sanitizes_exception(monkeypatch) -> None:
    class _BrokenControl:
        def inspect(self, timeout: float):
            raise RuntimeError("broker-url=redis://secret")

    monkeypatch.setattr(health_routes.celery_app, "control", _BrokenControl())

    result = health_routes._check_celery_worker_sync()
    assert result == {"status": "failed", "error": "celery_unavailable"}
