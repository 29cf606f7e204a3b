"""Guards the integration suite against truncating a real database."""

from __future__ import annotations

from sqlalchemy.engine import make_url

LOCAL_TEST_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "postgres", "quickresume_postgres"})


def unsafe_integration_db_reason(database_url: str) -> str | None:
    url = make_url(database_url)
    database = (url.database or "").strip()
    host = (url.host or "").strip().lower()

    if url.get_backend_name() != "postgresql":
        return "integration tests need PostgreSQL"
    if "test" not in database.lower():
        return f"database {database!r} is not named as a test database"
    if host not in LOCAL_TEST_HOSTS:
        return f"host {host!r} is not a local test host"
    return None


def assert_safe_integration_db(database_url: str) -> None:
    reason = unsafe_integration_db_reason(database_url)
    if reason is not None:
        raise RuntimeError(
            f"Refusing to run integration tests against this database: {reason}. "
            "Point DATABASE_URL at a local database such as 'quickresume_test'."
        )
