"""Create the local PostgreSQL database used by the integration suite."""

from __future__ import annotations

import asyncio
import re

import asyncpg
import structlog
from sqlalchemy.engine import make_url

from app.core.config import get_settings
from app.core.integration_db_safety import assert_safe_integration_db
from app.core.logging import configure_logging

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

logger = structlog.get_logger("scripts.ensure_test_db")


async def ensure_test_database(database_url: str) -> bool:
    """Return True when the database had to be created."""
    assert_safe_integration_db(database_url)
    url = make_url(database_url)
    db_name = (url.database or "").strip()
    if IDENTIFIER_RE.fullmatch(db_name) is None:
        raise RuntimeError(f"Unsupported database name {db_name!r}.")
    if url.username is None:
        raise RuntimeError("DATABASE_URL username is required.")

    conn = await asyncpg.connect(
        host=url.host or "localhost",
        port=int(url.port or 5432),
        user=url.username,
        password=url.password,
        database="postgres",
    )
    try:
        exists = await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name)
        if exists:
            logger.info("test_database_exists", database=db_name, host=url.host)
            return False
        await conn.execute(f'CREATE DATABASE "{db_name}"')
    finally:
        await conn.close()

    logger.info("test_database_created", database=db_name, host=url.host)
    return True


def main() -> int:
    settings = get_settings()
    configure_logging(settings.log_level)
    asyncio.run(ensure_test_database(settings.database_url))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
