from __future__ import annotations

import pytest
import structlog

from app.workers.asyncio_runner import run_async_job


class _PoolResets:
    def __init__(self) -> None:
        self.count = 0

    async def __call__(self) -> None:
        self.count += 1


def test_job_runs_with_bound_context_and_fresh_pool() -> None:
    resets = _PoolResets()
    seen: dict[str, object] = {}

    async def job() -> str:
        seen.update(structlog.contextvars.get_contextvars())
        seen["resets_before_job"] = resets.count
        return "done"

    result = run_async_job("payments_reconciliation", job(), reset_pool=resets)

    assert result == "done"
    assert seen["job"] == "payments_reconciliation"
    assert len(str(seen["job_run_id"])) == 32
    assert seen["resets_before_job"] == 1
    assert resets.count == 2
    assert "job" not in structlog.contextvars.get_contextvars()


def test_failed_job_still_resets_pool_and_propagates() -> None:
    resets = _PoolResets()

    async def job() -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        run_async_job("payments_reconciliation", job(), reset_pool=resets)

    assert resets.count == 2
