from __future__ import annotations

import pytest

from tests.kv_fixtures import InMemoryKeyValueStore


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()
