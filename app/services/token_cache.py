from __future__ import annotations

import time
from collections.abc import Callable

DEFAULT_REFRESH_BUFFER_SECONDS = 60.0


class AccessTokenCache:
    """Holds one bearer token until shortly before the provider expires it."""

    def __init__(
        self,
        *,
        refresh_buffer_seconds: float = DEFAULT_REFRESH_BUFFER_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._refresh_buffer_seconds = refresh_buffer_seconds
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0

    def get(self) -> str | None:
        if self._token is None:
            return None
        if self._clock() >= self._expires_at - self._refresh_buffer_seconds:
            return None
        return self._token

    def store(self, token: str, *, expires_in_seconds: float) -> None:
        self._token = token
        self._expires_at = self._clock() + expires_in_seconds

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0
