"""Async minimum-interval limiter owned by a single adapter."""

from __future__ import annotations

import asyncio
import time


class AsyncRateLimiter:
    """Enforces a minimum interval between successive calls for each key.

    Calls for the same key queue behind one another; different keys do not
    block each other.
    """

    def __init__(self, *, min_interval_seconds: float) -> None:
        self._min_interval = max(0.0, float(min_interval_seconds))
        self._last_call_by_key: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def min_interval_seconds(self) -> float:
        return self._min_interval

    async def wait(self, key: str = "default") -> float:
        """Sleep as needed and return the number of seconds waited."""
        if self._min_interval <= 0:
            return 0.0

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            now = time.monotonic()
            last = self._last_call_by_key.get(key)
            waited = 0.0
            if last is not None:
                waited = self._min_interval - (now - last)
                if waited > 0:
                    await asyncio.sleep(waited)
                else:
                    waited = 0.0
            self._last_call_by_key[key] = time.monotonic()
            return waited
