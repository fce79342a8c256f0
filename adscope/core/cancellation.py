from __future__ import annotations

import asyncio

from adscope.errors import OperationCancelled


class CancelToken:
    """Cooperative cancellation flag threaded through adapter and provider calls."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason or "cancelled")


def check(token: CancelToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()
