"""Ordered fallback across backend adapters.

Adapters are tried left to right. An adapter that raises or returns nothing
hands over to the next one; the first non-empty answer wins. Running out of
adapters is not an error: the caller gets ``records=[]`` and
``source_tag="none"``.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from loguru import logger

from adscope.adapters.base import BackendAdapter
from adscope.config import settings
from adscope.core.cancellation import CancelToken, check
from adscope.errors import OperationCancelled
from adscope.models.records import AdQueryOptions, AdRecord
from adscope.services.logger import log_adapter_call

NO_SOURCE = "none"


@dataclass(slots=True)
class AdapterAttempt:
    adapter: str
    outcome: str  # ok | empty | error
    detail: str | None = None


@dataclass(slots=True)
class ChainResult:
    records: list[AdRecord]
    source_tag: str
    attempts: list[AdapterAttempt] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.records)

    def failure_summary(self) -> str:
        tried = ", ".join(attempt.adapter for attempt in self.attempts) or "no adapters configured"
        return f"All scraping methods failed ({tried})"


async def resolve(
    chain: Sequence[BackendAdapter],
    query: str,
    options: AdQueryOptions,
    *,
    cancel_token: CancelToken | None = None,
    log_empty_as_failure: bool | None = None,
) -> ChainResult:
    if log_empty_as_failure is None:
        log_empty_as_failure = settings.log_empty_as_failure

    attempts: list[AdapterAttempt] = []
    for adapter in chain:
        check(cancel_token)
        started = time.perf_counter()
        try:
            records = await adapter.fetch_ads(query, options, cancel_token=cancel_token)
        except OperationCancelled:
            raise
        except Exception as exc:
            duration_ms = int((time.perf_counter() - started) * 1000)
            detail = f"{exc.__class__.__name__}: {exc}"
            attempts.append(AdapterAttempt(adapter.name, "error", detail))
            log_adapter_call(adapter.name, query, "error", duration_ms=duration_ms, error=detail)
            continue

        duration_ms = int((time.perf_counter() - started) * 1000)
        records = list(records or [])
        if not records:
            attempts.append(AdapterAttempt(adapter.name, "empty"))
            if log_empty_as_failure:
                logger.warning(f"Adapter {adapter.name} returned no ads for {query!r}")
            else:
                logger.debug(f"Adapter {adapter.name} returned no ads for {query!r}")
            continue

        attempts.append(AdapterAttempt(adapter.name, "ok"))
        log_adapter_call(adapter.name, query, "ok", records=len(records), duration_ms=duration_ms)
        return ChainResult(records=records, source_tag=adapter.name, attempts=attempts)

    return ChainResult(records=[], source_tag=NO_SOURCE, attempts=attempts)
