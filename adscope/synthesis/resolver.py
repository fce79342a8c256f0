from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import Any

from loguru import logger

from adscope.config import settings
from adscope.core.cancellation import CancelToken, check
from adscope.errors import AllProvidersUnavailable, NoDataAvailable, OperationCancelled, ProviderUnavailable
from adscope.models.records import PageResult, utc_now
from adscope.services.logger import log_provider_call
from adscope.synthesis.prompt import build_analysis_prompt
from adscope.synthesis.providers import SynthesisProvider, build_providers, volume_summary


class SynthesisResolver:
    """Turns per-page results into one competitive analysis.

    Providers are tried in order until one returns a structured answer.
    """

    def __init__(self, providers: Sequence[SynthesisProvider] | None = None, *, timeout_seconds: float | None = None):
        self.providers = list(providers) if providers is not None else build_providers()
        self.timeout_seconds = timeout_seconds or settings.synthesis_timeout_seconds

    async def synthesize(
        self,
        pages: dict[str, PageResult | None],
        *,
        cancel_token: CancelToken | None = None,
    ) -> dict[str, Any]:
        resolved = {slot: result for slot, result in pages.items() if result is not None}
        if not any(result.records for result in resolved.values()):
            raise NoDataAvailable("No ad data available for analysis")

        prompt = build_analysis_prompt(pages)
        failures: list[tuple[str, str]] = []

        for provider in self.providers:
            check(cancel_token)
            started = time.perf_counter()
            try:
                analysis = await asyncio.wait_for(provider.analyze(prompt, resolved), timeout=self.timeout_seconds)
            except OperationCancelled:
                raise
            except ProviderUnavailable as exc:
                failures.append((provider.name, exc.reason))
                logger.debug(f"Synthesis provider {provider.name} unavailable: {exc.reason}")
                continue
            except Exception as exc:
                reason = str(exc) or exc.__class__.__name__
                failures.append((provider.name, reason))
                log_provider_call(
                    provider.name,
                    "error",
                    duration_ms=int((time.perf_counter() - started) * 1000),
                    error=reason,
                )
                continue

            if analysis is None:
                failures.append((provider.name, "no result"))
                continue
            if not isinstance(analysis, dict):
                failures.append((provider.name, "unstructured result"))
                logger.warning(f"Synthesis provider {provider.name} returned {type(analysis).__name__}, not an object")
                continue

            log_provider_call(provider.name, "ok", duration_ms=int((time.perf_counter() - started) * 1000))
            return self._finalize(analysis, provider.name, pages)

        raise AllProvidersUnavailable(failures)

    @staticmethod
    def _finalize(analysis: dict[str, Any], provider: str, pages: dict[str, PageResult | None]) -> dict[str, Any]:
        # A prose summary is kept as-is; the volume table is always attached.
        summary = analysis.get("summary")
        if isinstance(summary, str):
            summary = summary.strip()
        volume = volume_summary(pages)
        return {
            "summary": summary if summary and isinstance(summary, (dict, str)) else volume,
            "volume_summary": volume,
            "insights": _as_list(analysis.get("insights")),
            "recommendations": _as_list(analysis.get("recommendations")),
            "provider": provider,
            "analyzed_at": utc_now(),
        }


def _as_list(value: Any) -> list[Any]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]
