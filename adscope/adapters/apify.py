from __future__ import annotations

from typing import Any

import httpx

from adscope.adapters.base import ad_library_search_url
from adscope.config import settings
from adscope.core.cancellation import CancelToken, check
from adscope.errors import AdapterUnavailable
from adscope.models.records import AdQueryOptions, AdRecord
from adscope.tools.rate_limiter import AsyncRateLimiter


class ApifyAdapter:
    """Premium scraping service: runs an Apify actor synchronously and reads its dataset."""

    name = "apify"

    def __init__(
        self,
        *,
        api_token: str | None = None,
        base_url: str | None = None,
        actor_id: str | None = None,
        timeout_seconds: float | None = None,
        rate_limiter: AsyncRateLimiter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_token = (settings.apify_api_token if api_token is None else api_token).strip()
        self.base_url = (base_url or settings.apify_base_url).rstrip("/")
        self.actor_id = actor_id or settings.apify_actor_id
        self.timeout_seconds = timeout_seconds or settings.apify_timeout_seconds
        self.rate_limiter = rate_limiter or AsyncRateLimiter(
            min_interval_seconds=settings.apify_min_interval_seconds
        )
        self._http_client = http_client

    def build_input(self, query: str, options: AdQueryOptions) -> dict[str, Any]:
        return {
            "adLibraryUrl": ad_library_search_url(query, options.country),
            "maxResults": options.limit,
        }

    async def fetch_ads(
        self,
        query: str,
        options: AdQueryOptions,
        *,
        cancel_token: CancelToken | None = None,
    ) -> list[AdRecord]:
        if not self.api_token:
            raise AdapterUnavailable(self.name, "APIFY_API_TOKEN not configured")

        check(cancel_token)
        await self.rate_limiter.wait(self.name)
        check(cancel_token)

        endpoint = f"{self.base_url}/acts/{self.actor_id}/run-sync-get-dataset-items"

        async def _do_request(client: httpx.AsyncClient) -> Any:
            response = await client.post(
                endpoint,
                params={"token": self.api_token},
                json=self.build_input(query, options),
            )
            if response.status_code in (401, 403):
                raise AdapterUnavailable(self.name, f"rejected credentials (HTTP {response.status_code})")
            response.raise_for_status()
            return response.json()

        if self._http_client is None:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                payload = await _do_request(client)
        else:
            payload = await _do_request(self._http_client)

        check(cancel_token)
        items = payload if isinstance(payload, list) else []
        ads = [item for item in items if isinstance(item, dict) and not item.get("error")]
        return ads[: options.limit]
