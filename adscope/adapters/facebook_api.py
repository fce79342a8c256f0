from __future__ import annotations

import json
from typing import Any

import httpx

from adscope.config import settings
from adscope.core.cancellation import CancelToken, check
from adscope.errors import AdapterUnavailable
from adscope.models.records import AdQueryOptions, AdRecord
from adscope.tools.rate_limiter import AsyncRateLimiter

AD_FIELDS = (
    "id",
    "ad_snapshot_url",
    "funding_entity",
    "page_name",
    "page_id",
    "ad_delivery_start_time",
    "ad_delivery_stop_time",
    "impressions",
    "spend",
    "ad_creative_bodies",
    "ad_creative_link_captions",
    "ad_creative_link_descriptions",
    "ad_creative_link_titles",
)
GRAPH_MAX_PAGE_SIZE = 1000

# Graph error codes that mean the token itself is unusable.
TOKEN_ERROR_CODES = {10, 190, 200}


class FacebookAdLibraryAdapter:
    """Public API client for the Ad Library ``ads_archive`` endpoint."""

    name = "facebook_api"

    def __init__(
        self,
        *,
        access_token: str | None = None,
        base_url: str | None = None,
        api_version: str | None = None,
        timeout_seconds: float | None = None,
        rate_limiter: AsyncRateLimiter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.access_token = (
            settings.facebook_access_token if access_token is None else access_token
        ).strip()
        self.base_url = (base_url or settings.facebook_graph_base_url).rstrip("/")
        self.api_version = api_version or settings.facebook_api_version
        self.timeout_seconds = timeout_seconds or settings.facebook_timeout_seconds
        self.rate_limiter = rate_limiter or AsyncRateLimiter(
            min_interval_seconds=settings.facebook_min_interval_seconds
        )
        self._http_client = http_client

    def build_params(self, query: str, options: AdQueryOptions) -> dict[str, Any]:
        return {
            "search_terms": query,
            "ad_reached_countries": json.dumps([options.country]),
            "ad_type": "ALL",
            "ad_active_status": "ALL",
            "fields": ",".join(AD_FIELDS),
            "limit": min(options.limit, GRAPH_MAX_PAGE_SIZE),
            "access_token": self.access_token,
        }

    async def fetch_ads(
        self,
        query: str,
        options: AdQueryOptions,
        *,
        cancel_token: CancelToken | None = None,
    ) -> list[AdRecord]:
        if not self.access_token:
            raise AdapterUnavailable(self.name, "FACEBOOK_ACCESS_TOKEN not configured")

        url: str | None = f"{self.base_url}/{self.api_version}/ads_archive"
        params: dict[str, Any] | None = self.build_params(query, options)
        ads: list[AdRecord] = []

        async def _get_page(client: httpx.AsyncClient, page_url: str, page_params: dict[str, Any] | None) -> dict:
            check(cancel_token)
            await self.rate_limiter.wait(self.name)
            response = await client.get(page_url, params=page_params)
            payload = response.json() if response.content else {}
            if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
                raise self._graph_error(payload["error"])
            response.raise_for_status()
            return payload if isinstance(payload, dict) else {}

        async def _collect(client: httpx.AsyncClient) -> None:
            nonlocal url, params
            while url and len(ads) < options.limit:
                payload = await _get_page(client, url, params)
                batch = payload.get("data") or []
                ads.extend(self.normalize(item) for item in batch if isinstance(item, dict))
                if not batch:
                    break
                # The ``next`` link already carries every query parameter.
                url = (payload.get("paging") or {}).get("next")
                params = None

        if self._http_client is None:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                await _collect(client)
        else:
            await _collect(self._http_client)

        return ads[: options.limit]

    def _graph_error(self, error: dict[str, Any]) -> Exception:
        code = error.get("code")
        message = str(error.get("message") or "Graph API error")
        if code in TOKEN_ERROR_CODES:
            return AdapterUnavailable(self.name, f"token rejected (code {code}): {message}")
        return RuntimeError(f"Graph API error {code}: {message}")

    @staticmethod
    def normalize(ad: dict[str, Any]) -> AdRecord:
        bodies = ad.get("ad_creative_bodies") or []
        titles = ad.get("ad_creative_link_titles") or []
        return {
            **ad,
            "ad_id": ad.get("id"),
            "creative_body": bodies[0] if bodies else None,
            "ad_creative_link_title": titles[0] if titles else None,
        }
