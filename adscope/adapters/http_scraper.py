from __future__ import annotations

import httpx

from adscope.adapters.base import BROWSER_HEADERS, ad_library_search_url, alternative_queries
from adscope.adapters.parsing import is_login_wall, parse_ad_library_html
from adscope.config import settings
from adscope.core.cancellation import CancelToken, check
from adscope.errors import AdapterUnavailable
from adscope.models.records import AdQueryOptions, AdRecord
from adscope.tools.rate_limiter import AsyncRateLimiter

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class HttpAdLibraryAdapter:
    """Plain HTTP scraper: fetches the ad library page without a browser.

    Retries the search with spelling variants of the page name
    (``GoPureSkincare`` -> ``gopureskincare``, ``Go Pure Skincare``).
    """

    name = "http"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        rate_limiter: AsyncRateLimiter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url or settings.http_scraper_base_url
        self.timeout_seconds = timeout_seconds or settings.http_scraper_timeout_seconds
        self.rate_limiter = rate_limiter or AsyncRateLimiter(
            min_interval_seconds=settings.http_scraper_min_interval_seconds
        )
        self._http_client = http_client

    async def fetch_ads(
        self,
        query: str,
        options: AdQueryOptions,
        *,
        cancel_token: CancelToken | None = None,
    ) -> list[AdRecord]:
        async def _search(client: httpx.AsyncClient) -> list[AdRecord]:
            for variant in alternative_queries(query):
                check(cancel_token)
                await self.rate_limiter.wait(self.name)
                response = await client.get(
                    ad_library_search_url(variant, options.country, self.base_url),
                    headers=BROWSER_HEADERS,
                )
                if response.status_code in RETRYABLE_STATUS_CODES:
                    raise AdapterUnavailable(self.name, f"HTTP {response.status_code} from ad library")
                response.raise_for_status()
                html = response.text
                if is_login_wall(html):
                    raise AdapterUnavailable(self.name, "ad library served a login wall")
                ads = parse_ad_library_html(html, query=variant, limit=options.limit)
                if ads:
                    return ads
            return []

        if self._http_client is None:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True) as client:
                return await _search(client)
        return await _search(self._http_client)
