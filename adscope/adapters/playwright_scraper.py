from __future__ import annotations

from adscope.adapters.base import BROWSER_HEADERS, ad_library_search_url
from adscope.adapters.parsing import is_login_wall, parse_ad_library_html
from adscope.config import settings
from adscope.core.cancellation import CancelToken, check
from adscope.errors import AdapterUnavailable
from adscope.models.records import AdQueryOptions, AdRecord
from adscope.tools.rate_limiter import AsyncRateLimiter

MAX_SCROLLS = 8


class PlaywrightAdLibraryAdapter:
    """Headless-browser scraper for the public ad library search page."""

    name = "playwright"

    def __init__(
        self,
        *,
        headless: bool | None = None,
        timeout_ms: int | None = None,
        rate_limiter: AsyncRateLimiter | None = None,
    ):
        self.headless = settings.playwright_headless if headless is None else headless
        self.timeout_ms = timeout_ms or settings.playwright_timeout_ms
        self.rate_limiter = rate_limiter or AsyncRateLimiter(
            min_interval_seconds=settings.playwright_min_interval_seconds
        )

    async def fetch_ads(
        self,
        query: str,
        options: AdQueryOptions,
        *,
        cancel_token: CancelToken | None = None,
    ) -> list[AdRecord]:
        check(cancel_token)
        await self.rate_limiter.wait(self.name)
        check(cancel_token)
        html = await self.render(ad_library_search_url(query, options.country), options.limit, cancel_token)
        if is_login_wall(html):
            raise AdapterUnavailable(self.name, "ad library served a login wall")
        return parse_ad_library_html(html, query=query, limit=options.limit)

    async def render(self, url: str, limit: int, cancel_token: CancelToken | None = None) -> str:
        try:
            from playwright.async_api import async_playwright
        except Exception as exc:  # pragma: no cover - depends on optional package
            raise AdapterUnavailable(self.name, "Playwright is not installed") from exc

        async with async_playwright() as playwright:  # pragma: no cover - integration behavior
            browser = await playwright.chromium.launch(headless=self.headless)
            try:
                context = await browser.new_context(user_agent=BROWSER_HEADERS["User-Agent"])
                page = await context.new_page()
                await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)

                # Results load lazily; scroll until enough cards are present.
                for _ in range(MAX_SCROLLS):
                    check(cancel_token)
                    count = await page.locator("text=/Library ID/").count()
                    if count >= limit:
                        break
                    await page.mouse.wheel(0, 4000)
                    await page.wait_for_timeout(1500)

                html = await page.content()
                await context.close()
                return html
            finally:
                await browser.close()
