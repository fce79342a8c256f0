from __future__ import annotations

import re
from typing import Protocol
from urllib.parse import urlencode

from adscope.core.cancellation import CancelToken
from adscope.models.records import AdQueryOptions, AdRecord

AD_LIBRARY_URL = "https://www.facebook.com/ads/library/"

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}


class BackendAdapter(Protocol):
    """One data source able to return ad records for a search query.

    Implementations return ``[]`` for "no results" and raise only for genuine
    faults (missing credentials, network errors, blocked responses).
    """

    name: str

    async def fetch_ads(
        self,
        query: str,
        options: AdQueryOptions,
        *,
        cancel_token: CancelToken | None = None,
    ) -> list[AdRecord]: ...


def ad_library_search_url(query: str, country: str, base_url: str = AD_LIBRARY_URL) -> str:
    params = {
        "active_status": "active",
        "ad_type": "all",
        "country": country,
        "is_targeted_country": "false",
        "media_type": "all",
        "q": query,
        "search_type": "keyword_unordered",
    }
    return f"{base_url.rstrip('/')}/?{urlencode(params)}"


def alternative_queries(query: str) -> list[str]:
    """Query variants worth retrying against keyword search.

    ``GoPureSkincare`` -> ``gopureskincare``, ``Go Pure Skincare``.
    """
    cleaned = " ".join(query.split()).strip()
    if not cleaned:
        return []

    variants = [cleaned, cleaned.lower()]
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", cleaned)
    variants.append(spaced)
    variants.append(re.sub(r"[._-]+", " ", spaced).strip())

    deduped: list[str] = []
    seen: set[str] = set()
    for variant in variants:
        if variant and variant not in seen:
            seen.add(variant)
            deduped.append(variant)
    return deduped
