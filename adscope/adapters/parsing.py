"""HTML parsing shared by the browser and plain-HTTP ad library scrapers."""

from __future__ import annotations

import re
from typing import Any

from bs4 import BeautifulSoup

LIBRARY_ID_RE = re.compile(r"Library ID:?\s*(\d{6,})")
STARTED_RE = re.compile(r"Started running on\s+([A-Z][a-z]{2,8} \d{1,2}, \d{4})")
EMBEDDED_AD_RE = re.compile(r'"adArchiveID"\s*:\s*"?(\d+)"?')


def parse_ad_library_html(html: str, *, query: str, limit: int) -> list[dict[str, Any]]:
    """Extract ad cards from a rendered or raw ad library page.

    Two strategies are tried: visible text blocks around "Library ID" markers,
    then ad archive ids embedded in inline JSON.
    """
    if not html:
        return []

    soup = BeautifulSoup(html, "html.parser")
    ads = _parse_visible_cards(soup, query=query, limit=limit)
    if ads:
        return ads
    return _parse_embedded_ids(html, query=query, limit=limit)


def _parse_visible_cards(soup: BeautifulSoup, *, query: str, limit: int) -> list[dict[str, Any]]:
    ads: list[dict[str, Any]] = []
    seen: set[str] = set()

    for marker in soup.find_all(string=LIBRARY_ID_RE):
        match = LIBRARY_ID_RE.search(str(marker))
        if not match:
            continue
        library_id = match.group(1)
        if library_id in seen:
            continue
        seen.add(library_id)

        card = marker.parent
        # Walk up until the container holds more than the id line itself.
        for _ in range(6):
            if card is None or card.parent is None:
                break
            if len(card.get_text(" ", strip=True)) > 120:
                break
            card = card.parent

        text = card.get_text(" ", strip=True) if card is not None else str(marker)
        started = STARTED_RE.search(text)
        ads.append(
            {
                "ad_id": library_id,
                "ad_snapshot_url": f"https://www.facebook.com/ads/library/?id={library_id}",
                "creative_body": text[:1000],
                "ad_delivery_start_time": started.group(1) if started else None,
                "search_query": query,
            }
        )
        if len(ads) >= limit:
            break
    return ads


def _parse_embedded_ids(html: str, *, query: str, limit: int) -> list[dict[str, Any]]:
    ads: list[dict[str, Any]] = []
    for library_id in dict.fromkeys(EMBEDDED_AD_RE.findall(html)):
        ads.append(
            {
                "ad_id": library_id,
                "ad_snapshot_url": f"https://www.facebook.com/ads/library/?id={library_id}",
                "search_query": query,
            }
        )
        if len(ads) >= limit:
            break
    return ads


def is_login_wall(html: str) -> bool:
    lowered = html.lower()
    return "login_form" in lowered or "you must log in" in lowered
