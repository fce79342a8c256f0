from __future__ import annotations

import re
from collections.abc import Sequence
from urllib.parse import parse_qs, urlparse

from adscope.adapters.base import BackendAdapter
from adscope.core.cancellation import CancelToken
from adscope.core.fallback import resolve
from adscope.errors import InvalidIdentifier
from adscope.models.records import AdQueryOptions, PageResult, utc_now

FACEBOOK_HOSTS = frozenset(
    {"facebook.com", "www.facebook.com", "m.facebook.com", "fb.com", "www.fb.com", "m.fb.com"}
)
BARE_IDENTIFIER_RE = re.compile(r"^[\w.\- ]+$")


def _parse(url: str):
    candidate = url.strip()
    if not re.match(r"^https?://", candidate, re.IGNORECASE):
        return None
    parsed = urlparse(candidate)
    if not parsed.hostname:
        return None
    return parsed


def is_valid_page_url(url: str) -> bool:
    """True for a Facebook page URL with a path that isn't the ad library."""
    parsed = _parse(url or "")
    if parsed is None:
        return False
    if parsed.hostname.lower() not in FACEBOOK_HOSTS:
        return False
    path = parsed.path.strip("/")
    return bool(path) and not path.lower().startswith("ads/library")


def derive_query(identifier: str) -> str:
    """Turn a page URL or bare page name into an ad-library search query."""
    raw = (identifier or "").strip()
    if not raw:
        raise InvalidIdentifier(identifier, "empty identifier")

    if "://" in raw:
        parsed = _parse(raw)
        if parsed is None:
            raise InvalidIdentifier(identifier, "unsupported URL")
        segments = [segment for segment in parsed.path.split("/") if segment]
        if not segments:
            raise InvalidIdentifier(identifier, "URL has no page path")
        if segments[0].lower() == "ads" and len(segments) > 1 and segments[1].lower() == "library":
            raise InvalidIdentifier(identifier, "ad library URLs are not page URLs")
        if segments[0].lower() == "profile.php":
            page_ids = parse_qs(parsed.query).get("id") or []
            if not page_ids or not page_ids[0].strip():
                raise InvalidIdentifier(identifier, "profile URL without an id")
            return page_ids[0].strip()
        return segments[0]

    if "/" in raw or not BARE_IDENTIFIER_RE.match(raw):
        raise InvalidIdentifier(identifier, "not a page name")
    return " ".join(raw.split())


async def resolve_page(
    identifier: str,
    chain: Sequence[BackendAdapter],
    options: AdQueryOptions,
    *,
    cancel_token: CancelToken | None = None,
) -> PageResult:
    """Resolve one page through the adapter chain.

    Raises ``InvalidIdentifier`` when no query can be derived. "No ads" is not
    an error here; the result simply carries zero records.
    """
    query = derive_query(identifier)
    result = await resolve(chain, query, options, cancel_token=cancel_token)
    return PageResult(
        page_identifier=query,
        source_url=identifier,
        found_count=len(result.records),
        records=result.records,
        resolved_at=utc_now(),
        source_tag=result.source_tag,
        error=None if result.found else result.failure_summary(),
    )
