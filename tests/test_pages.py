from __future__ import annotations

import pytest

from adscope.core.pages import derive_query, is_valid_page_url, resolve_page
from adscope.errors import InvalidIdentifier
from conftest import FakeAdapter


@pytest.mark.parametrize(
    "url",
    [
        "https://www.facebook.com/nike",
        "https://facebook.com/nike/",
        "http://fb.com/adidas",
        "https://m.facebook.com/puma?ref=page",
    ],
)
def test_is_valid_page_url_accepts_page_urls(url):
    assert is_valid_page_url(url)


@pytest.mark.parametrize(
    "url",
    [
        "https://www.facebook.com/",
        "https://www.facebook.com/ads/library/?q=nike",
        "https://twitter.com/nike",
        "nike",
        "",
    ],
)
def test_is_valid_page_url_rejects_other_urls(url):
    assert not is_valid_page_url(url)


def test_derive_query_uses_first_path_segment():
    assert derive_query("https://www.facebook.com/nike/posts/123?ref=x#top") == "nike"


def test_derive_query_reads_profile_id():
    assert derive_query("https://www.facebook.com/profile.php?id=100064") == "100064"


def test_derive_query_accepts_bare_page_name():
    assert derive_query("  Go Pure   Skincare ") == "Go Pure Skincare"
    assert derive_query("nike.running") == "nike.running"


@pytest.mark.parametrize(
    "identifier",
    [
        "",
        "   ",
        "https://www.facebook.com/",
        "https://www.facebook.com/ads/library/?q=nike",
        "https://www.facebook.com/profile.php",
        "ftp://facebook.com/nike",
        "nike/shoes",
        "<script>",
    ],
)
def test_derive_query_rejects_unusable_identifiers(identifier):
    with pytest.raises(InvalidIdentifier) as exc_info:
        derive_query(identifier)
    assert str(exc_info.value).startswith("InvalidIdentifier")


@pytest.mark.asyncio
async def test_resolve_page_builds_page_result(options):
    adapter = FakeAdapter("apify", records=[{"ad_id": "1"}, {"ad_id": "2"}])

    result = await resolve_page("https://www.facebook.com/nike", [adapter], options)

    assert adapter.calls == ["nike"]
    assert result.page_identifier == "nike"
    assert result.source_url == "https://www.facebook.com/nike"
    assert result.found_count == 2
    assert result.source_tag == "apify"
    assert result.error is None


@pytest.mark.asyncio
async def test_resolve_page_without_data_is_not_an_error(options):
    chain = [FakeAdapter("apify", error=RuntimeError("down")), FakeAdapter("http", records=[])]

    result = await resolve_page("nike", chain, options)

    assert result.found_count == 0
    assert result.records == []
    assert result.source_tag == "none"
    assert result.error == "All scraping methods failed (apify, http)"


@pytest.mark.asyncio
async def test_resolve_page_raises_for_invalid_identifier(options):
    adapter = FakeAdapter("apify", records=[{"ad_id": "1"}])

    with pytest.raises(InvalidIdentifier):
        await resolve_page("https://www.facebook.com/", [adapter], options)
    assert adapter.calls == []
