from __future__ import annotations

from collections.abc import Callable, Iterable

from adscope.adapters.apify import ApifyAdapter
from adscope.adapters.base import BackendAdapter
from adscope.adapters.facebook_api import FacebookAdLibraryAdapter
from adscope.adapters.http_scraper import HttpAdLibraryAdapter
from adscope.adapters.playwright_scraper import PlaywrightAdLibraryAdapter
from adscope.adapters.sample import SampleAdapter
from adscope.config import settings

AdapterFactory = Callable[[], BackendAdapter]

ADAPTERS: dict[str, AdapterFactory] = {
    "apify": ApifyAdapter,
    "facebook_api": FacebookAdLibraryAdapter,
    "playwright": PlaywrightAdLibraryAdapter,
    "http": HttpAdLibraryAdapter,
    "sample": SampleAdapter,
}


def register_adapter(name: str, factory: AdapterFactory) -> None:
    ADAPTERS[name.strip().lower()] = factory


def build_adapter(name: str) -> BackendAdapter:
    key = name.strip().lower()
    factory = ADAPTERS.get(key)
    if factory is None:
        raise ValueError(f"Unsupported adapter: {name}")
    return factory()


def build_chain(names: Iterable[str] | None = None) -> list[BackendAdapter]:
    """Instantiate adapters in configured order (``ADAPTER_CHAIN``)."""
    selected = list(names) if names is not None else settings.adapter_chain_list
    return [build_adapter(name) for name in selected]
