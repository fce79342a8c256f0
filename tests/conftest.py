from __future__ import annotations

import asyncio
import os

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("STORE_BACKEND", "memory")

import pytest

from adscope.models.records import AdQueryOptions


class FakeAdapter:
    """Adapter double returning canned records, or raising a canned error."""

    def __init__(self, name: str, records=None, error: Exception | None = None, delay: float = 0.0):
        self.name = name
        self.records = list(records or [])
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def fetch_ads(self, query, options, *, cancel_token=None):
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [dict(record, query=query) for record in self.records]


class FakeProvider:
    def __init__(self, name: str, result=None, error: Exception | None = None):
        self.name = name
        self.result = result
        self.error = error
        self.prompts: list[str] = []

    async def analyze(self, prompt, pages):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def options():
    return AdQueryOptions(country="US", limit=10)
