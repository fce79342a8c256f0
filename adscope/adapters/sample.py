from __future__ import annotations

import hashlib

from adscope.core.cancellation import CancelToken, check
from adscope.models.records import AdQueryOptions, AdRecord

SAMPLE_HEADLINES = (
    "Limited time: 20% off your first order",
    "See why thousands switched this year",
    "New collection just dropped",
    "Free shipping on every order",
    "Try it risk-free for 30 days",
)


class SampleAdapter:
    """Deterministic offline adapter for local runs and demos.

    The record count is derived from a hash of the query, so the same page
    always yields the same ads.
    """

    name = "sample"

    def __init__(self, *, max_records: int = 12):
        self.max_records = max_records

    async def fetch_ads(
        self,
        query: str,
        options: AdQueryOptions,
        *,
        cancel_token: CancelToken | None = None,
    ) -> list[AdRecord]:
        check(cancel_token)
        digest = hashlib.sha256(query.lower().encode("utf-8")).hexdigest()
        count = min(options.limit, 3 + int(digest[:4], 16) % max(1, self.max_records - 2))
        return [
            {
                "ad_id": f"sample-{digest[:8]}-{index}",
                "page_name": query,
                "creative_body": SAMPLE_HEADLINES[(int(digest[index % 8], 16) + index) % len(SAMPLE_HEADLINES)],
                "ad_delivery_start_time": f"2024-01-{(index % 28) + 1:02d}",
                "country": options.country,
            }
            for index in range(count)
        ]
