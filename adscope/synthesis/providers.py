"""Synthesis providers.

Every provider exposes ``name`` and ``analyze(prompt, pages)``. A provider that
cannot run at all raises ``ProviderUnavailable``; one that ran but produced
nothing usable returns ``None``.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from adscope.config import settings
from adscope.errors import ProviderUnavailable
from adscope.models.records import PageResult
from adscope.synthesis.prompt import SLOT_LABELS, parse_analysis

SYSTEM_PROMPT = (
    "You are a competitive advertising analyst. "
    "Answer with a single JSON object and nothing else."
)


class SynthesisProvider(Protocol):
    name: str

    async def analyze(self, prompt: str, pages: dict[str, PageResult]) -> dict[str, Any] | None: ...


class OllamaProvider:
    """Local open-source model served by Ollama."""

    name = "ollama"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        model: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or settings.ollama_url).rstrip("/")
        self.model = model or settings.ollama_model
        self._http_client = http_client

    async def analyze(self, prompt: str, pages: dict[str, PageResult]) -> dict[str, Any] | None:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": settings.synthesis_temperature,
                "num_predict": settings.synthesis_max_tokens,
            },
        }

        async def _do_request(client: httpx.AsyncClient) -> httpx.Response:
            return await client.post(f"{self.base_url}/api/generate", json=payload)

        try:
            if self._http_client is None:
                async with httpx.AsyncClient(timeout=settings.synthesis_timeout_seconds) as client:
                    response = await _do_request(client)
            else:
                response = await _do_request(self._http_client)
        except httpx.ConnectError as exc:
            raise ProviderUnavailable(self.name, f"cannot reach {self.base_url}") from exc

        if response.status_code >= 400:
            raise ProviderUnavailable(self.name, f"HTTP {response.status_code}")
        return parse_analysis(response.json().get("response"))


class HuggingFaceProvider:
    name = "huggingface"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = (settings.huggingface_api_key if api_key is None else api_key).strip()
        self.model = model or settings.huggingface_model
        self.base_url = (base_url or settings.huggingface_base_url).rstrip("/")
        self._http_client = http_client

    async def analyze(self, prompt: str, pages: dict[str, PageResult]) -> dict[str, Any] | None:
        if not self.api_key:
            raise ProviderUnavailable(self.name, "HUGGINGFACE_API_KEY not configured")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": settings.synthesis_max_tokens,
                "temperature": settings.synthesis_temperature,
                "return_full_text": False,
            },
        }

        async def _do_request(client: httpx.AsyncClient) -> httpx.Response:
            return await client.post(f"{self.base_url}/{self.model}", json=payload, headers=headers)

        if self._http_client is None:
            async with httpx.AsyncClient(timeout=settings.synthesis_timeout_seconds) as client:
                response = await _do_request(client)
        else:
            response = await _do_request(self._http_client)

        if response.status_code in (401, 403):
            raise ProviderUnavailable(self.name, f"rejected credentials (HTTP {response.status_code})")
        response.raise_for_status()

        data = response.json()
        if isinstance(data, list):
            data = data[0] if data else {}
        text = data.get("generated_text", "") if isinstance(data, dict) else ""
        return parse_analysis(text)


class AnthropicProvider:
    name = "anthropic"

    def __init__(self, *, api_key: str | None = None, model: str | None = None, client: Any | None = None):
        self.api_key = (settings.anthropic_api_key if api_key is None else api_key).strip()
        self.model = model or settings.anthropic_model
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            import anthropic

            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def analyze(self, prompt: str, pages: dict[str, PageResult]) -> dict[str, Any] | None:
        if not self.api_key and self._client is None:
            raise ProviderUnavailable(self.name, "ANTHROPIC_API_KEY not configured")

        response = await self._get_client().messages.create(
            model=self.model,
            max_tokens=settings.synthesis_max_tokens,
            temperature=settings.synthesis_temperature,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(
            getattr(block, "text", "") for block in response.content if getattr(block, "type", None) == "text"
        )
        return parse_analysis(text)


class OpenAIProvider:
    """OpenAI chat completions; also serves any OpenAI-compatible gateway."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        client: Any | None = None,
    ):
        self.api_key = (settings.openai_api_key if api_key is None else api_key).strip()
        self.model = model or settings.openai_model
        self.base_url = base_url
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            kwargs: dict[str, Any] = {"api_key": self.api_key}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def analyze(self, prompt: str, pages: dict[str, PageResult]) -> dict[str, Any] | None:
        if not self.api_key and self._client is None:
            raise ProviderUnavailable(self.name, "API key not configured")

        response = await self._get_client().chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=settings.synthesis_max_tokens,
            temperature=settings.synthesis_temperature,
        )
        if not response.choices:
            return None
        return parse_analysis(response.choices[0].message.content)


class OpenRouterProvider(OpenAIProvider):
    name = "openrouter"

    def __init__(self, *, api_key: str | None = None, model: str | None = None, client: Any | None = None):
        super().__init__(
            api_key=settings.openrouter_api_key if api_key is None else api_key,
            model=model or settings.openrouter_model,
            base_url=settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1",
            client=client,
        )


class HeuristicProvider:
    """Offline analysis scored on relative ad volume. Never unavailable."""

    name = "heuristic"

    async def analyze(self, prompt: str, pages: dict[str, PageResult]) -> dict[str, Any] | None:
        return volume_analysis(pages)


def volume_summary(pages: dict[str, PageResult | None]) -> dict[str, Any]:
    counts = {slot: (pages[slot].found_count if pages.get(slot) else 0) for slot in SLOT_LABELS}
    top = max(counts.values())

    def _entry(slot: str) -> dict[str, Any]:
        result = pages.get(slot)
        return {
            "page_name": result.page_identifier if result is not None else SLOT_LABELS[slot],
            "total_ads": counts[slot],
            "performance_score": round(counts[slot] / top * 100) if top > 0 else 50,
        }

    return {
        "your_page": _entry("your_page"),
        "competitors": [_entry("competitor_1"), _entry("competitor_2")],
    }


def volume_analysis(pages: dict[str, PageResult | None]) -> dict[str, Any]:
    summary = volume_summary(pages)
    yours = summary["your_page"]["total_ads"]
    comp1, comp2 = (entry["total_ads"] for entry in summary["competitors"])
    your_score = summary["your_page"]["performance_score"]
    comp1_score, comp2_score = (entry["performance_score"] for entry in summary["competitors"])

    insights = []
    if comp1 > yours or comp2 > yours:
        insights.append("Your competitors are running more active ad campaigns than you")
    if comp1 > comp2 * 1.5:
        insights.append("Competitor 1 has a significantly more aggressive advertising strategy")
    elif comp2 > comp1 * 1.5:
        insights.append("Competitor 2 has a significantly more aggressive advertising strategy")
    if yours == 0:
        insights.append("No ads found for your brand - consider increasing advertising presence")
    elif yours < max(comp1, comp2) * 0.5:
        insights.append("Your ad volume is significantly lower than top competitors")
    insights.append("Regular competitive monitoring will help you stay ahead of market trends")

    recommendations = []
    if your_score < 70:
        recommendations.append("Increase your advertising budget to match competitor activity levels")
    if comp1_score > your_score:
        recommendations.append("Study Competitor 1's ad strategies and test similar approaches")
    if comp2_score > your_score:
        recommendations.append("Analyze Competitor 2's messaging and creative formats for inspiration")
    recommendations.append("Test different ad formats (video, carousel, single image) to diversify your approach")
    recommendations.append("Monitor competitor ad frequency and adjust your campaign scheduling accordingly")

    return {"summary": summary, "insights": insights, "recommendations": recommendations}


PROVIDERS = {
    "ollama": OllamaProvider,
    "huggingface": HuggingFaceProvider,
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "openrouter": OpenRouterProvider,
    "heuristic": HeuristicProvider,
}


def build_providers(names: list[str] | None = None) -> list[SynthesisProvider]:
    selected = names if names is not None else settings.synthesis_chain_list
    providers = []
    for name in selected:
        factory = PROVIDERS.get(name.strip().lower())
        if factory is None:
            raise ValueError(f"Unsupported synthesis provider: {name}")
        providers.append(factory())
    return providers
