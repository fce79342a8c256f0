"""Competitive-analysis prompt construction and response parsing."""

from __future__ import annotations

import json
import re
from typing import Any

from loguru import logger

from adscope.models.records import SLOT_NAMES, PageResult

JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
BULLET_RE = re.compile(r"^(?:[-*•]|\d+\.)\s+")
MAX_TEXT_ITEMS = 5

SLOT_LABELS = {
    "your_page": "Your Brand",
    "competitor_1": "Competitor 1",
    "competitor_2": "Competitor 2",
}


def _ad_examples(result: PageResult | None) -> str:
    if result is None or not result.records:
        return "None"
    examples = [
        str(ad.get("ad_snapshot_url") or ad.get("title") or ad.get("creative_body") or "No title")
        for ad in result.records[:3]
    ]
    return ", ".join(examples)


def build_analysis_prompt(pages: dict[str, PageResult | None]) -> str:
    sections = []
    for slot in SLOT_NAMES:
        result = pages.get(slot)
        name = result.page_identifier if result is not None else "Unknown"
        found = result.found_count if result is not None else 0
        sections.append(
            f"{SLOT_LABELS[slot]}: {name}\n"
            f"- Total ads found: {found}\n"
            f"- Ad examples: {_ad_examples(result)}"
        )

    return (
        "Analyze these Facebook advertising strategies and provide competitive insights:\n\n"
        + "\n\n".join(sections)
        + """

Please provide:
1. A performance summary comparing all three brands
2. Key insights about competitor strategies
3. Specific recommendations for improving your brand's advertising

Format your response as JSON with this structure:
{
  "summary": {
    "your_page": {"page_name": "", "total_ads": 0, "performance_score": 0},
    "competitors": [{"page_name": "", "total_ads": 0, "performance_score": 0}]
  },
  "insights": ["insight 1", "insight 2"],
  "recommendations": ["recommendation 1", "recommendation 2"]
}"""
    )


def parse_analysis(text: str | None) -> dict[str, Any] | None:
    """Extract the analysis object from a model response.

    Falls back to bullet-point extraction when the response carries no
    parseable JSON object. Returns None for an empty response.
    """
    if not text or not text.strip():
        return None

    match = JSON_OBJECT_RE.search(text)
    if match:
        try:
            parsed = json.loads(match.group(0))
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            logger.warning("Could not parse JSON analysis, extracting insights from text")
    return parse_text_analysis(text)


def parse_text_analysis(text: str) -> dict[str, Any]:
    insights: list[str] = []
    recommendations: list[str] = []
    section: str | None = None

    for line in text.splitlines():
        clean = line.strip()
        if not clean:
            continue
        lowered = clean.lower()
        if not BULLET_RE.match(clean):
            if "insight" in lowered or "finding" in lowered:
                section = "insights"
            elif "recommend" in lowered or "suggest" in lowered:
                section = "recommendations"
            continue

        content = BULLET_RE.sub("", clean).strip()
        if len(content) <= 10:
            continue
        if section == "recommendations":
            recommendations.append(content)
        else:
            insights.append(content)

    if not insights and not recommendations:
        insights.append("AI analysis completed - competitive landscape analyzed")
        recommendations.extend(
            [
                "Monitor competitor strategies regularly",
                "Focus on differentiating your advertising approach",
            ]
        )

    return {
        "summary": {},
        "insights": insights[:MAX_TEXT_ITEMS],
        "recommendations": recommendations[:MAX_TEXT_ITEMS],
    }
