from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field


# --- Requests ---


class ScrapeRequest(BaseModel):
    query: str = Field(min_length=1)
    pages: list[str] = Field(default_factory=list)
    country: str | None = Field(default=None, validation_alias=AliasChoices("country", "region"))
    limit: int | None = Field(default=None, ge=1, le=1000)


class CompetitorAnalysisRequest(BaseModel):
    your_page_url: str = Field(validation_alias=AliasChoices("your_page_url", "yourPageUrl"))
    competitor_1_url: str = Field(validation_alias=AliasChoices("competitor_1_url", "competitor1Url"))
    competitor_2_url: str = Field(validation_alias=AliasChoices("competitor_2_url", "competitor2Url"))

    @property
    def urls(self) -> list[str]:
        return [self.your_page_url, self.competitor_1_url, self.competitor_2_url]


# --- Responses ---


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict | None = None


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: ErrorBody
