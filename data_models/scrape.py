"""Request/response schemas for the third-party scraping API."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class ScrapeParams(BaseModel):
    """Body of a scrape request. Exactly one of url or query is expected."""

    target: str = Field(..., description="Scraper target, e.g. 'reddit_subreddit'")
    url: str | None = None
    query: str | None = None
    parse: bool | None = None
    geo: str | None = None
    headless: Literal["html", "png"] | None = None
    markdown: bool | None = None
    domain: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """JSON body with unset fields omitted."""
        return self.model_dump(exclude_none=True)


class ScrapeResult(BaseModel):
    """One entry of the scraping API's `results` array."""

    content: Any = None
    status_code: int | None = None
    url: str | None = None
    task_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    parse_status: str | None = None
