"""HTTP client for the third-party scraping API.

Owns authentication, timeouts and the retry policy:

- 429 and 5xx responses and connection errors are retried with exponential
  backoff plus jitter, up to max_retries, then ScrapeRetryExhaustedError.
- Other 4xx responses raise ScrapeClientError without retrying.
- Timeouts raise ScrapeTimeoutError without retrying; repeated timeouts
  usually mean the upstream is stuck.
"""

import json
import logging
import random
import time
from typing import Callable

import httpx

from data_models.scrape import ScrapeParams, ScrapeResult
from data_models.settings import ScrapeClientConfig
from ingestion.errors import (
    PayloadShapeError,
    ScrapeClientError,
    ScraperNotConfiguredError,
    ScrapeRetryExhaustedError,
    ScrapeTimeoutError,
)

logger = logging.getLogger(__name__)


class ScrapeClient:
    """Authenticated client for the scraping API's synchronous /scrape endpoint."""

    def __init__(
        self,
        config: ScrapeClientConfig,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the client.

        Args:
            config: Base URL, credentials, timeout and retry policy
            transport: Optional httpx transport (tests pass a MockTransport)
            sleep: Sleep function used between retries
        """
        self.config = config
        self.client = self._create_client(transport)
        self._sleep = sleep
        self._request_count = 0

    def _create_client(self, transport: httpx.BaseTransport | None) -> httpx.Client:
        """Create HTTP client with configured settings."""
        auth = None
        if self.is_configured():
            auth = httpx.BasicAuth(self.config.username, self.config.password)

        return httpx.Client(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            headers={
                "User-Agent": self.config.user_agent,
                "Content-Type": "application/json",
            },
            auth=auth,
            transport=transport,
        )

    def is_configured(self) -> bool:
        """Whether credentials are present."""
        return self.config.is_configured

    @property
    def request_count(self) -> int:
        return self._request_count

    def _backoff_delay(self, attempt: int) -> float:
        """Delay before retry number attempt + 1."""
        jitter = random.uniform(0, self.config.retry_jitter_seconds)
        return self.config.retry_delay_seconds * (2 ** attempt) + jitter

    def scrape(self, params: ScrapeParams) -> list[ScrapeResult]:
        """Run a scrape request.

        Args:
            params: Target and url/query for the scrape

        Returns:
            Entries of the response's results array

        Raises:
            ScraperNotConfiguredError: Credentials missing
            ScrapeTimeoutError: Request timed out
            ScrapeClientError: Non-retryable 4xx response
            ScrapeRetryExhaustedError: Retryable failures exhausted the budget
            PayloadShapeError: 2xx response that is not a JSON object
        """
        if not self.is_configured():
            raise ScraperNotConfiguredError(
                "Scrape API not configured. Set SCRAPER_API_USERNAME and SCRAPER_API_PASSWORD."
            )

        payload = params.to_payload()
        max_attempts = self.config.max_retries + 1
        last_error = "unknown error"
        last_status: int | None = None

        for attempt in range(max_attempts):
            try:
                response = self.client.post("/scrape", json=payload)
            except httpx.TimeoutException as e:
                raise ScrapeTimeoutError(
                    f"Scrape API timeout after {self.config.timeout_seconds}s ({params.target})"
                ) from e
            except httpx.RequestError as e:
                last_error = f"{type(e).__name__}: {e}"
                last_status = None
            else:
                self._request_count += 1
                if response.is_success:
                    return self._parse_response(response)

                last_status = response.status_code
                last_error = f"HTTP {last_status}: {response.text[:200]}"
                if 400 <= last_status < 500 and last_status != 429:
                    raise ScrapeClientError(last_status, response.text[:500])

            if attempt == max_attempts - 1:
                break

            delay = self._backoff_delay(attempt)
            logger.warning(
                f"Scrape attempt {attempt + 1}/{max_attempts} failed ({last_error}), "
                f"retrying in {delay:.1f}s"
            )
            self._sleep(delay)

        logger.error(f"Scrape of {params.target} failed after {max_attempts} attempts")
        raise ScrapeRetryExhaustedError(max_attempts, last_error, last_status)

    def _parse_response(self, response: httpx.Response) -> list[ScrapeResult]:
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise PayloadShapeError(f"Scrape API returned non-JSON body: {e}") from e

        if not isinstance(data, dict):
            raise PayloadShapeError(f"Scrape API returned {type(data).__name__}, expected object")

        results = data.get("results") or []
        return [ScrapeResult.model_validate(r) for r in results if isinstance(r, dict)]

    def scrape_reddit_subreddit(
        self,
        subreddit: str,
        sort: str = "hot",
        limit: int = 50,
        time_filter: str = "day",
    ) -> list[ScrapeResult]:
        """Scrape a subreddit listing."""
        time_param = f"&t={time_filter}" if sort == "top" else ""
        url = f"https://www.reddit.com/r/{subreddit}/{sort}.json?limit={limit}{time_param}"
        logger.info(f"Scraping Reddit: r/{subreddit} ({sort}, max {limit} posts)")
        return self.scrape(ScrapeParams(target="reddit_subreddit", url=url, parse=True))

    def scrape_reddit_post(self, post_url: str) -> list[ScrapeResult]:
        """Scrape a single Reddit post."""
        logger.info(f"Scraping Reddit post: {post_url}")
        return self.scrape(ScrapeParams(target="reddit_post", url=post_url, parse=True))

    def scrape_tiktok_video(self, video_url: str) -> list[ScrapeResult]:
        """Scrape a single TikTok video."""
        logger.info(f"Scraping TikTok video: {video_url}")
        return self.scrape(ScrapeParams(target="tiktok_post", url=video_url, parse=True))

    def scrape_tiktok_shop_search(self, query: str) -> list[ScrapeResult]:
        """Search TikTok Shop."""
        logger.info(f"Searching TikTok Shop: {query!r}")
        return self.scrape(ScrapeParams(target="tiktok_shop_search", query=query, parse=True))

    def scrape_universal(
        self,
        url: str,
        headless: bool = False,
        markdown: bool | None = None,
    ) -> list[ScrapeResult]:
        """Scrape any URL with the universal target."""
        logger.info(f"Scraping URL: {url}")
        return self.scrape(
            ScrapeParams(
                target="universal",
                url=url,
                headless="html" if headless else None,
                markdown=markdown,
            )
        )

    def check_status(self) -> dict:
        """Probe the API with a trivial scrape.

        Returns:
            Dict with configured, working and optional error
        """
        if not self.is_configured():
            return {
                "configured": False,
                "working": False,
                "error": "SCRAPER_API_USERNAME and SCRAPER_API_PASSWORD not set",
            }

        try:
            self.scrape_universal("https://example.com")
            return {"configured": True, "working": True}
        except Exception as e:
            logger.error(f"Scrape API health check failed: {e}")
            return {"configured": True, "working": False, "error": str(e)}

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
