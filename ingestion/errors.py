"""Errors raised while talking to the scraping API or parsing its payloads."""


class ScrapeError(Exception):
    """Base class for scrape failures."""


class ScraperNotConfiguredError(ScrapeError):
    """Credentials are missing; no request was attempted."""


class ScrapeTimeoutError(ScrapeError):
    """The request exceeded its timeout. Not retried."""


class ScrapeClientError(ScrapeError):
    """Non-retryable 4xx response (anything but 429)."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Scrape API error {status_code}: {message}")
        self.status_code = status_code


class ScrapeRetryExhaustedError(ScrapeError):
    """Retryable failures (5xx, 429, connection errors) outlasted the retry budget."""

    def __init__(self, attempts: int, last_error: str, status_code: int | None = None):
        super().__init__(f"Scrape API request failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
        self.status_code = status_code


class PayloadShapeError(ScrapeError):
    """Scraped content did not match any known shape."""
