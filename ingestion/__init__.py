"""Scraping layer: API client, payload adapters, platform scrapers and community discovery."""

from ingestion.errors import (
    PayloadShapeError,
    ScrapeClientError,
    ScrapeError,
    ScraperNotConfiguredError,
    ScrapeRetryExhaustedError,
    ScrapeTimeoutError,
)
from ingestion.scrape_client import ScrapeClient

__all__ = [
    "ScrapeClient",
    "ScrapeError",
    "ScraperNotConfiguredError",
    "ScrapeTimeoutError",
    "ScrapeClientError",
    "ScrapeRetryExhaustedError",
    "PayloadShapeError",
]
