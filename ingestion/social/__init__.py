"""Platform scrapers that normalize scraped payloads into RawSignals."""

from ingestion.social.reddit_scraper import RedditScraper
from ingestion.social.tiktok_scraper import TikTokScraper

__all__ = [
    "RedditScraper",
    "TikTokScraper",
]
