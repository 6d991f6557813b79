"""TikTok scraper using the scraping API's tiktok_post and tiktok_shop_search targets.

Hashtag feeds cannot be scraped directly, so a TikTok "community" is
scraped through a TikTok Shop search for its name.
"""

import logging
from typing import Any

from pydantic import ValidationError

from data_models.settings import Settings
from data_models.signals import CommunityScrape, Platform, RawSignal
from ingestion.errors import PayloadShapeError
from ingestion.payloads import as_int, decode_content, epoch_to_utc, first_content
from ingestion.scrape_client import ScrapeClient

logger = logging.getLogger(__name__)


def _first(*values: Any) -> Any:
    """First truthy value, or None."""
    for value in values:
        if value:
            return value
    return None


def extract_video(content: Any) -> dict | None:
    """Find the video object in tiktok_post content.

    Accepts a direct video object, a nested "video" object, or the
    itemInfo.itemStruct format.
    """
    if not isinstance(content, dict):
        return None
    if content.get("id") and "description" in content:
        return content
    if isinstance(content.get("video"), dict):
        return content["video"]
    item_info = content.get("itemInfo")
    if isinstance(item_info, dict) and isinstance(item_info.get("itemStruct"), dict):
        return item_info["itemStruct"]
    return None


def _hashtags(video: dict) -> list[str]:
    tags = []
    for challenge in video.get("challenges") or []:
        if isinstance(challenge, dict) and isinstance(challenge.get("title"), str):
            tags.append(challenge["title"])
    for tag in video.get("hashtags") or []:
        if isinstance(tag, str):
            tags.append(tag)
        elif isinstance(tag, dict):
            name = tag.get("name") or tag.get("title")
            if isinstance(name, str):
                tags.append(name)
    return tags


def video_to_signal(video: dict) -> RawSignal | None:
    """Convert a TikTok video dict to a RawSignal.

    The primary hashtag is the community; the description doubles as the
    title (first 200 chars). Likes map to upvotes, plays to views and
    collects to saves.
    """
    video_id = str(_first(video.get("id"), video.get("videoId")) or "")
    if not video_id:
        return None

    author = _first(video.get("author"), video.get("authorMeta")) or {}
    if not isinstance(author, dict):
        author = {"uniqueId": str(author)}
    author_id = str(_first(author.get("uniqueId"), author.get("id")) or "unknown")
    follower_count = author.get("followerCount")

    stats = _first(video.get("stats"), video.get("statistics")) or {}
    if not isinstance(stats, dict):
        stats = {}
    collect_count = stats.get("collectCount")

    hashtags = _hashtags(video)
    description = str(_first(video.get("desc"), video.get("description"), video.get("title")) or "")
    url = video.get("url")
    if not isinstance(url, str):
        url = f"https://www.tiktok.com/@{author_id}/video/{video_id}"

    return RawSignal(
        platform=Platform.TIKTOK,
        external_id=video_id,
        url=url,
        community=(hashtags[0] if hashtags else "tiktok").lower(),
        community_size=follower_count if isinstance(follower_count, int) else None,
        title=description[:200],
        content=description,
        author=author_id,
        hashtags=hashtags,
        posted_at=epoch_to_utc(_first(video.get("createTime"), video.get("created_at"))),
        upvotes=as_int(_first(stats.get("diggCount"), stats.get("likeCount"), stats.get("likes"), video.get("diggCount"))),
        comments=as_int(_first(stats.get("commentCount"), stats.get("comments"), video.get("commentCount"))),
        shares=as_int(_first(stats.get("shareCount"), stats.get("shares"), video.get("shareCount"))),
        views=as_int(_first(stats.get("playCount"), stats.get("views"), video.get("playCount"))),
        saves=collect_count if isinstance(collect_count, int) else None,
    )


def shop_query_community(query: str) -> str:
    """Community name for a shop search query ("Dog Mom" -> "dog-mom")."""
    return "-".join(query.lower().split())


def product_to_signal(product: dict, query: str) -> RawSignal | None:
    """Convert a TikTok Shop product to a RawSignal.

    Sales stand in for upvotes and reviews for comments; ids are prefixed
    with "shop-" so they never collide with video ids.
    """
    product_id = str(_first(product.get("id"), product.get("productId")) or "")
    if not product_id:
        return None

    return RawSignal(
        platform=Platform.TIKTOK,
        external_id=f"shop-{product_id}",
        url=str(_first(product.get("url"), product.get("link")) or f"https://www.tiktok.com/shop/product/{product_id}"),
        community=shop_query_community(query),
        title=str(_first(product.get("title"), product.get("name")) or ""),
        content=str(product.get("description") or ""),
        author=str(_first(product.get("seller"), product.get("shopName")) or "unknown"),
        hashtags=[],
        upvotes=as_int(_first(product.get("soldCount"), product.get("sales"))),
        comments=as_int(_first(product.get("reviewCount"), product.get("reviews"))),
        shares=0,
        views=None,
    )


class TikTokScraper:
    """Turns TikTok videos and shop searches into RawSignals."""

    platform = Platform.TIKTOK.value

    def __init__(self, client: ScrapeClient, settings: Settings):
        self.client = client
        self.settings = settings

    def scrape_video(self, video_url: str) -> RawSignal:
        """Scrape a single video.

        Raises:
            PayloadShapeError: If no video can be found in the content
        """
        content = decode_content(first_content(self.client.scrape_tiktok_video(video_url), video_url))
        video = extract_video(content)
        signal = video_to_signal(video) if video else None
        if signal is None:
            raise PayloadShapeError(f"Could not parse TikTok video data: {video_url}")
        return signal

    def search_shop(self, query: str) -> list[RawSignal]:
        """Search TikTok Shop and convert products to signals."""
        content = decode_content(
            first_content(self.client.scrape_tiktok_shop_search(query), f"TikTok Shop '{query}'")
        )
        products = content.get("products") if isinstance(content, dict) else None
        if not isinstance(products, list):
            products = []

        signals = []
        for product in products:
            if not isinstance(product, dict):
                continue
            try:
                signal = product_to_signal(product, query)
            except (ValueError, TypeError, ValidationError) as e:
                logger.warning(f"Skipping malformed product in TikTok Shop search '{query}': {e}")
                continue
            if signal:
                signals.append(signal)

        logger.info(f"Found {len(signals)} signals from TikTok Shop search '{query}'")
        return signals

    def scrape_community(
        self,
        community: str,
        max_signals: int | None = None,
    ) -> CommunityScrape:
        """Scrape a TikTok community through a shop search for its name."""
        limit = max_signals or self.settings.discovery.max_signals_per_community
        query = community.replace("-", " ")
        signals = self.search_shop(query)
        return CommunityScrape(
            platform=self.platform,
            community=shop_query_community(query),
            signals=signals[:limit],
            community_size=None,
            raw_count=len(signals),
        )
