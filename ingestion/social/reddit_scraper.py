"""Reddit scraper using the scraping API's reddit_subreddit target."""

import logging

from pydantic import ValidationError

from data_models.settings import Settings
from data_models.signals import CommunityScrape, Platform, RawSignal
from ingestion.payloads import as_int, epoch_to_utc, extract_posts, first_content
from ingestion.scrape_client import ScrapeClient

logger = logging.getLogger(__name__)

# Lowercased title markers for promoted or moderator posts
SKIP_TITLE_MARKERS = ("[ad]", "announcement")


class RedditScraper:
    """Turns subreddit listings into RawSignals."""

    platform = Platform.REDDIT.value

    def __init__(self, client: ScrapeClient, settings: Settings):
        """Initialize Reddit scraper.

        Args:
            client: Configured scrape client
            settings: Pipeline settings (sort order and per-community limit)
        """
        self.client = client
        self.settings = settings

    def scrape_community(
        self,
        community: str,
        max_signals: int | None = None,
    ) -> CommunityScrape:
        """Scrape one subreddit.

        Args:
            community: Subreddit name (without r/)
            max_signals: Post limit (defaults to discovery.max_signals_per_community)

        Returns:
            CommunityScrape with normalized signals

        Raises:
            ScrapeError: On client failures or unrecognized payloads
        """
        limit = max_signals or self.settings.discovery.max_signals_per_community
        results = self.client.scrape_reddit_subreddit(
            community,
            sort=self.settings.discovery.reddit_sort,
            limit=limit,
        )
        posts = extract_posts(first_content(results, f"r/{community}"))

        community_size = None
        for post in posts:
            community_size = as_int(post.get("subreddit_subscribers"), None)
            if community_size:
                break

        signals = []
        for post in posts:
            try:
                signal = self.post_to_signal(post, community, community_size)
            except (ValueError, TypeError, ValidationError) as e:
                logger.warning(f"Skipping malformed post {post.get('id')} in r/{community}: {e}")
                continue
            if signal:
                signals.append(signal)

        logger.info(f"Scraped {len(signals)} signals from r/{community} ({len(posts)} posts)")
        return CommunityScrape(
            platform=self.platform,
            community=community.lower(),
            signals=signals[:limit],
            community_size=community_size,
            raw_count=len(posts),
        )

    def post_to_signal(
        self,
        post: dict,
        subreddit: str,
        community_size: int | None = None,
    ) -> RawSignal | None:
        """Convert a Reddit post dict to a RawSignal.

        Args:
            post: Post data from the listing
            subreddit: Subreddit the post was scraped from
            community_size: Subscriber count if known

        Returns:
            RawSignal or None for posts without id/title and ads/announcements
        """
        post_id = post.get("id")
        title = post.get("title")
        if not post_id or not title:
            return None

        lowered = str(title).lower()
        if any(marker in lowered for marker in SKIP_TITLE_MARKERS):
            return None

        if post.get("permalink"):
            url = f"https://www.reddit.com{post['permalink']}"
        else:
            url = post.get("url") or f"https://www.reddit.com/r/{subreddit}/comments/{post_id}"

        score = as_int(post.get("score"))
        downvotes = None
        ratio = post.get("upvote_ratio")
        if isinstance(ratio, (int, float)) and ratio > 0:
            downvotes = max(0, round(score * (1 - ratio) / ratio))

        return RawSignal(
            platform=Platform.REDDIT,
            external_id=str(post_id),
            url=url,
            community=subreddit.lower(),
            community_size=community_size or as_int(post.get("subreddit_subscribers"), None),
            title=str(title),
            content=post.get("selftext") or None,
            author=post.get("author"),
            hashtags=[],
            posted_at=epoch_to_utc(post.get("created_utc")),
            upvotes=score,
            downvotes=downvotes,
            comments=as_int(post.get("num_comments")),
            shares=0,
            views=None,
            saves=None,
        )
