"""Social signal schemas shared by scrapers, scoring and storage."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class Platform(str, Enum):
    """Platforms signals are scraped from."""

    REDDIT = "reddit"
    TIKTOK = "tiktok"


class VelocityTier(str, Enum):
    """Velocity buckets, highest first."""

    EXPLODING = "exploding"
    RISING = "rising"
    STEADY = "steady"
    NORMAL = "normal"


# Highest tier first; used for "at least this tier" comparisons
TIER_ORDER = [
    VelocityTier.EXPLODING,
    VelocityTier.RISING,
    VelocityTier.STEADY,
    VelocityTier.NORMAL,
]


def tier_rank(tier: VelocityTier | str) -> int:
    """Position of a tier in TIER_ORDER (0 = exploding)."""
    return TIER_ORDER.index(VelocityTier(tier))


def tiers_at_least(min_tier: VelocityTier | str) -> list[str]:
    """Tier values ranked at or above min_tier."""
    return [t.value for t in TIER_ORDER[: tier_rank(min_tier) + 1]]


class RawSignal(BaseModel):
    """A single post or video observed on a platform.

    Identity is (platform, external_id); re-observing a post updates its
    counters, it never creates a new signal.
    """

    platform: Platform = Field(..., description="Source platform")
    external_id: str = Field(..., description="Platform-native id")
    url: str = Field(..., description="Canonical link to the post")
    community: str = Field(..., description="Subreddit, hashtag or search bucket")
    community_size: int | None = Field(None, description="Members/followers when known")
    title: str | None = None
    content: str | None = None
    author: str | None = None
    hashtags: list[str] = Field(default_factory=list)
    posted_at: datetime | None = Field(None, description="Original post time (UTC)")

    # Engagement
    upvotes: int = 0
    downvotes: int | None = None
    comments: int = 0
    shares: int = 0
    views: int | None = None
    saves: int | None = None

    class Config:
        use_enum_values = True

    @property
    def key(self) -> tuple[str, str]:
        """Global identity of the signal."""
        return (self.platform, self.external_id)


class ScoredSignal(RawSignal):
    """RawSignal with velocity scoring attached."""

    velocity_score: float = 0.0
    recency_bonus: float = 0.0
    combined_score: float = 0.0
    velocity_tier: VelocityTier = VelocityTier.NORMAL


class CommunityScrape(BaseModel):
    """Normalized outcome of scraping one community."""

    platform: Platform
    community: str
    signals: list[RawSignal] = Field(default_factory=list)
    community_size: int | None = None
    raw_count: int = Field(0, description="Items in the payload before normalization")

    class Config:
        use_enum_values = True
