"""Community schemas: tracked communities, seeds and engagement baselines."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from data_models.signals import Platform


class CommunityCategory(str, Enum):
    """Broad community categories used for merch heuristics."""

    HOBBY = "hobby"
    PROFESSION = "profession"
    LIFESTYLE = "lifestyle"
    FANDOM = "fandom"
    SPORTS = "sports"
    PETS = "pets"
    FAMILY = "family"
    FOOD = "food"
    FITNESS = "fitness"
    GAMING = "gaming"
    CRAFTS = "crafts"
    OUTDOORS = "outdoors"
    MUSIC = "music"
    ART = "art"
    TECH = "tech"
    OTHER = "other"


class CommunityBaseline(BaseModel):
    """Typical engagement of a community's posts (median based)."""

    avg_upvotes: float
    avg_comments: float
    avg_shares: float = 0.0
    avg_views: float | None = None
    sample_size: int = 0
    updated_at: datetime


class SeedCommunity(BaseModel):
    """A curated community used to bootstrap discovery."""

    platform: Platform = Platform.REDDIT
    name: str
    category: CommunityCategory
    merch_potential: float = Field(..., ge=0, le=1)
    is_priority: bool = False

    class Config:
        use_enum_values = True


class DiscoveredCommunity(BaseModel):
    """A tracked community and its scrape bookkeeping."""

    id: str | None = None
    platform: Platform
    name: str
    display_name: str | None = None
    description: str | None = None
    url: str | None = None
    size: int | None = None
    category: CommunityCategory | None = None
    sub_category: str | None = None
    merch_potential: float | None = Field(None, ge=0, le=1)
    merch_notes: str | None = None

    is_active: bool = True
    is_priority: bool = False
    last_scraped_at: datetime | None = None
    scrape_count: int = 0
    last_signal_count: int | None = None

    baseline: CommunityBaseline | None = None

    # Provenance
    discovered_by: str | None = Field(None, description="'seed', 'expansion' or 'category-suggestion'")
    discovered_from: str | None = Field(None, description="Community this one was found through")

    class Config:
        use_enum_values = True
