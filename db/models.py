"""SQLAlchemy ORM models for the emerging trends pipeline."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SocialSignalModel(Base):
    """A scraped post/video, unique per (platform, external_id)."""

    __tablename__ = "social_signals"
    __table_args__ = (UniqueConstraint("platform", "external_id", name="uq_signal_platform_external_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    platform: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    community: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    community_size: Mapped[int | None] = mapped_column(Integer)

    # Immutable once stored
    title: Mapped[str | None] = mapped_column(String(500))
    content: Mapped[str | None] = mapped_column(Text)
    author: Mapped[str | None] = mapped_column(String(200))
    hashtags: Mapped[list | None] = mapped_column(JSON, default=list)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Engagement (updated on re-observation)
    upvotes: Mapped[int] = mapped_column(Integer, default=0)
    downvotes: Mapped[int | None] = mapped_column(Integer)
    comments: Mapped[int] = mapped_column(Integer, default=0)
    shares: Mapped[int] = mapped_column(Integer, default=0)
    views: Mapped[int | None] = mapped_column(Integer)
    saves: Mapped[int | None] = mapped_column(Integer)

    # Scores (updated on re-observation)
    velocity_score: Mapped[float | None] = mapped_column(Float)
    recency_bonus: Mapped[float | None] = mapped_column(Float)
    combined_score: Mapped[float | None] = mapped_column(Float, index=True)
    velocity_tier: Mapped[str | None] = mapped_column(String(20), index=True)

    # Evaluation bookkeeping
    evaluated: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    evaluated_at: Mapped[datetime | None] = mapped_column(DateTime)
    skip_reason: Mapped[str | None] = mapped_column(String(100))

    first_seen_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)


class DiscoveredCommunityModel(Base):
    """A monitored community with its baseline and scrape cadence."""

    __tablename__ = "discovered_communities"
    __table_args__ = (UniqueConstraint("platform", "name", name="uq_community_platform_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    platform: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text)
    url: Mapped[str | None] = mapped_column(String(2048))
    size: Mapped[int | None] = mapped_column(Integer)
    category: Mapped[str | None] = mapped_column(String(30), index=True)
    sub_category: Mapped[str | None] = mapped_column(String(100))
    merch_potential: Mapped[float | None] = mapped_column(Float)
    merch_notes: Mapped[str | None] = mapped_column(Text)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    is_priority: Mapped[bool] = mapped_column(Boolean, default=False)

    # Scrape bookkeeping
    last_scraped_at: Mapped[datetime | None] = mapped_column(DateTime, index=True)
    scrape_count: Mapped[int] = mapped_column(Integer, default=0)
    last_signal_count: Mapped[int | None] = mapped_column(Integer)

    # Baseline
    avg_upvotes: Mapped[float | None] = mapped_column(Float)
    avg_comments: Mapped[float | None] = mapped_column(Float)
    avg_shares: Mapped[float | None] = mapped_column(Float)
    avg_views: Mapped[float | None] = mapped_column(Float)
    baseline_sample_size: Mapped[int | None] = mapped_column(Integer)
    baseline_updated_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Scrape lease
    lease_owner: Mapped[str | None] = mapped_column(String(64))
    lease_expires_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Provenance
    discovered_by: Mapped[str | None] = mapped_column(String(30))
    discovered_from: Mapped[str | None] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    deactivated_at: Mapped[datetime | None] = mapped_column(DateTime)


class EmergingTrendModel(Base):
    """A viable trend derived from exactly one signal."""

    __tablename__ = "emerging_trends"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    signal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("social_signals.id"), nullable=False, unique=True
    )

    topic: Mapped[str] = mapped_column(String(300), nullable=False)
    phrases: Mapped[list | None] = mapped_column(JSON, default=list)
    keywords: Mapped[list | None] = mapped_column(JSON, default=list)
    audience: Mapped[str] = mapped_column(Text, default="")
    audience_profile: Mapped[str | None] = mapped_column(Text)
    audience_size: Mapped[str | None] = mapped_column(String(20))

    velocity_score: Mapped[float] = mapped_column(Float, default=0, index=True)
    velocity_tier: Mapped[str] = mapped_column(String(20), default="normal")
    merch_viability: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    viability_reason: Mapped[str | None] = mapped_column(Text)

    amazon_safe: Mapped[bool] = mapped_column(Boolean, default=False)
    amazon_safe_notes: Mapped[str | None] = mapped_column(Text)

    suggested_styles: Mapped[list | None] = mapped_column(JSON, default=list)
    color_hints: Mapped[list | None] = mapped_column(JSON, default=list)
    mood_keywords: Mapped[list | None] = mapped_column(JSON, default=list)
    design_notes: Mapped[str | None] = mapped_column(Text)

    # Lifecycle
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, index=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(DateTime)
    deactivate_reason: Mapped[str | None] = mapped_column(String(50))

    # Usage
    used_in_design: Mapped[bool] = mapped_column(Boolean, default=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime)
    design_id: Mapped[str | None] = mapped_column(String(100))
    generation_count: Mapped[int] = mapped_column(Integer, default=0)


class VelocityConfigModel(Base):
    """Persisted velocity preset."""

    __tablename__ = "velocity_configs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    description: Mapped[str | None] = mapped_column(Text)

    exploding_threshold: Mapped[float] = mapped_column(Float, nullable=False)
    rising_threshold: Mapped[float] = mapped_column(Float, nullable=False)
    steady_threshold: Mapped[float] = mapped_column(Float, nullable=False)
    recency_hours_max: Mapped[float] = mapped_column(Float, nullable=False)
    recency_decay_rate: Mapped[float] = mapped_column(Float, nullable=False)
    min_upvotes: Mapped[int] = mapped_column(Integer, default=0)
    min_comments: Mapped[int] = mapped_column(Integer, default=0)
    min_community_size: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
