"""Data models for the emerging trends pipeline."""

from data_models.community import (
    CommunityBaseline,
    CommunityCategory,
    DiscoveredCommunity,
    SeedCommunity,
)
from data_models.discovery import DiscoveryOptions, DiscoveryResult, HealthStatus
from data_models.emerging_trend import EmergingTrend
from data_models.evaluation import AudienceSize, ViabilityEvaluation
from data_models.scrape import ScrapeParams, ScrapeResult
from data_models.signals import (
    TIER_ORDER,
    CommunityScrape,
    Platform,
    RawSignal,
    ScoredSignal,
    VelocityTier,
    tier_rank,
    tiers_at_least,
)
from data_models.velocity_config import (
    DEFAULT_VELOCITY_PRESET,
    VELOCITY_PRESETS,
    ScoringConfig,
    SizeBand,
    SizeFactorConfig,
    VelocityConfig,
    VelocityPreset,
    get_velocity_config,
)

__all__ = [
    "CommunityScrape",
    "Platform",
    "VelocityTier",
    "TIER_ORDER",
    "tier_rank",
    "tiers_at_least",
    "RawSignal",
    "ScoredSignal",
    "CommunityBaseline",
    "CommunityCategory",
    "DiscoveredCommunity",
    "SeedCommunity",
    "VelocityPreset",
    "VelocityConfig",
    "VELOCITY_PRESETS",
    "DEFAULT_VELOCITY_PRESET",
    "get_velocity_config",
    "ScoringConfig",
    "SizeBand",
    "SizeFactorConfig",
    "AudienceSize",
    "ViabilityEvaluation",
    "EmergingTrend",
    "DiscoveryOptions",
    "DiscoveryResult",
    "HealthStatus",
    "ScrapeParams",
    "ScrapeResult",
]
