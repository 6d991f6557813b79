"""Velocity presets and scoring constants."""

from enum import Enum

from pydantic import BaseModel, Field


class VelocityPreset(str, Enum):
    """Named threshold presets selectable per discovery run."""

    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class VelocityConfig(BaseModel):
    """Tier thresholds (multiples of baseline), recency window and minimum engagement."""

    exploding_threshold: float
    rising_threshold: float
    steady_threshold: float

    recency_hours_max: float = Field(..., gt=0)
    recency_decay_rate: float = Field(..., ge=0)

    min_upvotes: int = 0
    min_comments: int = 0
    min_community_size: int = 0

    class Config:
        frozen = True


VELOCITY_PRESETS: dict[VelocityPreset, VelocityConfig] = {
    VelocityPreset.CONSERVATIVE: VelocityConfig(
        exploding_threshold=10.0,
        rising_threshold=7.0,
        steady_threshold=4.0,
        recency_hours_max=24,
        recency_decay_rate=0.1,
        min_upvotes=100,
        min_comments=20,
        min_community_size=10000,
    ),
    VelocityPreset.MODERATE: VelocityConfig(
        exploding_threshold=7.0,
        rising_threshold=4.0,
        steady_threshold=2.0,
        recency_hours_max=48,
        recency_decay_rate=0.05,
        min_upvotes=50,
        min_comments=10,
        min_community_size=5000,
    ),
    VelocityPreset.AGGRESSIVE: VelocityConfig(
        exploding_threshold=4.0,
        rising_threshold=2.5,
        steady_threshold=1.5,
        recency_hours_max=72,
        recency_decay_rate=0.03,
        min_upvotes=20,
        min_comments=5,
        min_community_size=1000,
    ),
}

DEFAULT_VELOCITY_PRESET = VelocityPreset.MODERATE


def get_velocity_config(preset: VelocityPreset | str | None = None) -> VelocityConfig:
    """Look up a built-in preset (defaults to moderate)."""
    return VELOCITY_PRESETS[VelocityPreset(preset or DEFAULT_VELOCITY_PRESET)]


class SizeBand(BaseModel):
    """Community sizes strictly below max_size get factor."""

    max_size: int
    factor: float


class SizeFactorConfig(BaseModel):
    """Community-size multiplier; peaks for mid-size communities."""

    bands: list[SizeBand] = Field(
        default_factory=lambda: [
            SizeBand(max_size=1_000, factor=0.5),  # noise risk
            SizeBand(max_size=10_000, factor=0.8),
            SizeBand(max_size=100_000, factor=1.2),
            SizeBand(max_size=1_000_000, factor=1.0),
        ]
    )
    largest_factor: float = 0.7  # diluted
    unknown_factor: float = 1.0

    def factor_for(self, size: int | None) -> float:
        """Multiplier for a community of the given size."""
        if not size:
            return self.unknown_factor
        for band in sorted(self.bands, key=lambda b: b.max_size):
            if size < band.max_size:
                return band.factor
        return self.largest_factor


class ScoringConfig(BaseModel):
    """Weights and baseline references for velocity scoring."""

    upvote_weight: float = 0.5
    comment_weight: float = 0.3
    share_weight: float = 0.1
    depth_weight: float = 0.1

    # Lowest denominator used for a positive baseline
    baseline_floor: float = 1.0

    # References used when a community has no baseline for a metric
    default_upvote_reference: float = 100.0
    default_comment_reference: float = 10.0
    neutral_share_ratio: float = 1.0

    max_engagement_depth: float = 1.0
