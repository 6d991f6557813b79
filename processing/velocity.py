"""Velocity scoring: engagement relative to a community's own baseline.

A post with 500 upvotes in a 30k-member subreddit says more than 5,000
upvotes in a 5M-member one, so every metric is divided by what is normal
for that community before recency and community size are applied:

    velocity = 0.5*rel_upvotes + 0.3*rel_comments + 0.1*rel_shares + 0.1*depth
    combined = velocity * recency_bonus * size_factor

All functions here are pure; "now" can be passed in for reproducibility.
"""

import logging
import math
from datetime import datetime, timezone

import numpy as np

from data_models.community import CommunityBaseline
from data_models.signals import (
    TIER_ORDER,
    RawSignal,
    ScoredSignal,
    VelocityTier,
    tier_rank,
)
from data_models.velocity_config import (
    ScoringConfig,
    SizeFactorConfig,
    VelocityConfig,
    VelocityPreset,
    get_velocity_config,
)

logger = logging.getLogger(__name__)

# Baseline used when a batch is empty or a median is zero
DEFAULT_BASELINE_UPVOTES = 100.0
DEFAULT_BASELINE_COMMENTS = 10.0
DEFAULT_BASELINE_SHARES = 5.0

_DEFAULT_SCORING = ScoringConfig()
_DEFAULT_SIZE_FACTOR = SizeFactorConfig()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _relative(value: float, reference: float | None, fallback: float, floor: float) -> float:
    """value / reference, or value / fallback when there is no positive reference."""
    if reference and reference > 0:
        return value / max(reference, floor)
    return value / fallback


def hours_old(signal: RawSignal, config: VelocityConfig, now: datetime | None = None) -> float:
    """Age of a signal in hours; unknown post time counts as recency_hours_max."""
    if signal.posted_at is None:
        return config.recency_hours_max
    now = _as_naive_utc(now) if now else _utcnow()
    age = (now - _as_naive_utc(signal.posted_at)).total_seconds() / 3600
    return max(age, 0.0)


def classify_velocity_tier(score: float, config: VelocityConfig) -> VelocityTier:
    """Map a combined score to a tier, checking the highest threshold first."""
    if score >= config.exploding_threshold:
        return VelocityTier.EXPLODING
    if score >= config.rising_threshold:
        return VelocityTier.RISING
    if score >= config.steady_threshold:
        return VelocityTier.STEADY
    return VelocityTier.NORMAL


def calculate_velocity(
    signal: RawSignal,
    baseline: CommunityBaseline,
    config: VelocityConfig,
    now: datetime | None = None,
    scoring: ScoringConfig | None = None,
    size_factor: SizeFactorConfig | None = None,
) -> ScoredSignal:
    """Score a single signal against its community baseline.

    Args:
        signal: Signal to score
        baseline: Community baseline (the denominators)
        config: Velocity preset (recency window and tier thresholds)
        now: Reference time (defaults to current UTC time)
        scoring: Weights and fallback references
        size_factor: Community-size multiplier bands

    Returns:
        ScoredSignal; stale signals get all-zero scores and tier normal
    """
    scoring = scoring or _DEFAULT_SCORING
    size_factor = size_factor or _DEFAULT_SIZE_FACTOR
    data = signal.model_dump()
    for key in ("velocity_score", "recency_bonus", "combined_score", "velocity_tier"):
        data.pop(key, None)

    age = hours_old(signal, config, now)
    if age > config.recency_hours_max:
        return ScoredSignal(**data)

    rel_upvotes = _relative(
        signal.upvotes, baseline.avg_upvotes, scoring.default_upvote_reference, scoring.baseline_floor
    )
    rel_comments = _relative(
        signal.comments, baseline.avg_comments, scoring.default_comment_reference, scoring.baseline_floor
    )
    if baseline.avg_shares and baseline.avg_shares > 0:
        rel_shares = signal.shares / max(baseline.avg_shares, scoring.baseline_floor)
    else:
        rel_shares = scoring.neutral_share_ratio

    # Comments per upvote rewards discussion over passive likes
    depth = 0.0
    if signal.upvotes > 0:
        depth = min(signal.comments / signal.upvotes, scoring.max_engagement_depth)

    recency_bonus = math.exp(-config.recency_decay_rate * age)

    velocity_score = (
        scoring.upvote_weight * rel_upvotes
        + scoring.comment_weight * rel_comments
        + scoring.share_weight * rel_shares
        + scoring.depth_weight * depth
    )
    combined_score = velocity_score * recency_bonus * size_factor.factor_for(signal.community_size)

    return ScoredSignal(
        **data,
        velocity_score=velocity_score,
        recency_bonus=recency_bonus,
        combined_score=combined_score,
        velocity_tier=classify_velocity_tier(combined_score, config),
    )


def score_signals(
    signals: list[RawSignal],
    baseline: CommunityBaseline,
    config: VelocityConfig,
    now: datetime | None = None,
    scoring: ScoringConfig | None = None,
    size_factor: SizeFactorConfig | None = None,
) -> list[ScoredSignal]:
    """Score a batch, drop zero scores (stale signals) and sort by combined score descending."""
    now = now or _utcnow()
    scored = [calculate_velocity(s, baseline, config, now, scoring, size_factor) for s in signals]
    scored = [s for s in scored if s.combined_score > 0]
    scored.sort(key=lambda s: s.combined_score, reverse=True)
    return scored


def score_signals_with_preset(
    signals: list[RawSignal],
    baseline: CommunityBaseline,
    preset: VelocityPreset | str = VelocityPreset.MODERATE,
    now: datetime | None = None,
) -> list[ScoredSignal]:
    """score_signals with a built-in preset."""
    return score_signals(signals, baseline, get_velocity_config(preset), now)


def filter_by_thresholds(signals: list[RawSignal], config: VelocityConfig) -> list[RawSignal]:
    """Keep signals meeting the preset's minimum engagement.

    The community-size minimum only applies when the size is known.
    """
    kept = []
    for signal in signals:
        if signal.upvotes < config.min_upvotes:
            continue
        if signal.comments < config.min_comments:
            continue
        if signal.community_size and signal.community_size < config.min_community_size:
            continue
        kept.append(signal)
    return kept


def calculate_dynamic_baseline(
    signals: list[RawSignal],
    now: datetime | None = None,
) -> CommunityBaseline:
    """Median-based baseline from a batch of signals.

    Medians keep a single viral post from inflating the reference. Zero
    medians fall back to the defaults so scores never divide by zero.
    """
    now = now or _utcnow()
    if not signals:
        return CommunityBaseline(
            avg_upvotes=DEFAULT_BASELINE_UPVOTES,
            avg_comments=DEFAULT_BASELINE_COMMENTS,
            avg_shares=DEFAULT_BASELINE_SHARES,
            sample_size=0,
            updated_at=now,
        )

    upvotes = float(np.median([s.upvotes for s in signals]))
    comments = float(np.median([s.comments for s in signals]))
    shares = float(np.median([s.shares for s in signals]))
    views = [s.views for s in signals if s.views is not None]

    return CommunityBaseline(
        avg_upvotes=upvotes or DEFAULT_BASELINE_UPVOTES,
        avg_comments=comments or DEFAULT_BASELINE_COMMENTS,
        avg_shares=shares or DEFAULT_BASELINE_SHARES,
        avg_views=float(np.median(views)) if views else None,
        sample_size=len(signals),
        updated_at=now,
    )


def get_top_signals(
    signals: list[ScoredSignal],
    count: int,
    min_tier: VelocityTier | str | None = None,
) -> list[ScoredSignal]:
    """First `count` signals, optionally only those at or above min_tier.

    Expects signals already sorted by combined score.
    """
    if min_tier:
        limit = tier_rank(min_tier)
        signals = [s for s in signals if tier_rank(s.velocity_tier) <= limit]
    return signals[:count]


def group_by_tier(signals: list[ScoredSignal]) -> dict[str, list[ScoredSignal]]:
    """Bucket signals by tier value (every tier key is present)."""
    groups: dict[str, list[ScoredSignal]] = {tier.value: [] for tier in TIER_ORDER}
    for signal in signals:
        groups[VelocityTier(signal.velocity_tier).value].append(signal)
    return groups


def summarize_velocity(signals: list[ScoredSignal], community: str) -> dict:
    """Tier counts and top score for a scored batch; logged at INFO."""
    groups = group_by_tier(signals)
    summary = {
        "total": len(signals),
        **{tier: len(items) for tier, items in groups.items()},
        "top_score": round(signals[0].combined_score, 2) if signals else None,
    }
    logger.info(f"Velocity summary for {community}: {summary}")
    return summary
