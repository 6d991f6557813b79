"""Persistence of signals, emerging trends and velocity presets.

Signals are upserted by (platform, external_id): the first sighting
inserts, later sightings only refresh engagement and scores. A signal
yields at most one trend, and a trend's expires_at is set once at creation
and never moved; expiry deactivates the trend, it is never deleted.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from data_models.emerging_trend import EmergingTrend
from data_models.evaluation import ViabilityEvaluation
from data_models.settings import TrendLifecycleConfig
from data_models.signals import ScoredSignal, VelocityTier, tiers_at_least
from data_models.velocity_config import DEFAULT_VELOCITY_PRESET, VelocityConfig, VelocityPreset
from db.models import EmergingTrendModel, SocialSignalModel, VelocityConfigModel, utc_now

logger = logging.getLogger(__name__)

# Fields refreshed when a stored signal is observed again
MUTABLE_SIGNAL_FIELDS = (
    "community_size",
    "upvotes",
    "downvotes",
    "comments",
    "shares",
    "views",
    "saves",
    "velocity_score",
    "recency_bonus",
    "combined_score",
    "velocity_tier",
)

IMMUTABLE_SIGNAL_FIELDS = (
    "url",
    "community",
    "title",
    "content",
    "author",
    "hashtags",
    "posted_at",
)


class TrendStoreError(Exception):
    """Base class for store failures."""


class SignalNotFoundError(TrendStoreError):
    pass


class TrendNotFoundError(TrendStoreError):
    pass


class DuplicateTrendError(TrendStoreError):
    """A trend already exists for the signal."""


@dataclass
class SignalUpsert:
    """Outcome of storing one signal."""

    signal_id: str
    created: bool
    evaluated: bool


def signal_from_row(row: SocialSignalModel) -> ScoredSignal:
    """Rebuild a ScoredSignal from its stored row."""
    return ScoredSignal(
        platform=row.platform,
        external_id=row.external_id,
        url=row.url,
        community=row.community,
        community_size=row.community_size,
        title=row.title,
        content=row.content,
        author=row.author,
        hashtags=row.hashtags or [],
        posted_at=row.posted_at,
        upvotes=row.upvotes or 0,
        downvotes=row.downvotes,
        comments=row.comments or 0,
        shares=row.shares or 0,
        views=row.views,
        saves=row.saves,
        velocity_score=row.velocity_score or 0.0,
        recency_bonus=row.recency_bonus or 0.0,
        combined_score=row.combined_score or 0.0,
        velocity_tier=row.velocity_tier or VelocityTier.NORMAL,
    )


def trend_from_row(row: EmergingTrendModel, signal: SocialSignalModel | None = None) -> EmergingTrend:
    """Convert a trend row (and optionally its signal) to the API schema."""
    return EmergingTrend(
        id=row.id,
        signal_id=row.signal_id,
        topic=row.topic,
        phrases=row.phrases or [],
        keywords=row.keywords or [],
        audience=row.audience or "",
        audience_profile=row.audience_profile,
        audience_size=row.audience_size,
        velocity_score=row.velocity_score or 0.0,
        velocity_tier=row.velocity_tier or VelocityTier.NORMAL,
        merch_viability=row.merch_viability,
        viability_reason=row.viability_reason,
        amazon_safe=bool(row.amazon_safe),
        amazon_safe_notes=row.amazon_safe_notes,
        suggested_styles=row.suggested_styles or [],
        color_hints=row.color_hints or [],
        mood_keywords=row.mood_keywords or [],
        design_notes=row.design_notes,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        expires_at=row.expires_at,
        deactivated_at=row.deactivated_at,
        deactivate_reason=row.deactivate_reason,
        used_in_design=bool(row.used_in_design),
        used_at=row.used_at,
        design_id=row.design_id,
        generation_count=row.generation_count or 0,
        community=signal.community if signal else None,
        source_url=signal.url if signal else None,
    )


class TrendStore:
    """Store for signals and trends backed by a SQLAlchemy session factory."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        lifecycle: TrendLifecycleConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize store.

        Args:
            session_factory: Factory opening one session per operation
            lifecycle: Trend TTL and viability thresholds
            clock: Current time as a naive UTC datetime
        """
        self.session_factory = session_factory
        self.lifecycle = lifecycle or TrendLifecycleConfig()
        self.clock = clock

    # Signals

    def upsert_signal(self, signal: ScoredSignal) -> SignalUpsert:
        """Insert a signal or refresh its engagement and scores.

        Title, content, author and the other descriptive fields are never
        overwritten once stored.
        """
        for attempt in range(2):
            db = self.session_factory()
            try:
                row = db.execute(
                    select(SocialSignalModel).where(
                        SocialSignalModel.platform == signal.platform,
                        SocialSignalModel.external_id == signal.external_id,
                    )
                ).scalar_one_or_none()

                now = self.clock()
                created = row is None
                if created:
                    row = SocialSignalModel(
                        platform=signal.platform,
                        external_id=signal.external_id,
                        first_seen_at=now,
                        evaluated=False,
                        **{f: getattr(signal, f) for f in IMMUTABLE_SIGNAL_FIELDS},
                    )
                    db.add(row)

                for field in MUTABLE_SIGNAL_FIELDS:
                    setattr(row, field, getattr(signal, field))
                row.last_seen_at = now

                db.flush()
                outcome = SignalUpsert(signal_id=row.id, created=created, evaluated=bool(row.evaluated))
                db.commit()
                return outcome

            except IntegrityError:
                # Another writer inserted the same signal first; update it instead
                db.rollback()
                if attempt == 1:
                    raise
            except Exception as e:
                db.rollback()
                logger.error(f"Error storing signal {signal.platform}/{signal.external_id}: {e}")
                raise
            finally:
                db.close()

        raise TrendStoreError(f"Could not store signal {signal.platform}/{signal.external_id}")

    def upsert_signals(
        self,
        signals: list[ScoredSignal],
    ) -> tuple[dict[tuple[str, str], SignalUpsert], list[str]]:
        """Store a batch, continuing past per-signal failures.

        Returns:
            (outcomes keyed by (platform, external_id) for stored signals, error messages)
        """
        outcomes: dict[tuple[str, str], SignalUpsert] = {}
        errors: list[str] = []
        for signal in signals:
            try:
                outcomes[signal.key] = self.upsert_signal(signal)
            except Exception as e:
                errors.append(f"Failed to store signal {signal.platform}/{signal.external_id}: {e}")
        return outcomes, errors

    def get_signal_id(self, platform: str, external_id: str) -> str | None:
        db = self.session_factory()
        try:
            return db.execute(
                select(SocialSignalModel.id).where(
                    SocialSignalModel.platform == platform,
                    SocialSignalModel.external_id == external_id,
                )
            ).scalar_one_or_none()
        finally:
            db.close()

    def get_unevaluated_signals(
        self,
        limit: int = 50,
        min_tier: VelocityTier | str = VelocityTier.STEADY,
    ) -> list[ScoredSignal]:
        """Stored signals not yet evaluated, at or above min_tier, best first."""
        db = self.session_factory()
        try:
            rows = db.execute(
                select(SocialSignalModel)
                .where(
                    SocialSignalModel.evaluated.is_(False),
                    SocialSignalModel.velocity_tier.in_(tiers_at_least(min_tier)),
                )
                .order_by(SocialSignalModel.combined_score.desc())
                .limit(limit)
            ).scalars().all()
            return [signal_from_row(row) for row in rows]
        finally:
            db.close()

    def mark_signal_evaluated(self, signal_id: str, skip_reason: str | None = None) -> None:
        """Flag a signal as evaluated so it is not sent to the judge again.

        Raises:
            SignalNotFoundError: If the signal does not exist
        """
        db = self.session_factory()
        try:
            row = db.get(SocialSignalModel, signal_id)
            if row is None:
                raise SignalNotFoundError(f"Signal not found: {signal_id}")
            row.evaluated = True
            row.evaluated_at = self.clock()
            row.skip_reason = skip_reason
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Trends

    def create_trend(
        self,
        signal_id: str,
        evaluation: ViabilityEvaluation,
        velocity_score: float,
        velocity_tier: VelocityTier | str,
    ) -> EmergingTrend:
        """Create the trend for a signal and mark the signal evaluated, atomically.

        Raises:
            SignalNotFoundError: If the signal does not exist
            DuplicateTrendError: If the signal already has a trend
        """
        db = self.session_factory()
        try:
            signal = db.get(SocialSignalModel, signal_id)
            if signal is None:
                raise SignalNotFoundError(f"Signal not found: {signal_id}")

            existing = db.execute(
                select(EmergingTrendModel.id).where(EmergingTrendModel.signal_id == signal_id)
            ).scalar_one_or_none()
            if existing:
                raise DuplicateTrendError(f"Signal {signal_id} already has trend {existing}")

            now = self.clock()
            row = EmergingTrendModel(
                signal_id=signal_id,
                topic=evaluation.topic or (signal.title or "")[:300],
                phrases=evaluation.phrases,
                keywords=evaluation.keywords,
                audience=evaluation.audience,
                audience_profile=evaluation.audience_profile or None,
                audience_size=evaluation.audience_size,
                velocity_score=velocity_score,
                velocity_tier=VelocityTier(velocity_tier).value,
                merch_viability=evaluation.viability_score,
                viability_reason=evaluation.viability_reason or None,
                amazon_safe=evaluation.amazon_safe,
                amazon_safe_notes=evaluation.amazon_safe_notes,
                suggested_styles=evaluation.suggested_styles,
                color_hints=evaluation.color_hints,
                mood_keywords=evaluation.mood_keywords,
                design_notes=evaluation.design_notes,
                is_active=True,
                created_at=now,
                expires_at=now + timedelta(hours=self.lifecycle.expiration_hours),
                used_in_design=False,
                generation_count=0,
            )
            db.add(row)

            signal.evaluated = True
            signal.evaluated_at = now
            signal.skip_reason = None

            db.flush()
            trend = trend_from_row(row, signal)
            db.commit()
            logger.info(f"Created emerging trend: {trend.id} - {trend.topic}")
            return trend

        except IntegrityError as e:
            db.rollback()
            raise DuplicateTrendError(f"Signal {signal_id} already has a trend") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get_active_trends(
        self,
        limit: int = 50,
        min_viability: float | None = None,
        amazon_safe_only: bool = True,
        unused_only: bool = False,
    ) -> list[EmergingTrend]:
        """Active, unexpired trends ordered by velocity then viability.

        Args:
            limit: Maximum trends to return
            min_viability: Minimum merch viability (defaults to lifecycle.default_min_viability)
            amazon_safe_only: Only trends flagged Amazon-safe
            unused_only: Only trends not yet used in a design
        """
        if min_viability is None:
            min_viability = self.lifecycle.default_min_viability

        now = self.clock()
        query = (
            select(EmergingTrendModel, SocialSignalModel)
            .join(SocialSignalModel, EmergingTrendModel.signal_id == SocialSignalModel.id)
            .where(
                EmergingTrendModel.is_active.is_(True),
                EmergingTrendModel.merch_viability >= min_viability,
                or_(EmergingTrendModel.expires_at.is_(None), EmergingTrendModel.expires_at > now),
            )
        )
        if amazon_safe_only:
            query = query.where(EmergingTrendModel.amazon_safe.is_(True))
        if unused_only:
            query = query.where(EmergingTrendModel.used_in_design.is_(False))

        query = query.order_by(
            EmergingTrendModel.velocity_score.desc(),
            EmergingTrendModel.merch_viability.desc(),
        ).limit(limit)

        db = self.session_factory()
        try:
            return [trend_from_row(trend, signal) for trend, signal in db.execute(query).all()]
        finally:
            db.close()

    def get_trend(self, trend_id: str) -> EmergingTrend | None:
        db = self.session_factory()
        try:
            row = db.get(EmergingTrendModel, trend_id)
            if row is None:
                return None
            return trend_from_row(row, db.get(SocialSignalModel, row.signal_id))
        finally:
            db.close()

    def mark_trend_used(self, trend_id: str, design_id: str | None = None) -> EmergingTrend:
        """Record that a design was generated from a trend.

        Raises:
            TrendNotFoundError: If the trend does not exist
        """
        db = self.session_factory()
        try:
            row = db.get(EmergingTrendModel, trend_id)
            if row is None:
                raise TrendNotFoundError(f"Trend not found: {trend_id}")
            row.used_in_design = True
            row.used_at = self.clock()
            if design_id:
                row.design_id = design_id
            row.generation_count = (row.generation_count or 0) + 1
            db.flush()
            trend = trend_from_row(row, db.get(SocialSignalModel, row.signal_id))
            db.commit()
            return trend
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def deactivate_trend(self, trend_id: str, reason: str = "manual") -> bool:
        """Deactivate one trend.

        Returns:
            True if the trend was active, False if it already was inactive

        Raises:
            TrendNotFoundError: If the trend does not exist
        """
        db = self.session_factory()
        try:
            row = db.get(EmergingTrendModel, trend_id)
            if row is None:
                raise TrendNotFoundError(f"Trend not found: {trend_id}")
            if not row.is_active:
                return False
            row.is_active = False
            row.deactivated_at = self.clock()
            row.deactivate_reason = reason
            db.commit()
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def deactivate_expired_trends(self) -> int:
        """Deactivate every active trend whose expires_at has passed.

        Safe to re-run: already inactive trends are left untouched.

        Returns:
            Number of trends deactivated
        """
        now = self.clock()
        db = self.session_factory()
        try:
            result = db.execute(
                update(EmergingTrendModel)
                .where(
                    EmergingTrendModel.is_active.is_(True),
                    EmergingTrendModel.expires_at.is_not(None),
                    EmergingTrendModel.expires_at <= now,
                )
                .values(is_active=False, deactivated_at=now, deactivate_reason="expired")
            )
            db.commit()
            count = result.rowcount or 0
            if count:
                logger.info(f"Deactivated {count} expired trends")
            return count
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Velocity presets

    def get_or_create_velocity_config(
        self,
        preset: VelocityPreset | str,
        config: VelocityConfig,
    ) -> str:
        """Persist a preset's thresholds once; returns the row id.

        An existing row is returned unchanged.
        """
        name = VelocityPreset(preset).value
        db = self.session_factory()
        try:
            row = db.execute(
                select(VelocityConfigModel).where(VelocityConfigModel.name == name)
            ).scalar_one_or_none()
            if row is None:
                row = VelocityConfigModel(
                    name=name,
                    is_default=name == DEFAULT_VELOCITY_PRESET.value,
                    description=f"{name} velocity detection settings",
                    **config.model_dump(),
                )
                db.add(row)
                db.flush()
            config_id = row.id
            db.commit()
            return config_id
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Health

    def ping(self) -> bool:
        """Run a trivial query; raises if the database is unreachable."""
        db = self.session_factory()
        try:
            db.execute(select(func.count()).select_from(VelocityConfigModel))
            return True
        finally:
            db.close()
