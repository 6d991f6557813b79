"""
Trend store tests against in-memory SQLite.

Covers signal upsert identity, the one-trend-per-signal rule, trend
lifecycle (expiry and deactivation) and usage tracking.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import NOW, make_signal, verdict_json
from data_models.signals import ScoredSignal, VelocityTier
from data_models.velocity_config import VelocityPreset, get_velocity_config
from db.models import EmergingTrendModel, SocialSignalModel, VelocityConfigModel
from processing.viability import parse_evaluation
from services.trend_store import (
    DuplicateTrendError,
    SignalNotFoundError,
    TrendNotFoundError,
)


def scored(external_id="s1", tier=VelocityTier.RISING, combined=5.0, **overrides) -> ScoredSignal:
    data = make_signal(external_id, **overrides).model_dump()
    return ScoredSignal(
        **data, velocity_score=combined, recency_bonus=1.0, combined_score=combined, velocity_tier=tier
    )


def evaluation(**overrides):
    return parse_evaluation(verdict_json(**overrides))


def signal_row(session_factory, signal_id) -> SocialSignalModel:
    db = session_factory()
    try:
        return db.get(SocialSignalModel, signal_id)
    finally:
        db.close()


@pytest.fixture
def trend_factory(store):
    def create(external_id="s1", combined=5.0, tier=VelocityTier.RISING, **verdict):
        outcome = store.upsert_signal(scored(external_id, tier=tier, combined=combined))
        return store.create_trend(outcome.signal_id, evaluation(**verdict), combined, tier)

    return create


class TestSignalUpsert:
    def test_first_sighting_inserts(self, store):
        outcome = store.upsert_signal(scored())

        assert outcome.created is True
        assert outcome.evaluated is False
        assert store.get_signal_id("reddit", "s1") == outcome.signal_id

    def test_resighting_updates_engagement_only(self, store, session_factory, clock):
        first = store.upsert_signal(scored(upvotes=100, title="Original title here"))
        clock.advance(hours=2)

        second = store.upsert_signal(scored(upvotes=900, combined=8.0, title="Edited title here", community_size=40_000))

        assert second.created is False
        assert second.signal_id == first.signal_id
        row = signal_row(session_factory, first.signal_id)
        assert row.upvotes == 900
        assert row.combined_score == 8.0
        assert row.community_size == 40_000
        assert row.title == "Original title here"
        assert row.first_seen_at == NOW
        assert row.last_seen_at == NOW + timedelta(hours=2)

    def test_same_id_on_other_platform_is_distinct(self, store):
        reddit = store.upsert_signal(scored("same"))
        tiktok = store.upsert_signal(scored("same", platform="tiktok"))

        assert reddit.signal_id != tiktok.signal_id

    def test_batch_upsert_keys_by_identity(self, store):
        signals = [scored("a"), scored("b")]

        outcomes, errors = store.upsert_signals(signals)

        assert errors == []
        assert set(outcomes) == {("reddit", "a"), ("reddit", "b")}

    def test_unevaluated_signals_by_tier(self, store):
        store.upsert_signal(scored("hot", tier=VelocityTier.EXPLODING, combined=9.0))
        store.upsert_signal(scored("warm", tier=VelocityTier.STEADY, combined=3.0))
        store.upsert_signal(scored("flat", tier=VelocityTier.NORMAL, combined=1.0))
        done = store.upsert_signal(scored("done", tier=VelocityTier.RISING, combined=5.0))
        store.mark_signal_evaluated(done.signal_id, skip_reason="not_viable")

        assert [s.external_id for s in store.get_unevaluated_signals()] == ["hot", "warm"]
        assert [s.external_id for s in store.get_unevaluated_signals(min_tier=VelocityTier.RISING)] == ["hot"]

    def test_mark_signal_evaluated(self, store, session_factory):
        outcome = store.upsert_signal(scored())

        store.mark_signal_evaluated(outcome.signal_id, skip_reason="prefilter:news")

        row = signal_row(session_factory, outcome.signal_id)
        assert row.evaluated is True
        assert row.evaluated_at == NOW
        assert row.skip_reason == "prefilter:news"
        assert store.upsert_signal(scored()).evaluated is True

    def test_mark_unknown_signal(self, store):
        with pytest.raises(SignalNotFoundError):
            store.mark_signal_evaluated("missing")


class TestCreateTrend:
    def test_creates_trend_and_marks_signal(self, store, session_factory, trend_factory):
        trend = trend_factory(combined=6.85)

        assert trend.topic == "Crochet grandpa"
        assert trend.velocity_score == 6.85
        assert trend.velocity_tier == "rising"
        assert trend.merch_viability == 0.85
        assert trend.is_active is True
        assert trend.created_at == NOW
        assert trend.expires_at == NOW + timedelta(hours=336)
        assert trend.community == "crochet"
        assert trend.source_url.endswith("/s1")
        assert signal_row(session_factory, trend.signal_id).evaluated is True

    def test_topic_falls_back_to_title(self, trend_factory):
        trend = trend_factory(topic="")

        assert trend.topic == "Finished my first granny square blanket today"

    def test_one_trend_per_signal(self, store, trend_factory):
        trend = trend_factory()

        with pytest.raises(DuplicateTrendError):
            store.create_trend(trend.signal_id, evaluation(), 5.0, VelocityTier.RISING)

    def test_unknown_signal(self, store):
        with pytest.raises(SignalNotFoundError):
            store.create_trend("missing", evaluation(), 5.0, VelocityTier.RISING)


class TestActiveTrends:
    def test_ordered_by_velocity_then_viability(self, store, trend_factory):
        trend_factory("slow", combined=3.0, viabilityScore=0.95)
        trend_factory("fast", combined=8.0, viabilityScore=0.7)
        trend_factory("fast-better", combined=8.0, viabilityScore=0.9)

        trends = store.get_active_trends()

        assert [t.velocity_score for t in trends] == [8.0, 8.0, 3.0]
        assert [t.merch_viability for t in trends] == [0.9, 0.7, 0.95]

    def test_filters(self, store, trend_factory):
        trend_factory("safe")
        trend_factory("unsafe", amazonSafe=False)
        trend_factory("weak", viabilityScore=0.4)

        assert len(store.get_active_trends()) == 1
        assert len(store.get_active_trends(amazon_safe_only=False)) == 2
        assert len(store.get_active_trends(amazon_safe_only=False, min_viability=0.0)) == 3

    def test_unused_only(self, store, trend_factory):
        used = trend_factory("used")
        trend_factory("fresh")
        store.mark_trend_used(used.id)

        unused = store.get_active_trends(unused_only=True)

        assert len(unused) == 1
        assert used.id not in [t.id for t in unused]
        assert len(store.get_active_trends()) == 2

    def test_expired_trends_are_not_active(self, store, clock, trend_factory):
        trend_factory()
        clock.advance(hours=336)

        assert store.get_active_trends() == []


class TestTrendLifecycle:
    def test_expiry_deactivates_once(self, store, clock, session_factory, trend_factory):
        trend = trend_factory()
        trend_factory("later")
        clock.advance(hours=335)
        assert store.deactivate_expired_trends() == 0

        clock.advance(hours=1)
        assert store.deactivate_expired_trends() == 2
        assert store.deactivate_expired_trends() == 0

        expired = store.get_trend(trend.id)
        assert expired.is_active is False
        assert expired.deactivate_reason == "expired"
        assert expired.deactivated_at == NOW + timedelta(hours=336)
        assert expired.expires_at == trend.expires_at

    def test_manual_deactivation(self, store, trend_factory):
        trend = trend_factory()

        assert store.deactivate_trend(trend.id, reason="off-brand") is True
        assert store.deactivate_trend(trend.id) is False
        assert store.get_trend(trend.id).deactivate_reason == "off-brand"

    def test_deactivate_unknown_trend(self, store):
        with pytest.raises(TrendNotFoundError):
            store.deactivate_trend("missing")

    def test_trends_are_never_deleted(self, store, clock, session_factory, trend_factory):
        trend_factory()
        clock.advance(days=30)
        store.deactivate_expired_trends()

        db = session_factory()
        try:
            assert len(db.execute(select(EmergingTrendModel)).scalars().all()) == 1
        finally:
            db.close()


class TestUsage:
    def test_mark_trend_used(self, store, clock, trend_factory):
        trend = trend_factory()
        clock.advance(hours=1)

        store.mark_trend_used(trend.id, design_id="design-1")
        updated = store.mark_trend_used(trend.id)

        assert updated.used_in_design is True
        assert updated.used_at == NOW + timedelta(hours=1)
        assert updated.design_id == "design-1"
        assert updated.generation_count == 2

    def test_mark_unknown_trend(self, store):
        with pytest.raises(TrendNotFoundError):
            store.mark_trend_used("missing")


class TestVelocityConfigs:
    def test_get_or_create_is_idempotent(self, store, session_factory):
        config = get_velocity_config(VelocityPreset.AGGRESSIVE)

        first = store.get_or_create_velocity_config(VelocityPreset.AGGRESSIVE, config)
        second = store.get_or_create_velocity_config("aggressive", config)

        assert first == second
        db = session_factory()
        try:
            row = db.get(VelocityConfigModel, first)
            assert row.exploding_threshold == 4.0
            assert row.is_default is False
        finally:
            db.close()

    def test_ping(self, store):
        assert store.ping() is True
