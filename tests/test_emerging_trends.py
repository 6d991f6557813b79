"""
Discovery orchestrator tests.

Real registry and store on in-memory SQLite; scrapers, scrape client and
LLM are fakes so every run is deterministic.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import FakeScrapeClient, FakeScraper, StubLLM, make_signal, verdict_json
from data_models.community import DiscoveredCommunity
from data_models.discovery import DiscoveryOptions
from data_models.velocity_config import VelocityPreset, get_velocity_config
from db.models import SocialSignalModel, VelocityConfigModel
from ingestion.errors import ScrapeRetryExhaustedError
from processing.viability import ViabilityEvaluator
from services.emerging_trends import EmergingTrendsService, build_service

VIRAL_TITLE = "Grandpa finally learned to crochet and made this blanket"


def crochet_batch(viral_title=VIRAL_TITLE):
    """Four ordinary posts plus one far above the community's median."""
    ordinary = [make_signal(f"n{i}", upvotes=100, comments=10) for i in range(4)]
    viral = make_signal("viral", title=viral_title, upvotes=900, comments=90)
    return ordinary + [viral]


class Monotonic:
    """Monotonic clock that jumps after the first reading."""

    def __init__(self, jump: float):
        self.readings = 0
        self.jump = jump

    def __call__(self) -> float:
        self.readings += 1
        return 0.0 if self.readings == 1 else self.jump


@pytest.fixture
def llm():
    return StubLLM(verdict_json())


@pytest.fixture
def scraper():
    return FakeScraper({"crochet": crochet_batch()})


@pytest.fixture
def make_service(settings, registry, store, clock, llm, scraper):
    def build(scrape_client=None, scrapers=None, evaluator_llm=None, run_settings=None, monotonic=None):
        run_settings = run_settings or settings
        evaluator = ViabilityEvaluator(evaluator_llm or llm, run_settings.evaluator, batch_delay_seconds=0)
        kwargs = {}
        if monotonic is not None:
            kwargs["monotonic"] = monotonic
        return EmergingTrendsService(
            settings=run_settings,
            scrape_client=scrape_client or FakeScrapeClient(),
            scrapers=scrapers or {"reddit": scraper},
            registry=registry,
            store=store,
            evaluator=evaluator,
            sleep=lambda seconds: None,
            clock=clock,
            **kwargs,
        )

    return build


def signal_row(session_factory, external_id) -> SocialSignalModel:
    db = session_factory()
    try:
        return db.execute(
            select(SocialSignalModel).where(SocialSignalModel.external_id == external_id)
        ).scalar_one()
    finally:
        db.close()


class TestDiscoveryRun:
    def test_full_run_creates_trend(self, make_service, store, registry, scraper, llm):
        result = make_service().discover()

        assert result.success is True
        assert result.errors == []
        assert result.signals_found == 5
        assert result.signals_stored == 5
        assert result.trends_evaluated == 1
        assert result.trends_created == 1
        assert sorted(scraper.calls) == ["crochet", "daddit"]
        assert len(llm.prompts) == 1
        assert VIRAL_TITLE in llm.prompts[0]

        trends = store.get_active_trends()
        assert len(trends) == 1
        assert trends[0].community == "crochet"
        assert trends[0].velocity_tier == "exploding"
        assert trends[0].velocity_score == pytest.approx(7.21)

        crochet = registry.get_community("reddit", "crochet")
        assert crochet.scrape_count == 1
        assert crochet.baseline.avg_upvotes == 100
        assert crochet.last_signal_count == 5

    def test_second_run_without_due_communities_is_noop(self, make_service, scraper):
        service = make_service()
        service.discover()
        scraper.calls.clear()

        result = service.discover()

        assert result.success is True
        assert result.signals_found == 0
        assert scraper.calls == []

    def test_signals_are_evaluated_only_once(self, make_service, store, clock, llm):
        service = make_service()
        service.discover()
        clock.advance(hours=13)

        result = service.discover()

        assert result.signals_stored == 5
        assert result.trends_evaluated == 0
        assert len(llm.prompts) == 1
        assert len(store.get_active_trends()) == 1

    def test_scoring_only_run(self, make_service, session_factory, llm):
        result = make_service().discover(DiscoveryOptions(include_evaluations=False))

        assert result.success is True
        assert result.signals_stored == 5
        assert result.trends_evaluated == 0
        assert llm.prompts == []
        assert signal_row(session_factory, "viral").evaluated is False

    def test_expired_trends_are_deactivated(self, make_service, store, clock):
        service = make_service()
        service.discover()
        clock.advance(hours=337)

        service.discover()

        assert store.get_active_trends() == []

    def test_velocity_preset_is_persisted(self, make_service, session_factory):
        make_service().discover(DiscoveryOptions(velocity_preset=VelocityPreset.AGGRESSIVE))

        db = session_factory()
        try:
            names = db.execute(select(VelocityConfigModel.name)).scalars().all()
        finally:
            db.close()
        assert names == ["aggressive"]


class TestEvaluationOutcomes:
    def test_prefilter_rejection_skips_judge(self, make_service, session_factory, llm):
        scraper = FakeScraper({"crochet": crochet_batch("Disney princess crochet blanket for my niece")})

        result = make_service(scrapers={"reddit": scraper}).discover()

        assert result.success is True
        assert result.trends_evaluated == 0
        assert llm.prompts == []
        row = signal_row(session_factory, "viral")
        assert row.evaluated is True
        assert row.skip_reason == "prefilter:trademark"

    def test_not_viable_verdict(self, make_service, session_factory, store):
        result = make_service(evaluator_llm=StubLLM(verdict_json(isViable=False, viabilityScore=0.2))).discover()

        assert result.trends_evaluated == 1
        assert result.trends_created == 0
        assert store.get_active_trends(amazon_safe_only=False, min_viability=0) == []
        assert signal_row(session_factory, "viral").skip_reason == "not_viable"

    def test_viable_below_minimum_score(self, make_service, store):
        result = make_service(evaluator_llm=StubLLM(verdict_json(viabilityScore=0.55))).discover()

        assert result.trends_evaluated == 1
        assert result.trends_created == 0

    def test_reply_without_json_is_retried_next_run(self, make_service, session_factory, clock):
        result = make_service(evaluator_llm=StubLLM("Sorry, I can't help with that.")).discover()

        assert result.success is True
        assert result.trends_evaluated == 0
        assert signal_row(session_factory, "viral").evaluated is False

    def test_unconfigured_evaluator_is_an_error(self, make_service, session_factory):
        result = make_service(evaluator_llm=StubLLM(configured=False)).discover()

        assert result.success is False
        assert result.signals_stored == 5
        assert any("Evaluator not configured" in e for e in result.errors)
        assert signal_row(session_factory, "viral").evaluated is False


class TestFailuresAndLimits:
    def test_unconfigured_scraper(self, make_service, scraper):
        result = make_service(scrape_client=FakeScrapeClient(configured=False)).discover()

        assert result.success is False
        assert len(result.errors) == 1
        assert scraper.calls == []

    def test_unknown_preset(self, make_service, settings):
        limited = settings.model_copy(
            update={"velocity_presets": {"moderate": get_velocity_config(VelocityPreset.MODERATE)}}
        )

        result = make_service(run_settings=limited).discover(
            DiscoveryOptions(velocity_preset=VelocityPreset.AGGRESSIVE)
        )

        assert result.success is False
        assert result.errors == ["Unknown velocity preset: aggressive"]

    def test_one_community_failing_does_not_stop_the_run(self, make_service, registry):
        scraper = FakeScraper(
            {"crochet": ScrapeRetryExhaustedError(4, "HTTP 503"), "daddit": crochet_batch()}
        )

        result = make_service(scrapers={"reddit": scraper}).discover()

        assert result.success is False
        assert len(result.errors) == 1
        assert "reddit/crochet" in result.errors[0]
        assert result.signals_stored == 5
        assert result.trends_created == 1
        # lease released despite the failure
        assert registry.acquire_lease("reddit", "crochet", "someone-else", timedelta(minutes=5))

    def test_leased_community_is_skipped(self, make_service, registry, scraper):
        registry.ensure_seeds()
        registry.acquire_lease("reddit", "crochet", "other-run", timedelta(minutes=30))

        result = make_service().discover()

        assert result.success is True
        assert scraper.calls == ["daddit"]
        assert registry.get_community("reddit", "crochet").scrape_count == 0

    def test_total_signal_cap(self, make_service):
        scraper = FakeScraper({"crochet": crochet_batch(), "daddit": crochet_batch()})

        result = make_service(scrapers={"reddit": scraper}).discover(DiscoveryOptions(max_total_signals=3))

        assert scraper.calls == ["crochet"]
        assert result.signals_found == 5

    def test_run_deadline_skips_remaining_communities(self, make_service, settings, scraper):
        timed = settings.model_copy(
            update={"discovery": settings.discovery.model_copy(update={"max_run_seconds": 10})}
        )

        result = make_service(run_settings=timed, monotonic=Monotonic(jump=100.0)).discover()

        assert result.success is True
        assert scraper.calls == []

    def test_preset_save_failure_is_reported_separately(self, make_service, store, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(store, "get_or_create_velocity_config", fail)

        result = make_service().discover()

        assert result.success is False
        assert result.errors == ["Failed to save velocity preset moderate: disk full"]
        assert result.signals_stored == 5
        assert result.trends_created == 1

    def test_missing_scraper_for_platform(self, make_service, registry):
        registry.upsert_community(DiscoveredCommunity(platform="tiktok", name="dog-mom", merch_potential=0.8))

        result = make_service().discover(DiscoveryOptions(platforms=["tiktok"]))

        assert result.success is False
        assert result.errors == ["No scraper registered for platform tiktok"]


class TestHealth:
    def test_ready(self, make_service):
        health = make_service().check_health()

        assert health.ready is True
        assert health.store_connected is True

    def test_missing_credentials(self, make_service):
        health = make_service(
            scrape_client=FakeScrapeClient(configured=False), evaluator_llm=StubLLM(configured=False)
        ).check_health()

        assert health.ready is False
        assert health.scraper_configured is False
        assert health.evaluator_configured is False
        assert len(health.errors) == 2


class TestBuildService:
    def test_owned_engine_is_disposed_on_close(self, settings):
        service = build_service(settings)
        assert service._engine is not None
        assert service.store.ping() is True

        service.close()

        assert service._engine is None

    def test_injected_session_factory_is_left_alone(self, settings, session_factory):
        service = build_service(settings, session_factory=session_factory)

        service.close()

        assert service._engine is None
        assert service.store.ping() is True
