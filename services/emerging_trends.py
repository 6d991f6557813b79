"""Emerging trends discovery: one run from seeding to trend cleanup.

Stages, in order:
    1. ensure seed communities for the requested platforms
    2. select communities due for scraping (none due -> successful no-op)
    3. per community: lease, scrape, threshold filter, score, store,
       update baseline, collect non-normal signals
    4. pre-filter and evaluate the top signals in batches
    5. create trends for viable verdicts
    6. deactivate expired trends

Every stage and per-item failure is appended to the run's error list and
the run carries on; callers get both the counts and the errors.
"""

import logging
import os
import socket
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import Engine

from data_models.community import DiscoveredCommunity
from data_models.discovery import DiscoveryOptions, DiscoveryResult, HealthStatus
from data_models.settings import Settings, get_settings
from data_models.signals import Platform, ScoredSignal, tier_rank
from data_models.velocity_config import VelocityConfig
from db.database import create_db_engine, create_session_factory, init_db
from db.models import utc_now
from ingestion.scrape_client import ScrapeClient
from ingestion.social import RedditScraper, TikTokScraper
from processing.llm_utils import MistralLLM
from processing.prefilter import Prefilter
from processing.velocity import (
    calculate_dynamic_baseline,
    filter_by_thresholds,
    score_signals,
    summarize_velocity,
)
from processing.viability import ViabilityEvaluator
from services.community_registry import CommunityRegistry
from services.trend_store import DuplicateTrendError, TrendStore

logger = logging.getLogger(__name__)

SKIP_PREFILTER = "prefilter"
SKIP_NOT_VIABLE = "not_viable"


class EmergingTrendsService:
    """Runs discovery over injected collaborators."""

    def __init__(
        self,
        settings: Settings,
        scrape_client: ScrapeClient,
        scrapers: dict,
        registry: CommunityRegistry,
        store: TrendStore,
        evaluator: ViabilityEvaluator,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
        engine: Engine | None = None,
    ):
        """Initialize service.

        Args:
            settings: Pipeline settings
            scrape_client: Client used for configuration checks and expansion
            scrapers: Platform value -> scraper with scrape_community()
            registry: Community registry
            store: Signal and trend store
            evaluator: Viability evaluator
            sleep: Sleep function for the politeness delay
            clock: Current time as a naive UTC datetime
            monotonic: Monotonic seconds, used for duration and the run deadline
            engine: Engine owned by this service, disposed on close()
        """
        self.settings = settings
        self.scrape_client = scrape_client
        self.scrapers = {Platform(k).value: v for k, v in scrapers.items()}
        self.registry = registry
        self.store = store
        self.evaluator = evaluator
        self._sleep = sleep
        self.clock = clock
        self._monotonic = monotonic
        self.prefilter = Prefilter(settings.prefilter)
        self._engine = engine

    def close(self) -> None:
        self.scrape_client.close()
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    @staticmethod
    def _run_owner() -> str:
        """Lease owner id, unique per run."""
        return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"

    def discover(self, options: DiscoveryOptions | None = None) -> DiscoveryResult:
        """Run one discovery cycle.

        Args:
            options: Platforms, velocity preset and limits for this run

        Returns:
            DiscoveryResult; success is False when any error was recorded
        """
        options = options or DiscoveryOptions()
        discovery = self.settings.discovery
        started = self._monotonic()
        result = DiscoveryResult(success=False)
        errors = result.errors

        logger.info(
            f"Starting emerging trends discovery (platforms={options.platforms}, "
            f"preset={options.velocity_preset})"
        )

        if not self.scrape_client.is_configured():
            error = "Scrape API not configured. Set SCRAPER_API_USERNAME and SCRAPER_API_PASSWORD."
            logger.error(error)
            errors.append(error)
            result.duration_ms = self._elapsed_ms(started)
            return result

        try:
            velocity_config = self.settings.velocity_config(options.velocity_preset)
        except ValueError as e:
            errors.append(str(e))
            result.duration_ms = self._elapsed_ms(started)
            return result

        max_per_community = options.max_signals_per_community or discovery.max_signals_per_community
        max_total = options.max_total_signals or discovery.max_total_signals
        deadline = started + discovery.max_run_seconds if discovery.max_run_seconds else None

        try:
            # 1. Seeds and preset bookkeeping
            try:
                self.registry.ensure_seeds(options.platforms)
            except Exception as e:
                logger.error(f"Seeding failed: {e}")
                errors.append(f"Failed to seed communities: {e}")

            try:
                self.store.get_or_create_velocity_config(options.velocity_preset, velocity_config)
            except Exception as e:
                logger.error(f"Saving velocity preset failed: {e}")
                errors.append(f"Failed to save velocity preset {options.velocity_preset}: {e}")

            # 2. Due communities
            communities = self.registry.get_due_communities(
                platforms=options.platforms,
                limit=discovery.max_communities_per_run,
                min_hours_between_scrapes=discovery.min_hours_between_scrapes,
            )
            logger.info(f"Found {len(communities)} communities to scrape")

            if not communities:
                logger.info("No communities due for scraping")
                result.success = not errors
                result.duration_ms = self._elapsed_ms(started)
                return result

            # 3. Scrape, score and store
            candidates = self._scrape_communities(
                communities, velocity_config, max_per_community, max_total, deadline, result
            )

            # 4-5. Evaluate and create trends
            if options.include_evaluations and candidates:
                self._evaluate_candidates(candidates, result)

            # 6. Cleanup
            try:
                self.store.deactivate_expired_trends()
            except Exception as e:
                logger.error(f"Expired trend cleanup failed: {e}")
                errors.append(f"Failed to deactivate expired trends: {e}")

        except Exception as e:
            logger.error(f"Discovery failed: {e}")
            errors.append(f"Discovery failed: {e}")

        result.success = not errors
        result.duration_ms = self._elapsed_ms(started)
        logger.info(
            f"Discovery complete: found={result.signals_found} stored={result.signals_stored} "
            f"evaluated={result.trends_evaluated} created={result.trends_created} "
            f"errors={len(errors)} duration={result.duration_ms}ms"
        )
        return result

    def _elapsed_ms(self, started: float) -> int:
        return int((self._monotonic() - started) * 1000)

    def _scrape_communities(
        self,
        communities: list[DiscoveredCommunity],
        velocity_config: VelocityConfig,
        max_per_community: int,
        max_total: int,
        deadline: float | None,
        result: DiscoveryResult,
    ) -> dict[tuple[str, str], tuple[str, ScoredSignal]]:
        """Scrape communities in order; returns unevaluated candidates keyed by signal identity."""
        discovery = self.settings.discovery
        owner = self._run_owner()
        lease_ttl = timedelta(minutes=discovery.lease_ttl_minutes)
        candidates: dict[tuple[str, str], tuple[str, ScoredSignal]] = {}

        for index, community in enumerate(communities):
            label = f"{community.platform}/{community.name}"

            if deadline is not None and self._monotonic() >= deadline:
                logger.warning(
                    f"Run time limit reached, skipping {len(communities) - index} remaining communities"
                )
                break

            scraper = self.scrapers.get(community.platform)
            if scraper is None:
                result.errors.append(f"No scraper registered for platform {community.platform}")
                continue

            try:
                leased = self.registry.acquire_lease(community.platform, community.name, owner, lease_ttl)
            except Exception as e:
                result.errors.append(f"Failed to lease {label}: {e}")
                continue
            if not leased:
                logger.info(f"Skipping {label}: leased by another run")
                continue

            try:
                self._process_community(
                    scraper, community, velocity_config, max_per_community, candidates, result
                )
            except Exception as e:
                logger.error(f"Error scraping {label}: {e}")
                result.errors.append(f"Error scraping {label}: {e}")
            finally:
                try:
                    self.registry.release_lease(community.platform, community.name, owner)
                except Exception as e:
                    logger.warning(f"Failed to release lease on {label}: {e}")

            if result.signals_found >= max_total:
                logger.info("Reached max total signals limit")
                break

            if index < len(communities) - 1 and discovery.politeness_delay_seconds > 0:
                self._sleep(discovery.politeness_delay_seconds)

        return candidates

    def _process_community(
        self,
        scraper,
        community: DiscoveredCommunity,
        velocity_config: VelocityConfig,
        max_per_community: int,
        candidates: dict[tuple[str, str], tuple[str, ScoredSignal]],
        result: DiscoveryResult,
    ) -> None:
        """Scrape, score and store one community, then record the scrape."""
        discovery = self.settings.discovery
        label = f"{community.platform}/{community.name}"
        now = self.clock()

        scrape = scraper.scrape_community(community.name, max_per_community)
        result.signals_found += len(scrape.signals)

        fresh_baseline = calculate_dynamic_baseline(scrape.signals, now) if scrape.signals else None
        baseline = community.baseline or fresh_baseline or calculate_dynamic_baseline([], now)

        filtered = filter_by_thresholds(scrape.signals, velocity_config)
        scored = score_signals(
            filtered,
            baseline,
            velocity_config,
            now=now,
            scoring=self.settings.scoring,
            size_factor=self.settings.size_factor,
        )
        summarize_velocity(scored, label)

        outcomes, store_errors = self.store.upsert_signals(scored)
        result.signals_stored += len(outcomes)
        result.errors.extend(store_errors)

        self.registry.record_scrape(
            community.platform,
            community.name,
            len(scrape.signals),
            baseline=fresh_baseline,
            community_size=scrape.community_size,
        )

        min_rank = tier_rank(self.settings.evaluator.min_viable_tier)
        for signal in scored:
            outcome = outcomes.get(signal.key)
            if outcome is None or outcome.evaluated:
                continue
            if tier_rank(signal.velocity_tier) > min_rank:
                continue
            candidates[signal.key] = (outcome.signal_id, signal)

        if discovery.expansion_enabled and community.platform == Platform.REDDIT.value:
            try:
                self.registry.expand_from_signals(
                    community.name, scrape.signals, limit=discovery.max_expansions_per_community
                )
            except Exception as e:
                logger.warning(f"Community expansion from {label} failed: {e}")

    def _evaluate_candidates(
        self,
        candidates: dict[tuple[str, str], tuple[str, ScoredSignal]],
        result: DiscoveryResult,
    ) -> None:
        """Pre-filter, evaluate the best candidates and create trends."""
        discovery = self.settings.discovery
        lifecycle = self.settings.lifecycle
        signal_ids = {key: signal_id for key, (signal_id, _) in candidates.items()}

        passed, rejected = self.prefilter.split([signal for _, signal in candidates.values()])
        for signal, reason in rejected:
            try:
                self.store.mark_signal_evaluated(signal_ids[signal.key], skip_reason=f"{SKIP_PREFILTER}:{reason}")
            except Exception as e:
                result.errors.append(f"Failed to mark {signal.platform}/{signal.external_id} evaluated: {e}")

        to_evaluate = sorted(passed, key=lambda s: s.combined_score, reverse=True)
        to_evaluate = to_evaluate[: discovery.max_signals_to_evaluate]
        if not to_evaluate:
            return

        if not self.evaluator.is_configured():
            error = "Evaluator not configured. Set MISTRAL_API_KEY."
            logger.error(error)
            result.errors.append(error)
            return

        logger.info(f"Evaluating {len(to_evaluate)} signals for merch potential")
        try:
            evaluations = self.evaluator.evaluate_batch(to_evaluate)
        except Exception as e:
            logger.error(f"Evaluation failed: {e}")
            result.errors.append(f"Evaluation failed: {e}")
            return

        result.trends_evaluated = sum(1 for verdict in evaluations.values() if verdict is not None)

        for signal in to_evaluate:
            verdict = evaluations.get(signal.key)
            if verdict is None:
                continue
            signal_id = signal_ids[signal.key]
            try:
                if verdict.is_viable and verdict.viability_score >= lifecycle.min_merch_viability:
                    self.store.create_trend(
                        signal_id, verdict, signal.combined_score, signal.velocity_tier
                    )
                    result.trends_created += 1
                else:
                    self.store.mark_signal_evaluated(signal_id, skip_reason=SKIP_NOT_VIABLE)
            except DuplicateTrendError as e:
                logger.warning(str(e))
            except Exception as e:
                result.errors.append(
                    f"Failed to create trend for {signal.platform}/{signal.external_id}: {e}"
                )

    def check_health(self) -> HealthStatus:
        """Report whether the scraper, evaluator and store are usable."""
        errors = []

        scraper_configured = self.scrape_client.is_configured()
        if not scraper_configured:
            errors.append("Scrape API credentials not configured")

        evaluator_configured = self.evaluator.is_configured()
        if not evaluator_configured:
            errors.append("Evaluator API key not configured")

        store_connected = False
        try:
            store_connected = self.store.ping()
        except Exception as e:
            errors.append(f"Database connection failed: {e}")

        return HealthStatus(
            scraper_configured=scraper_configured,
            evaluator_configured=evaluator_configured,
            store_connected=store_connected,
            errors=errors,
        )


def build_service(settings: Settings | None = None, session_factory=None) -> EmergingTrendsService:
    """Wire the default collaborators from settings.

    Args:
        settings: Pipeline settings (defaults to get_settings())
        session_factory: Existing session factory; a new engine is created otherwise
    """
    settings = settings or get_settings()
    engine = None
    if session_factory is None:
        engine = create_db_engine(settings.database_url)
        init_db(engine)
        session_factory = create_session_factory(engine)

    client = ScrapeClient(settings.scraper)
    scrapers = {
        Platform.REDDIT.value: RedditScraper(client, settings),
        Platform.TIKTOK.value: TikTokScraper(client, settings),
    }
    evaluator = ViabilityEvaluator(
        MistralLLM(settings.evaluator),
        settings.evaluator,
        batch_size=settings.discovery.evaluation_batch_size,
        batch_delay_seconds=settings.discovery.evaluation_batch_delay_seconds,
    )
    return EmergingTrendsService(
        settings=settings,
        scrape_client=client,
        scrapers=scrapers,
        registry=CommunityRegistry(session_factory, settings.seed_communities),
        store=TrendStore(session_factory, settings.lifecycle),
        evaluator=evaluator,
        engine=engine,
    )


def discover_emerging_trends(
    options: DiscoveryOptions | None = None,
    settings: Settings | None = None,
) -> DiscoveryResult:
    """Convenience function to run one discovery cycle.

    Returns:
        DiscoveryResult
    """
    service = build_service(settings)
    try:
        return service.discover(options)
    finally:
        service.close()


def check_emerging_trends_health(settings: Settings | None = None) -> HealthStatus:
    """Convenience function to check pipeline health."""
    service = build_service(settings)
    try:
        return service.check_health()
    finally:
        service.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print(discover_emerging_trends().model_dump_json(indent=2))
