"""
Shared fixtures for the emerging trends test suite.

Everything runs against in-memory SQLite with a fixed clock, zero delays
and fake HTTP / LLM collaborators; no test touches the network.
"""

import json
import threading
from datetime import datetime, timedelta

import httpx
import pytest

from data_models.community import CommunityCategory, SeedCommunity
from data_models.settings import (
    DiscoveryConfig,
    EvaluatorConfig,
    ScrapeClientConfig,
    SchedulerConfig,
    Settings,
)
from data_models.signals import CommunityScrape, Platform, RawSignal
from db.database import create_db_engine, create_session_factory, init_db
from ingestion.scrape_client import ScrapeClient
from services.community_registry import CommunityRegistry
from services.trend_store import TrendStore

NOW = datetime(2026, 3, 2, 12, 0, 0)


class FakeClock:
    """Callable clock returning a settable naive UTC time."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class StubLLM:
    """Stands in for MistralLLM.

    reply may be a string, an exception instance, or a callable taking the
    prompt and returning either.
    """

    def __init__(self, reply="", configured: bool = True):
        self.reply = reply
        self.configured = configured
        self.prompts: list[str] = []
        self._lock = threading.Lock()

    def is_configured(self) -> bool:
        return self.configured

    def generate(self, prompt, system_prompt=None, max_tokens=None, temperature=None):
        with self._lock:
            self.prompts.append(prompt)
        reply = self.reply(prompt) if callable(self.reply) else self.reply
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeScrapeClient:
    """Scrape client double for the orchestrator (no HTTP at all)."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.closed = False

    def is_configured(self) -> bool:
        return self.configured

    def close(self) -> None:
        self.closed = True


class FakeScraper:
    """Platform scraper returning canned signals per community.

    A value that is an exception is raised instead of returned.
    """

    def __init__(self, batches: dict | None = None, platform: str = Platform.REDDIT.value):
        self.batches = batches or {}
        self.platform = platform
        self.calls: list[str] = []

    def scrape_community(self, community, max_signals=None):
        self.calls.append(community)
        batch = self.batches.get(community, [])
        if isinstance(batch, Exception):
            raise batch
        return CommunityScrape(
            platform=self.platform,
            community=community.lower(),
            signals=list(batch)[: max_signals or None],
            community_size=None,
            raw_count=len(batch),
        )


def make_signal(external_id: str = "abc123", **overrides) -> RawSignal:
    """RawSignal with sensible Reddit defaults."""
    data = {
        "platform": Platform.REDDIT,
        "external_id": external_id,
        "url": f"https://www.reddit.com/r/crochet/comments/{external_id}",
        "community": "crochet",
        "title": "Finished my first granny square blanket today",
        "content": "Took three months but it is done",
        "author": "yarnlover",
        "posted_at": NOW,
        "upvotes": 100,
        "comments": 10,
    }
    data.update(overrides)
    return RawSignal(**data)


def verdict_json(**overrides) -> str:
    """Judge reply in the camelCase shape the prompt asks for."""
    data = {
        "isViable": True,
        "viabilityScore": 0.85,
        "viabilityReason": "Strong identity hook for crafters",
        "topic": "Crochet grandpa",
        "phrases": ["Real Men Crochet", "Hooked On Yarn"],
        "keywords": ["crochet", "grandpa"],
        "audience": "Older crafters",
        "audienceProfile": "Retired men taking up fiber crafts",
        "audienceSize": "niche",
        "amazonSafe": True,
        "amazonSafeNotes": None,
        "suggestedStyles": ["retro"],
        "colorHints": ["mustard"],
        "moodKeywords": ["proud"],
        "designNotes": "Yarn ball icon",
    }
    data.update(overrides)
    return f"Here is my evaluation:\n```json\n{json.dumps(data)}\n```"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def seeds():
    return [
        SeedCommunity(name="crochet", category=CommunityCategory.CRAFTS, merch_potential=0.9),
        SeedCommunity(name="daddit", category=CommunityCategory.FAMILY, merch_potential=0.8),
    ]


@pytest.fixture
def settings(seeds):
    """Settings with credentials set and every delay at zero."""
    return Settings(
        database_url="sqlite://",
        scraper=ScrapeClientConfig(
            base_url="https://scraper.test/v2",
            username="user",
            password="pass",
            retry_delay_seconds=1.0,
            retry_jitter_seconds=0.0,
            max_retries=2,
        ),
        discovery=DiscoveryConfig(
            politeness_delay_seconds=0,
            evaluation_batch_delay_seconds=0,
        ),
        evaluator=EvaluatorConfig(api_key="test-key", base_delay_seconds=0),
        scheduler=SchedulerConfig(enabled=False),
        seed_communities=seeds,
    )


@pytest.fixture
def store(session_factory, settings, clock):
    return TrendStore(session_factory, settings.lifecycle, clock=clock)


@pytest.fixture
def registry(session_factory, seeds, clock):
    return CommunityRegistry(session_factory, seeds, clock=clock)


@pytest.fixture
def mock_scrape_client(settings):
    """Factory for a ScrapeClient over httpx.MockTransport.

    Returns (client, sleeps) where sleeps records every backoff delay.
    """
    clients = []

    def factory(handler, config=None):
        sleeps: list[float] = []
        client = ScrapeClient(
            config or settings.scraper,
            transport=httpx.MockTransport(handler),
            sleep=sleeps.append,
        )
        clients.append(client)
        return client, sleeps

    yield factory
    for client in clients:
        client.close()
