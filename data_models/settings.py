"""Settings for the emerging trends pipeline.

Defaults are declared once on the models below. A YAML file
(configs/emerging_trends.yaml) can override any section, and secrets come
from the environment (.env is loaded via python-dotenv).
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from data_models.community import CommunityCategory, SeedCommunity
from data_models.signals import Platform, VelocityTier
from data_models.velocity_config import (
    VELOCITY_PRESETS,
    ScoringConfig,
    SizeFactorConfig,
    VelocityConfig,
    VelocityPreset,
)

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "configs" / "emerging_trends.yaml"


class ScrapeClientConfig(BaseModel):
    """Connection and retry policy for the scraping API."""

    base_url: str = "https://scraper-api.decodo.com/v2"
    username: str = ""
    password: str = ""
    timeout_seconds: float = 150.0
    max_retries: int = Field(3, ge=0)
    retry_delay_seconds: float = 2.0
    retry_jitter_seconds: float = 1.0
    user_agent: str = "EmergingTrends/1.0"

    @property
    def is_configured(self) -> bool:
        return bool(self.username and self.password)


class DiscoveryConfig(BaseModel):
    """Limits and pacing for one discovery run."""

    max_communities_per_run: int = 20
    max_signals_per_community: int = 50
    max_total_signals: int = 500
    min_hours_between_scrapes: float = 12
    max_signals_to_evaluate: int = 50
    evaluation_batch_size: int = Field(5, gt=0)
    evaluation_batch_delay_seconds: float = 0.5
    politeness_delay_seconds: float = 0.5
    reddit_sort: str = "hot"

    # Per-community lease so overlapping runs never scrape the same community
    lease_ttl_minutes: float = 30
    # Stop scraping new communities after this many seconds (None = no limit)
    max_run_seconds: float | None = None

    # Best-effort growth of the community set from scraped text
    expansion_enabled: bool = False
    max_expansions_per_community: int = 5


class TrendLifecycleConfig(BaseModel):
    """How long trends live and how good they must be."""

    expiration_hours: int = 336
    min_merch_viability: float = 0.6
    default_min_viability: float = 0.5


class EvaluatorConfig(BaseModel):
    """LLM judge settings."""

    api_key: str = ""
    model: str = "mistral-small-latest"
    max_tokens: int = 1024
    temperature: float = 0.4
    max_retries: int = 3
    base_delay_seconds: float = 0.5
    content_chars: int = 500
    min_viable_tier: VelocityTier = VelocityTier.STEADY

    class Config:
        use_enum_values = True


class PrefilterConfig(BaseModel):
    """Cheap deterministic gate applied before any evaluator call."""

    trademark_terms: list[str] = Field(
        default_factory=lambda: [
            "disney", "marvel", "nike", "apple", "google", "microsoft", "pokemon", "anime",
        ]
    )
    political_terms: list[str] = Field(
        default_factory=lambda: [
            "trump", "biden", "republican", "democrat", "election", "congress",
        ]
    )
    news_phrases: list[str] = Field(
        default_factory=lambda: [
            "breaking news", "just announced", "today's", "this week's",
        ]
    )
    min_title_length: int = 10


def _seed(name: str, category: CommunityCategory, merch_potential: float) -> SeedCommunity:
    return SeedCommunity(
        platform=Platform.REDDIT,
        name=name,
        category=category,
        merch_potential=merch_potential,
    )


C = CommunityCategory

SEED_COMMUNITIES: list[SeedCommunity] = [
    # Hobbies & crafts
    _seed("crochet", C.CRAFTS, 0.9),
    _seed("knitting", C.CRAFTS, 0.9),
    _seed("woodworking", C.CRAFTS, 0.85),
    _seed("quilting", C.CRAFTS, 0.85),
    _seed("embroidery", C.CRAFTS, 0.8),
    # Outdoors
    _seed("kayakfishing", C.OUTDOORS, 0.9),
    _seed("flyfishing", C.OUTDOORS, 0.9),
    _seed("hiking", C.OUTDOORS, 0.85),
    _seed("camping", C.OUTDOORS, 0.85),
    _seed("kayaking", C.OUTDOORS, 0.8),
    _seed("hunting", C.OUTDOORS, 0.85),
    _seed("archery", C.OUTDOORS, 0.8),
    # Pets
    _seed("dogs", C.PETS, 0.9),
    _seed("cats", C.PETS, 0.9),
    _seed("goldenretrievers", C.PETS, 0.85),
    _seed("germanshepherds", C.PETS, 0.85),
    _seed("chickens", C.PETS, 0.8),
    _seed("beekeeping", C.PETS, 0.8),
    # Professions
    _seed("nursing", C.PROFESSION, 0.9),
    _seed("Teachers", C.PROFESSION, 0.9),
    _seed("Firefighting", C.PROFESSION, 0.85),
    _seed("ems", C.PROFESSION, 0.85),
    _seed("Truckers", C.PROFESSION, 0.85),
    _seed("electricians", C.PROFESSION, 0.8),
    _seed("plumbing", C.PROFESSION, 0.8),
    # Family
    _seed("daddit", C.FAMILY, 0.9),
    _seed("Mommit", C.FAMILY, 0.9),
    _seed("grandparents", C.FAMILY, 0.85),
    _seed("breakingmom", C.FAMILY, 0.8),
    # Food & drink
    _seed("Coffee", C.FOOD, 0.9),
    _seed("BBQ", C.FOOD, 0.85),
    _seed("Homebrewing", C.FOOD, 0.85),
    _seed("gardening", C.FOOD, 0.8),
    # Fitness
    _seed("running", C.FITNESS, 0.85),
    _seed("crossfit", C.FITNESS, 0.85),
    _seed("yoga", C.FITNESS, 0.8),
    _seed("powerlifting", C.FITNESS, 0.85),
    _seed("homegym", C.FITNESS, 0.8),
    # Gaming
    _seed("DnD", C.GAMING, 0.9),
    _seed("boardgames", C.GAMING, 0.85),
    _seed("retrogaming", C.GAMING, 0.8),
    # Music
    _seed("drums", C.MUSIC, 0.85),
    _seed("guitars", C.MUSIC, 0.85),
    _seed("vinyl", C.MUSIC, 0.8),
]

del C


class SchedulerConfig(BaseModel):
    """Periodic discovery job."""

    enabled: bool = True
    interval_minutes: int | None = 360
    cron: str | None = None
    timezone: str = "UTC"
    platforms: list[Platform] = Field(default_factory=lambda: [Platform.REDDIT])
    velocity_preset: VelocityPreset = VelocityPreset.MODERATE

    class Config:
        use_enum_values = True


class Settings(BaseModel):
    """All pipeline settings, built once per process and passed explicitly."""

    database_url: str = "sqlite:///./data/emerging_trends.db"
    scraper: ScrapeClientConfig = Field(default_factory=ScrapeClientConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    lifecycle: TrendLifecycleConfig = Field(default_factory=TrendLifecycleConfig)
    evaluator: EvaluatorConfig = Field(default_factory=EvaluatorConfig)
    prefilter: PrefilterConfig = Field(default_factory=PrefilterConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    size_factor: SizeFactorConfig = Field(default_factory=SizeFactorConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    velocity_presets: dict[str, VelocityConfig] = Field(
        default_factory=lambda: {p.value: c for p, c in VELOCITY_PRESETS.items()}
    )
    seed_communities: list[SeedCommunity] = Field(default_factory=lambda: list(SEED_COMMUNITIES))

    def velocity_config(self, preset: VelocityPreset | str) -> VelocityConfig:
        """Thresholds for a preset name.

        Raises:
            ValueError: If the preset is unknown
        """
        name = preset.value if isinstance(preset, VelocityPreset) else str(preset)
        if name not in self.velocity_presets:
            raise ValueError(f"Unknown velocity preset: {name}")
        return self.velocity_presets[name]


# Environment variable -> (section, key); section None means top level
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "DATABASE_URL": (None, "database_url"),
    "SCRAPER_API_BASE_URL": ("scraper", "base_url"),
    "SCRAPER_API_USERNAME": ("scraper", "username"),
    "SCRAPER_API_PASSWORD": ("scraper", "password"),
    "MISTRAL_API_KEY": ("evaluator", "api_key"),
    "MISTRAL_MODEL": ("evaluator", "model"),
    "SCHEDULER_ENABLED": ("scheduler", "enabled"),
}


def _load_yaml(config_path: Path) -> dict[str, Any]:
    """Read the YAML settings file, returning {} when it is missing."""
    try:
        with open(config_path, "r") as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning(f"Config not found at {config_path}, using defaults")
        return {}


def _apply_env(raw: dict[str, Any], env: dict[str, str]) -> dict[str, Any]:
    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if not value:
            continue
        if section is None:
            raw[key] = value
        else:
            raw.setdefault(section, {})
            raw[section][key] = value
    return raw


def load_settings(
    config_path: str | Path | None = None,
    env: dict[str, str] | None = None,
) -> Settings:
    """Build Settings from the YAML file and the environment.

    Args:
        config_path: YAML file to read (defaults to configs/emerging_trends.yaml)
        env: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings
    """
    raw = _load_yaml(Path(config_path) if config_path else DEFAULT_CONFIG_PATH)
    raw = _apply_env(raw, dict(os.environ) if env is None else env)
    return Settings.model_validate(raw)


# Process-wide instance for entry points (API, scheduler, scripts)
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the process-wide Settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
