"""Discovery run options, results and health status."""

from pydantic import BaseModel, Field

from data_models.signals import Platform
from data_models.velocity_config import VelocityPreset


class DiscoveryOptions(BaseModel):
    """Options for a single discovery run.

    Unset limits fall back to the DiscoveryConfig defaults.
    """

    platforms: list[Platform] = Field(default_factory=lambda: [Platform.REDDIT])
    velocity_preset: VelocityPreset = VelocityPreset.MODERATE
    max_signals_per_community: int | None = Field(None, gt=0)
    max_total_signals: int | None = Field(None, gt=0)
    include_evaluations: bool = True

    class Config:
        use_enum_values = True


class DiscoveryResult(BaseModel):
    """Counts and errors gathered by a discovery run.

    success is False whenever errors is non-empty, but counts are usable
    either way.
    """

    success: bool
    signals_found: int = 0
    signals_stored: int = 0
    trends_evaluated: int = 0
    trends_created: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0


class HealthStatus(BaseModel):
    """Readiness of the pipeline's collaborators."""

    scraper_configured: bool
    evaluator_configured: bool
    store_connected: bool
    errors: list[str] = Field(default_factory=list)

    @property
    def ready(self) -> bool:
        return not self.errors
