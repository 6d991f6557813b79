"""EmergingTrend schema: the artifact handed to design generation."""

from datetime import datetime

from pydantic import BaseModel, Field

from data_models.evaluation import AudienceSize
from data_models.signals import VelocityTier


class EmergingTrend(BaseModel):
    """A viable, time-limited merch opportunity derived from one signal."""

    id: str
    signal_id: str

    topic: str
    phrases: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    audience: str = ""
    audience_profile: str | None = None
    audience_size: AudienceSize | None = None

    velocity_score: float = 0.0
    velocity_tier: VelocityTier = VelocityTier.NORMAL
    merch_viability: float = Field(..., ge=0, le=1)
    viability_reason: str | None = None

    amazon_safe: bool = False
    amazon_safe_notes: str | None = None

    suggested_styles: list[str] = Field(default_factory=list)
    color_hints: list[str] = Field(default_factory=list)
    mood_keywords: list[str] = Field(default_factory=list)
    design_notes: str | None = None

    # Lifecycle
    is_active: bool = True
    created_at: datetime | None = None
    expires_at: datetime | None = None
    deactivated_at: datetime | None = None
    deactivate_reason: str | None = None

    # Usage
    used_in_design: bool = False
    used_at: datetime | None = None
    design_id: str | None = None
    generation_count: int = 0

    # Source signal context
    community: str | None = None
    source_url: str | None = None

    class Config:
        use_enum_values = True
