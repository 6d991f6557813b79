"""Viability evaluation schema returned by the LLM judge."""

from enum import Enum

from pydantic import BaseModel, Field


class AudienceSize(str, Enum):
    """Rough size bucket of a topic's audience."""

    MICRO = "micro"
    NICHE = "niche"
    MEDIUM = "medium"
    LARGE = "large"
    MASSIVE = "massive"


class ViabilityEvaluation(BaseModel):
    """Structured verdict on a signal's merch potential."""

    is_viable: bool
    viability_score: float = Field(..., ge=0, le=1)
    viability_reason: str = ""

    # Extracted topic
    topic: str = ""
    phrases: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)

    # Audience
    audience: str = ""
    audience_profile: str = ""
    audience_size: AudienceSize = AudienceSize.MEDIUM

    # Safety
    amazon_safe: bool = False
    amazon_safe_notes: str | None = None

    # Design hints
    suggested_styles: list[str] = Field(default_factory=list)
    color_hints: list[str] = Field(default_factory=list)
    mood_keywords: list[str] = Field(default_factory=list)
    design_notes: str | None = None

    class Config:
        use_enum_values = True
