"""Emerging Trends API routes."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from data_models.discovery import DiscoveryOptions
from data_models.emerging_trend import EmergingTrend
from data_models.signals import Platform, VelocityTier
from data_models.velocity_config import DEFAULT_VELOCITY_PRESET, VelocityPreset
from services.emerging_trends import EmergingTrendsService, build_service
from services.trend_store import TrendNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()

GROUPED_TIERS = [VelocityTier.EXPLODING, VelocityTier.RISING, VelocityTier.STEADY]

_service: EmergingTrendsService | None = None


def get_service() -> EmergingTrendsService:
    """Shared service instance, built from settings on first use."""
    global _service
    if _service is None:
        _service = build_service()
    return _service


class DiscoverRequest(BaseModel):
    """Request body for a discovery run."""

    platforms: Optional[list[Platform]] = None
    velocity_preset: Optional[VelocityPreset] = None
    max_signals: Optional[int] = Field(None, gt=0, description="Cap on total signals scraped")
    include_evaluations: bool = True


class MarkUsedRequest(BaseModel):
    """Request body for marking a trend as used."""

    trend_id: str
    design_id: Optional[str] = None


def _discovery_options(request: DiscoverRequest) -> DiscoveryOptions:
    options = {"include_evaluations": request.include_evaluations}
    if request.platforms:
        options["platforms"] = request.platforms
    if request.velocity_preset:
        options["velocity_preset"] = request.velocity_preset
    if request.max_signals:
        options["max_total_signals"] = request.max_signals
    return DiscoveryOptions(**options)


def _group_by_tier(trends: list[EmergingTrend]) -> dict[str, list[dict]]:
    grouped = {tier.value: [] for tier in GROUPED_TIERS}
    for trend in trends:
        if trend.velocity_tier in grouped:
            grouped[trend.velocity_tier].append(trend.model_dump(mode="json"))
    return grouped


@router.post("/emerging-trends/discover")
def run_discovery(
    request: DiscoverRequest,
    service: EmergingTrendsService = Depends(get_service),
):
    """Run one discovery cycle.

    Scrapes due communities, scores and stores signals, then evaluates the
    best candidates into trends.
    """
    if not service.scrape_client.is_configured():
        raise HTTPException(status_code=503, detail="Scrape API credentials not configured")

    result = service.discover(_discovery_options(request))
    logger.info(
        f"Discovery via API: {result.signals_stored} signals stored, "
        f"{result.trends_created} trends created"
    )

    return {
        "success": result.success,
        "data": {
            "signals_found": result.signals_found,
            "signals_stored": result.signals_stored,
            "trends_evaluated": result.trends_evaluated,
            "trends_created": result.trends_created,
            "duration_ms": result.duration_ms,
        },
        "errors": result.errors,
    }


@router.get("/emerging-trends/discover")
async def discovery_status(service: EmergingTrendsService = Depends(get_service)):
    """Health of the pipeline and the options a discovery run accepts."""
    health = service.check_health()
    return {
        "status": "ready" if health.scraper_configured else "not_configured",
        "health": health.model_dump(),
        "config": {
            "available_platforms": [p.value for p in Platform],
            "available_presets": [p.value for p in VelocityPreset],
            "default_preset": DEFAULT_VELOCITY_PRESET.value,
        },
    }


@router.get("/emerging-trends/signals")
async def get_active_trends(
    limit: int = Query(50, ge=1, le=200, description="Maximum trends to return"),
    min_viability: Optional[float] = Query(None, ge=0, le=1, description="Minimum merch viability"),
    amazon_safe_only: bool = Query(True, description="Only Amazon-safe trends"),
    unused_only: bool = Query(False, description="Only trends not yet used in a design"),
    service: EmergingTrendsService = Depends(get_service),
):
    """Get active emerging trends, best velocity first."""
    trends = service.store.get_active_trends(
        limit=limit,
        min_viability=min_viability,
        amazon_safe_only=amazon_safe_only,
        unused_only=unused_only,
    )

    return {
        "success": True,
        "data": {
            "trends": [t.model_dump(mode="json") for t in trends],
            "grouped": _group_by_tier(trends),
            "total": len(trends),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }


@router.post("/emerging-trends/signals")
async def mark_trend_used(
    request: MarkUsedRequest,
    service: EmergingTrendsService = Depends(get_service),
):
    """Mark a trend as used in a design."""
    try:
        trend = service.store.mark_trend_used(request.trend_id, request.design_id)
    except TrendNotFoundError:
        raise HTTPException(status_code=404, detail="Trend not found")

    return {"success": True, "data": trend.model_dump(mode="json")}
