"""Services for the emerging trends pipeline."""

from services.community_registry import CommunityRegistry
from services.emerging_trends import (
    EmergingTrendsService,
    build_service,
    check_emerging_trends_health,
    discover_emerging_trends,
)
from services.trend_store import (
    DuplicateTrendError,
    SignalNotFoundError,
    SignalUpsert,
    TrendNotFoundError,
    TrendStore,
    TrendStoreError,
)

__all__ = [
    "CommunityRegistry",
    "TrendStore",
    "SignalUpsert",
    "TrendStoreError",
    "SignalNotFoundError",
    "TrendNotFoundError",
    "DuplicateTrendError",
    "EmergingTrendsService",
    "build_service",
    "discover_emerging_trends",
    "check_emerging_trends_health",
]
