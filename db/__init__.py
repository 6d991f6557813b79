"""Database layer for the emerging trends pipeline."""

from db.database import create_db_engine, create_session_factory, init_db
from db.models import (
    Base,
    DiscoveredCommunityModel,
    EmergingTrendModel,
    SocialSignalModel,
    VelocityConfigModel,
    utc_now,
)

__all__ = [
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "Base",
    "SocialSignalModel",
    "DiscoveredCommunityModel",
    "EmergingTrendModel",
    "VelocityConfigModel",
    "utc_now",
]
