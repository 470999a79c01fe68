"""Business logic services."""

from lookout.services.bot_detector import is_bot, is_prefetch_request
from lookout.services.geoip import CountryInfo, GeoIPResolver, GeoIPState, GeoIPStatus
from lookout.services.ingestion import IngestionService
from lookout.services.stats_service import StatsService
from lookout.services.tracker import UTM, SessionTracker

__all__ = [
    "is_bot",
    "is_prefetch_request",
    "CountryInfo",
    "GeoIPResolver",
    "GeoIPState",
    "GeoIPStatus",
    "IngestionService",
    "StatsService",
    "SessionTracker",
    "UTM",
]
