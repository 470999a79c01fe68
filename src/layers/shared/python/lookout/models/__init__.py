"""Pydantic models for Lookout entities."""

from lookout.models.base import BaseModel, generate_ulid, sort_key_timestamp, utc_now
from lookout.models.event import Event, EventDefinition, EventField, FieldType, PropertyValue
from lookout.models.ingestion import ClientContext, CollectRequest
from lookout.models.page_view import PageView
from lookout.models.session import Session
from lookout.models.site import Site
from lookout.models.stats import (
    ActivePageStats,
    Breakdown,
    BrowserStats,
    CountryStats,
    DailyStats,
    DeviceStats,
    EventCount,
    PageStats,
    ReferrerStats,
    Stats,
    StatsFilter,
    TimeBucket,
    TimeRange,
)

__all__ = [
    "BaseModel",
    "generate_ulid",
    "sort_key_timestamp",
    "utc_now",
    "Event",
    "EventDefinition",
    "EventField",
    "FieldType",
    "PropertyValue",
    "ClientContext",
    "CollectRequest",
    "PageView",
    "Session",
    "Site",
    "ActivePageStats",
    "Breakdown",
    "BrowserStats",
    "CountryStats",
    "DailyStats",
    "DeviceStats",
    "EventCount",
    "PageStats",
    "ReferrerStats",
    "Stats",
    "StatsFilter",
    "TimeBucket",
    "TimeRange",
]
