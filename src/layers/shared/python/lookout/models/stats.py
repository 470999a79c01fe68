"""Request and result models for reporting queries."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel as PydanticBaseModel, Field, field_validator, model_validator

DIRECT_REFERRER_LABEL = "(direct)"
UNKNOWN_COUNTRY_LABEL = "Unknown"


class TimeBucket(str, Enum):
    """Granularity of a time series."""

    DAILY = "daily"
    HOURLY = "hourly"


class TimeRange(PydanticBaseModel):
    """Inclusive reporting window."""

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Treat naive datetimes as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @model_validator(mode="after")
    def check_order(self) -> "TimeRange":
        """Reject windows that end before they start."""
        if self.end < self.start:
            raise ValueError("end must not be earlier than start")
        return self

    def contains(self, value: datetime) -> bool:
        """Check whether a timestamp falls inside the window."""
        return self.start <= value <= self.end


class StatsFilter(PydanticBaseModel):
    """Optional dimensional constraints applied to every statistic.

    ``None`` means "no constraint". A list holds the accepted values; for
    ``referrer`` the empty string selects direct traffic, and for
    ``country`` the value ``"Unknown"`` also matches sessions without a
    resolved country.
    """

    referrer: list[str] | None = None
    device: list[str] | None = None
    page: list[str] | None = None
    country: list[str] | None = None

    @field_validator("referrer", "device", "page", "country", mode="before")
    @classmethod
    def wrap_single_value(cls, v):
        """Accept a bare string as a one-element list."""
        if isinstance(v, str):
            return [v]
        return v

    @property
    def is_empty(self) -> bool:
        """True when no dimension is constrained."""
        return all(
            value is None for value in (self.referrer, self.device, self.page, self.country)
        )


class PageStats(PydanticBaseModel):
    """Views and visitors for one path."""

    path: str
    views: int = 0
    visitors: int = 0


class ReferrerStats(PydanticBaseModel):
    """Visitors arriving from one referrer."""

    referrer: str
    visitors: int = 0


class BrowserStats(PydanticBaseModel):
    """Visitors per browser."""

    browser: str
    visitors: int = 0


class DeviceStats(PydanticBaseModel):
    """Visitors per device class."""

    device: str
    visitors: int = 0


class CountryStats(PydanticBaseModel):
    """Visitors per country."""

    country: str
    visitors: int = 0


class DailyStats(PydanticBaseModel):
    """Totals for one series bucket.

    ``date`` is ``YYYY-MM-DD`` for daily buckets and ``YYYY-MM-DDTHH:00`` for
    hourly ones.
    """

    date: str
    visitors: int = 0
    page_views: int = 0
    sessions: int = 0


class Stats(PydanticBaseModel):
    """Summary statistics for one site, window and filter.

    Every field has a default so a failed sub-aggregate can simply be left
    out when the result is assembled.
    """

    visitors: int = 0
    page_views: int = 0
    sessions: int = 0
    bounce_rate: float = 0.0
    avg_duration: float = 0.0
    top_pages: list[PageStats] = Field(default_factory=list)
    top_referrers: list[ReferrerStats] = Field(default_factory=list)
    browsers: list[BrowserStats] = Field(default_factory=list)
    devices: list[DeviceStats] = Field(default_factory=list)
    countries: list[CountryStats] = Field(default_factory=list)
    bucket: TimeBucket = TimeBucket.DAILY
    daily: list[DailyStats] = Field(default_factory=list)
    hourly: list[DailyStats] = Field(default_factory=list)


class ActivePageStats(PydanticBaseModel):
    """Visitors currently on a path."""

    path: str
    visitors: int = 0


class EventCount(PydanticBaseModel):
    """Occurrences of one named event."""

    name: str
    count: int = 0


BreakdownRow = PageStats | ReferrerStats | BrowserStats | DeviceStats | CountryStats


class Breakdown(PydanticBaseModel):
    """One page of a ranked breakdown with totals across every row."""

    dimension: str
    items: list[BreakdownRow] = Field(default_factory=list)
    total: int = 0
    total_visitors: int = 0
