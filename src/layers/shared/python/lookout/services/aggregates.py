"""Filtered aggregation over sessions and page views.

A stats request loads one window of sessions and page views, narrows both
with the caller's filter into a single ``RowSet``, and then runs a fixed list
of pure aggregates over that row set. Every number in a response therefore
comes from the same rows. Each aggregate is named and carries defaults for
the fields it produces, so the service can drop a failed one without losing
the rest.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable

from lookout.models.page_view import PageView
from lookout.models.session import Session
from lookout.models.stats import (
    DIRECT_REFERRER_LABEL,
    UNKNOWN_COUNTRY_LABEL,
    BrowserStats,
    CountryStats,
    DailyStats,
    DeviceStats,
    PageStats,
    ReferrerStats,
    StatsFilter,
    TimeBucket,
    TimeRange,
)

OTHER_LABEL = "Other"


@dataclass(frozen=True)
class RowSet:
    """Filtered rows shared by every aggregate of one stats call."""

    time_range: TimeRange
    sessions: list[Session] = field(default_factory=list)
    page_views: list[PageView] = field(default_factory=list)
    row_limit: int = 10
    bucket: TimeBucket = TimeBucket.DAILY


def _country_matches(country: str, accepted: list[str]) -> bool:
    # "Unknown" in a filter also selects rows with no resolved country
    return country in accepted or (not country and UNKNOWN_COUNTRY_LABEL in accepted)


def _snapshot_matches(referrer: str, device: str, country: str, stats_filter: StatsFilter) -> bool:
    if stats_filter.referrer is not None and referrer not in stats_filter.referrer:
        return False
    if stats_filter.device is not None and device not in stats_filter.device:
        return False
    if stats_filter.country is not None and not _country_matches(country, stats_filter.country):
        return False
    return True


def filter_page_views(page_views: Iterable[PageView], stats_filter: StatsFilter) -> list[PageView]:
    """Keep page views on a filtered page whose session snapshot matches."""
    result = []
    for pv in page_views:
        if stats_filter.page is not None and pv.path not in stats_filter.page:
            continue
        if _snapshot_matches(pv.referrer, pv.device, pv.country, stats_filter):
            result.append(pv)
    return result


def filter_sessions(
    sessions: Iterable[Session],
    page_views: Iterable[PageView],
    stats_filter: StatsFilter,
) -> list[Session]:
    """Keep sessions matching the filter.

    With a page filter, a session matches only if one of ``page_views``
    (already limited to the time range) belongs to it and is on a filtered
    page.
    """
    sessions_on_page: set[str] | None = None
    if stats_filter.page is not None:
        sessions_on_page = {pv.session_id for pv in page_views if pv.path in stats_filter.page}

    result = []
    for session in sessions:
        if sessions_on_page is not None and session.id not in sessions_on_page:
            continue
        if _snapshot_matches(session.referrer, session.device, session.country, stats_filter):
            result.append(session)
    return result


def build_row_set(
    sessions: list[Session],
    page_views: list[PageView],
    time_range: TimeRange,
    stats_filter: StatsFilter | None = None,
    row_limit: int = 10,
    bucket: TimeBucket = TimeBucket.DAILY,
) -> RowSet:
    """Apply a filter to freshly loaded rows.

    Rows outside the time range are dropped as well, so callers may pass
    over-fetched data.
    """
    stats_filter = stats_filter or StatsFilter()
    sessions = [s for s in sessions if time_range.contains(s.started_at)]
    page_views = [pv for pv in page_views if time_range.contains(pv.created_at)]
    return RowSet(
        time_range=time_range,
        sessions=filter_sessions(sessions, page_views, stats_filter),
        page_views=filter_page_views(page_views, stats_filter),
        row_limit=row_limit,
        bucket=bucket,
    )


def _ranked(counts: dict[str, int], limit: int | None = None) -> list[tuple[str, int]]:
    # sorted() is stable, so ties keep first-seen order
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]


def _visitors_by(rows: Iterable[Any], label: Callable[[Any], str]) -> dict[str, int]:
    visitors: dict[str, set[str]] = {}
    for row in rows:
        visitors.setdefault(label(row), set()).add(row.visitor_id)
    return {key: len(ids) for key, ids in visitors.items()}


# ----------------------------------------------------------------------
# Ranked breakdowns
# ----------------------------------------------------------------------


def rank_pages(rows: RowSet, limit: int | None = None) -> list[PageStats]:
    """Paths ranked by views, with distinct visitors per path."""
    views = Counter(pv.path for pv in rows.page_views)
    visitors = _visitors_by(rows.page_views, lambda pv: pv.path)
    return [
        PageStats(path=path, views=count, visitors=visitors.get(path, 0))
        for path, count in _ranked(dict(views), limit)
    ]


def rank_referrers(rows: RowSet, limit: int | None = None) -> list[ReferrerStats]:
    """Referrers ranked by visitors; empty referrers are direct traffic."""
    counts = _visitors_by(rows.sessions, lambda s: s.referrer or DIRECT_REFERRER_LABEL)
    return [ReferrerStats(referrer=r, visitors=c) for r, c in _ranked(counts, limit)]


def rank_browsers(rows: RowSet, limit: int | None = None) -> list[BrowserStats]:
    counts = _visitors_by(rows.sessions, lambda s: s.browser or OTHER_LABEL)
    return [BrowserStats(browser=b, visitors=c) for b, c in _ranked(counts, limit)]


def rank_devices(rows: RowSet, limit: int | None = None) -> list[DeviceStats]:
    counts = _visitors_by(rows.sessions, lambda s: s.device or OTHER_LABEL)
    return [DeviceStats(device=d, visitors=c) for d, c in _ranked(counts, limit)]


def rank_countries(rows: RowSet, limit: int | None = None) -> list[CountryStats]:
    """Countries ranked by visitors; unresolved countries are "Unknown"."""
    counts = _visitors_by(rows.sessions, lambda s: s.country or UNKNOWN_COUNTRY_LABEL)
    return [CountryStats(country=k, visitors=c) for k, c in _ranked(counts, limit)]


BREAKDOWNS: dict[str, Callable[..., list]] = {
    "pages": rank_pages,
    "referrers": rank_referrers,
    "browsers": rank_browsers,
    "devices": rank_devices,
    "countries": rank_countries,
}


# ----------------------------------------------------------------------
# Aggregates
# ----------------------------------------------------------------------


def totals(rows: RowSet) -> dict[str, Any]:
    """Distinct visitors, page views and sessions."""
    visitor_ids = {s.visitor_id for s in rows.sessions}
    visitor_ids.update(pv.visitor_id for pv in rows.page_views)
    return {
        "visitors": len(visitor_ids),
        "page_views": len(rows.page_views),
        "sessions": len(rows.sessions),
    }


def bounce_rate(rows: RowSet) -> dict[str, Any]:
    """Percentage of sessions that bounced; 0 with no sessions."""
    if not rows.sessions:
        return {"bounce_rate": 0.0}
    bounced = sum(1 for s in rows.sessions if s.bounce)
    return {"bounce_rate": round(bounced * 100.0 / len(rows.sessions), 2)}


def avg_duration(rows: RowSet) -> dict[str, Any]:
    """Mean duration in seconds of sessions that did not bounce.

    Exactly 0.0 when every session bounced or there are none.
    """
    durations = [s.duration for s in rows.sessions if not s.bounce]
    if not durations:
        return {"avg_duration": 0.0}
    return {"avg_duration": round(sum(durations) / len(durations), 2)}


def top_pages(rows: RowSet) -> dict[str, Any]:
    """Most viewed paths with their view and visitor counts."""
    return {"top_pages": rank_pages(rows, rows.row_limit)}


def top_referrers(rows: RowSet) -> dict[str, Any]:
    return {"top_referrers": rank_referrers(rows, rows.row_limit)}


def browsers(rows: RowSet) -> dict[str, Any]:
    return {"browsers": rank_browsers(rows, rows.row_limit)}


def devices(rows: RowSet) -> dict[str, Any]:
    return {"devices": rank_devices(rows, rows.row_limit)}


def countries(rows: RowSet) -> dict[str, Any]:
    return {"countries": rank_countries(rows, rows.row_limit)}


def _day_label(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def _hour_label(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:00")


def _series(
    rows: RowSet,
    first: date,
    last: date,
    step: timedelta,
    label: Callable[[Any], str],
) -> list[DailyStats]:
    """Zero-filled buckets from ``first`` to ``last``, keyed by ``label``."""
    buckets: dict[str, dict[str, Any]] = {}
    point = first
    while point <= last:
        buckets[label(point)] = {"visitors": set(), "page_views": 0, "sessions": 0}
        point += step

    for session in rows.sessions:
        bucket = buckets.get(label(session.started_at))
        if bucket is not None:
            bucket["sessions"] += 1
            bucket["visitors"].add(session.visitor_id)

    for pv in rows.page_views:
        bucket = buckets.get(label(pv.created_at))
        if bucket is not None:
            bucket["page_views"] += 1
            bucket["visitors"].add(pv.visitor_id)

    return [
        DailyStats(
            date=key,
            visitors=len(bucket["visitors"]),
            page_views=bucket["page_views"],
            sessions=bucket["sessions"],
        )
        for key, bucket in buckets.items()
    ]


def daily(rows: RowSet) -> dict[str, Any]:
    """Per-day visitors, page views and sessions, zero-filled over the range."""
    start, end = rows.time_range.start, rows.time_range.end
    return {"daily": _series(rows, start.date(), end.date(), timedelta(days=1), _day_label)}


def hourly(rows: RowSet) -> dict[str, Any]:
    """Per-hour series, computed only when the row set asks for hourly buckets."""
    if rows.bucket != TimeBucket.HOURLY:
        return {"hourly": []}
    start = rows.time_range.start.replace(minute=0, second=0, microsecond=0)
    return {"hourly": _series(rows, start, rows.time_range.end, timedelta(hours=1), _hour_label)}


@dataclass(frozen=True)
class Aggregate:
    """A named, independently failable part of a stats response."""

    name: str
    compute: Callable[[RowSet], dict[str, Any]]
    defaults: Callable[[], dict[str, Any]]


AGGREGATES: tuple[Aggregate, ...] = (
    Aggregate("totals", totals, lambda: {"visitors": 0, "page_views": 0, "sessions": 0}),
    Aggregate("bounce_rate", bounce_rate, lambda: {"bounce_rate": 0.0}),
    Aggregate("avg_duration", avg_duration, lambda: {"avg_duration": 0.0}),
    Aggregate("top_pages", top_pages, lambda: {"top_pages": []}),
    Aggregate("top_referrers", top_referrers, lambda: {"top_referrers": []}),
    Aggregate("browsers", browsers, lambda: {"browsers": []}),
    Aggregate("devices", devices, lambda: {"devices": []}),
    Aggregate("countries", countries, lambda: {"countries": []}),
    Aggregate("daily", daily, lambda: {"daily": []}),
    Aggregate("hourly", hourly, lambda: {"hourly": []}),
)
