"""Reporting queries for the dashboard.

Stats are best effort: the two row loads run in parallel and every aggregate
runs on its own, so a failed load or aggregate is logged and its fields fall
back to zero or empty. Only an unknown site fails the whole call.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Callable

import structlog

from lookout.config import AnalyticsConfig
from lookout.models.base import utc_now
from lookout.models.event import Event
from lookout.models.site import Site
from lookout.models.stats import (
    ActivePageStats,
    Breakdown,
    EventCount,
    Stats,
    StatsFilter,
    TimeBucket,
    TimeRange,
)
from lookout.repositories.event import EventRepository
from lookout.repositories.page_view import PageViewRepository
from lookout.repositories.session import SessionRepository
from lookout.repositories.site import SiteRepository
from lookout.services.aggregates import AGGREGATES, BREAKDOWNS, RowSet, build_row_set
from lookout.utils.exceptions import NotFoundError, ValidationError
from lookout.utils.pagination import clamp_pagination

logger = structlog.get_logger()

REALTIME_WINDOW = timedelta(minutes=5)


class StatsService:
    """Aggregated statistics and event listings for one site."""

    def __init__(
        self,
        sites: SiteRepository | None = None,
        sessions: SessionRepository | None = None,
        page_views: PageViewRepository | None = None,
        events: EventRepository | None = None,
        config: AnalyticsConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize stats service.

        Args:
            sites: Site repository.
            sessions: Session repository.
            page_views: Page view repository.
            events: Event repository.
            config: Runtime settings (row limit, page size).
            clock: Time source for realtime queries.
        """
        self.config = config or AnalyticsConfig()
        table_name = self.config.table_name
        self.sites = sites or SiteRepository(table_name)
        self.sessions = sessions or SessionRepository(table_name)
        self.page_views = page_views or PageViewRepository(table_name)
        self.events = events or EventRepository(table_name)
        self.clock = clock

    def get_site(self, site_id: str) -> Site:
        """Get a site or raise.

        Raises:
            NotFoundError: If the site does not exist.
        """
        site = self.sites.get_by_id(site_id)
        if site is None:
            raise NotFoundError("Site", site_id)
        return site

    def get_stats(
        self,
        site_id: str,
        time_range: TimeRange,
        stats_filter: StatsFilter | None = None,
        bucket: TimeBucket = TimeBucket.DAILY,
    ) -> Stats:
        """Compute summary statistics for a site.

        Args:
            site_id: The site ID.
            time_range: Reporting window.
            stats_filter: Optional dimensional filter.
            bucket: Granularity of the extra time series. The daily series
                is always present; ``hourly`` also fills ``Stats.hourly``.

        Returns:
            Stats with failed parts defaulted.

        Raises:
            NotFoundError: If the site does not exist.
        """
        self.get_site(site_id)
        rows = self._load_rows(site_id, time_range, stats_filter, bucket)

        fields: dict = {}
        for aggregate in AGGREGATES:
            try:
                fields.update(aggregate.compute(rows))
            except Exception as e:
                logger.error(
                    "Stats aggregate failed",
                    site_id=site_id,
                    aggregate=aggregate.name,
                    error=str(e),
                )
                fields.update(aggregate.defaults())

        return Stats(bucket=bucket, **fields)

    def get_breakdown(
        self,
        site_id: str,
        dimension: str,
        time_range: TimeRange,
        stats_filter: StatsFilter | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Breakdown:
        """Page through one ranked breakdown without the summary row limit.

        Args:
            site_id: The site ID.
            dimension: One of pages, referrers, browsers, devices, countries.
            time_range: Reporting window.
            stats_filter: Optional dimensional filter.
            limit: Page size, clamped to [1, 100].
            offset: Rows to skip, clamped to >= 0.

        Returns:
            The requested page plus the number of ranked rows and the sum
            of their visitor counts.

        Raises:
            ValidationError: If the dimension is unknown.
            NotFoundError: If the site does not exist.
        """
        rank = BREAKDOWNS.get(dimension)
        if rank is None:
            raise ValidationError(
                message=f"Unknown breakdown: {dimension}",
                errors=[{
                    "field": "dimension",
                    "message": f"Expected one of: {', '.join(BREAKDOWNS)}",
                }],
            )

        self.get_site(site_id)
        limit, offset = clamp_pagination(limit, offset)
        ranked = rank(self._load_rows(site_id, time_range, stats_filter))

        return Breakdown(
            dimension=dimension,
            items=ranked[offset : offset + limit],
            total=len(ranked),
            total_visitors=sum(row.visitors for row in ranked),
        )

    def _load_rows(
        self,
        site_id: str,
        time_range: TimeRange,
        stats_filter: StatsFilter | None = None,
        bucket: TimeBucket = TimeBucket.DAILY,
    ) -> RowSet:
        with ThreadPoolExecutor(max_workers=2) as pool:
            sessions_future = pool.submit(
                self.sessions.list_started_between, site_id, time_range.start, time_range.end
            )
            page_views_future = pool.submit(
                self.page_views.list_between, site_id, time_range.start, time_range.end
            )

            try:
                sessions = sessions_future.result()
            except Exception as e:
                logger.error("Failed to load sessions for stats", site_id=site_id, error=str(e))
                sessions = []

            try:
                page_views = page_views_future.result()
            except Exception as e:
                logger.error("Failed to load page views for stats", site_id=site_id, error=str(e))
                page_views = []

        return build_row_set(
            sessions,
            page_views,
            time_range,
            stats_filter,
            row_limit=self.config.stats_row_limit,
            bucket=bucket,
        )

    def list_events(
        self,
        site_id: str,
        time_range: TimeRange,
        limit: int | None = None,
        offset: int | None = None,
        name: str | None = None,
    ) -> tuple[list[Event], int]:
        """List custom events in a window, newest first.

        Args:
            site_id: The site ID.
            time_range: Reporting window.
            limit: Page size, clamped to [1, EVENTS_MAX_PAGE_SIZE].
            offset: Items to skip, clamped to >= 0.
            name: Only list events with this name.

        Returns:
            Tuple of (events on this page, total matching events).

        Raises:
            NotFoundError: If the site does not exist.
        """
        self.get_site(site_id)
        limit, offset = clamp_pagination(limit, offset, self.config.events_max_page_size)

        events = self.events.list_between(site_id, time_range.start, time_range.end, name=name)
        return events[offset : offset + limit], len(events)

    def get_event_counts(self, site_id: str, time_range: TimeRange) -> list[EventCount]:
        """Count events per name in a window, most frequent first."""
        self.get_site(site_id)
        events = self.events.list_between(site_id, time_range.start, time_range.end)

        counts: dict[str, int] = {}
        for event in events:
            counts[event.name] = counts.get(event.name, 0) + 1

        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        return [EventCount(name=name, count=count) for name, count in ranked]

    def get_realtime_visitors(self, site_id: str) -> int:
        """Count distinct visitors with a page view in the last five minutes."""
        page_views = self._recent_page_views(site_id)
        return len({pv.visitor_id for pv in page_views})

    def get_active_pages(self, site_id: str) -> list[ActivePageStats]:
        """Rank paths by visitors seen on them in the last five minutes."""
        visitors: dict[str, set[str]] = {}
        for pv in self._recent_page_views(site_id):
            visitors.setdefault(pv.path, set()).add(pv.visitor_id)

        ranked = sorted(visitors.items(), key=lambda item: len(item[1]), reverse=True)
        return [
            ActivePageStats(path=path, visitors=len(ids))
            for path, ids in ranked[: self.config.stats_row_limit]
        ]

    def _recent_page_views(self, site_id: str):
        now = self.clock()
        return self.page_views.list_between(site_id, now - REALTIME_WINDOW, now)
