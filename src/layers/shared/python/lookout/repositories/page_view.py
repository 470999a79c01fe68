"""Page view repository."""

from datetime import datetime

from lookout.models.base import sort_key_timestamp
from lookout.models.page_view import PageView
from lookout.repositories.base import SK_RANGE_END_SUFFIX, BaseRepository


class PageViewRepository(BaseRepository[PageView]):
    """Repository for PageView entities. Rows are written once and never updated."""

    def __init__(self, table_name: str | None = None):
        """Initialize page view repository."""
        super().__init__(PageView, table_name)

    def create_page_view(self, page_view: PageView) -> PageView:
        """Persist a new page view."""
        return self.put(page_view)

    def list_between(self, site_id: str, start: datetime, end: datetime) -> list[PageView]:
        """List page views created in [start, end], oldest first."""
        return self.query_all_between(
            pk=f"SITE#{site_id}#PAGEVIEWS",
            sk_start=sort_key_timestamp(start),
            sk_end=sort_key_timestamp(end) + SK_RANGE_END_SUFFIX,
        )

    def find_recent(
        self,
        site_id: str,
        session_id: str,
        path: str,
        since: datetime,
        until: datetime,
    ) -> PageView | None:
        """Find a page view of ``path`` in a session within [since, until]."""
        for page_view in self.list_between(site_id, since, until):
            if page_view.session_id == session_id and page_view.path == path:
                return page_view
        return None
