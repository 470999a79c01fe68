"""Session repository."""

from datetime import datetime

from lookout.models.base import sort_key_timestamp
from lookout.models.session import Session
from lookout.repositories.base import SK_RANGE_END_SUFFIX, BaseRepository


class SessionRepository(BaseRepository[Session]):
    """Repository for Session entities."""

    def __init__(self, table_name: str | None = None):
        """Initialize session repository."""
        super().__init__(Session, table_name)

    def find_active(self, site_id: str, visitor_id: str, since: datetime) -> Session | None:
        """Find the visitor's most recently active session.

        GSI1 is ordered by ``last_seen_at``, so the newest item wins when a
        race left more than one session in the window.

        Args:
            site_id: The site ID.
            visitor_id: Visitor fingerprint.
            since: Oldest ``last_seen_at`` still considered active.

        Returns:
            The active session, or None.
        """
        items, _ = self.query(
            pk=f"SITE#{site_id}#VISITOR#{visitor_id}",
            index_name="GSI1",
            limit=1,
            scan_forward=False,
        )
        if not items:
            return None
        session = items[0]
        if session.last_seen_at < since:
            return None
        return session

    def save(self, session: Session) -> Session:
        """Create or overwrite a session.

        Keys derive from ``started_at`` and ``id``, which never change, so
        an update overwrites the same row and refreshes its GSI1 sort key.
        """
        return self.put(session)

    def list_started_between(self, site_id: str, start: datetime, end: datetime) -> list[Session]:
        """List sessions whose ``started_at`` falls in [start, end]."""
        return self.query_all_between(
            pk=f"SITE#{site_id}#SESSIONS",
            sk_start=sort_key_timestamp(start),
            sk_end=sort_key_timestamp(end) + SK_RANGE_END_SUFFIX,
        )
