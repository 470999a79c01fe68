"""Session model for visitor activity windows.

A session is one visitor's continuous activity on a site. It is created by
the first page view from a fingerprint with no active session and extended
by every later ping inside the session window.

DynamoDB keys:
    PK: SITE#{site_id}#SESSIONS
    SK: {started_at}#{id}
    GSI1PK: SITE#{site_id}#VISITOR#{visitor_id}
    GSI1SK: {last_seen_at}

GSI1 is ordered by last activity so the active session for a visitor is the
first item of a descending query.
"""

from datetime import datetime

from pydantic import Field, computed_field, model_validator

from lookout.models.base import BaseModel, sort_key_timestamp, utc_now


class Session(BaseModel):
    """One visitor's continuous activity on a site."""

    site_id: str
    visitor_id: str

    started_at: datetime = Field(default_factory=utc_now)
    last_seen_at: datetime = Field(default_factory=utc_now)

    entry_path: str = "/"
    exit_path: str = "/"

    # Attribution (set once, at creation)
    referrer: str = ""
    utm_source: str = ""
    utm_medium: str = ""
    utm_campaign: str = ""

    # Client classification
    device: str = ""
    browser: str = ""
    os: str = ""
    screen_size: str = ""
    country: str = ""

    page_view_count: int = Field(default=1, ge=0)
    duration: int = Field(default=0, ge=0, description="Seconds between start and last activity")

    @computed_field
    @property
    def bounce(self) -> bool:
        """A session with at most one page view is a bounce."""
        return self.page_view_count <= 1

    @model_validator(mode="after")
    def check_times(self) -> "Session":
        """Ensure last activity never precedes the session start."""
        if self.last_seen_at < self.started_at:
            raise ValueError("last_seen_at must not be earlier than started_at")
        return self

    def touch(self, now: datetime, path: str | None = None, page_view: bool = True) -> None:
        """Record activity on this session.

        ``last_seen_at`` only moves forward and ``duration`` is recomputed
        from it, so neither decreases on out-of-order pings.

        Args:
            now: Time of the ping.
            path: Path of the ping; becomes the exit path when given.
            page_view: Whether the ping is a page view (counts towards bounce).
        """
        if now > self.last_seen_at:
            self.last_seen_at = now
        elapsed = int((self.last_seen_at - self.started_at).total_seconds())
        self.duration = max(self.duration, elapsed)
        if path:
            self.exit_path = path
        if page_view:
            self.page_view_count += 1

    def get_pk(self) -> str:
        """Get partition key: SITE#{site_id}#SESSIONS."""
        return f"SITE#{self.site_id}#SESSIONS"

    def get_sk(self) -> str:
        """Get sort key ordered by start time."""
        return f"{sort_key_timestamp(self.started_at)}#{self.id}"

    def get_gsi1_keys(self) -> dict[str, str]:
        """Get GSI1 keys for active-session lookup by visitor."""
        return {
            "GSI1PK": f"SITE#{self.site_id}#VISITOR#{self.visitor_id}",
            "GSI1SK": sort_key_timestamp(self.last_seen_at),
        }
