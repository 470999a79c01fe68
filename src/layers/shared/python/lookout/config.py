"""Runtime configuration read from the Lambda environment."""

import os
from dataclasses import dataclass, field
from datetime import timedelta

DEFAULT_SESSION_WINDOW_MINUTES = 30
DEFAULT_PAGE_VIEW_DEDUP_SECONDS = 10
DEFAULT_GEOIP_DB_PATH = "/tmp/geoip/GeoLite2-Country.mmdb"
DEFAULT_GEOIP_RETRY_SECONDS = 60.0
DEFAULT_STATS_ROW_LIMIT = 10
DEFAULT_STATS_MAX_RANGE_DAYS = 400
DEFAULT_EVENTS_MAX_PAGE_SIZE = 100


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _geoip_mode() -> tuple[bool, bool]:
    """Read GEOIP_ENABLED as (enabled, auto).

    Unset or "auto" starts disabled and lets site settings switch GeoIP on;
    any other value pins it on or off.
    """
    value = (os.environ.get("GEOIP_ENABLED") or "auto").strip().lower()
    if value == "auto":
        return False, True
    return _env_bool("GEOIP_ENABLED", False), False


@dataclass(frozen=True)
class AnalyticsConfig:
    """Settings consumed by the analytics core."""

    table_name: str = field(default_factory=lambda: os.environ.get("TABLE_NAME", "lookout-dev"))
    session_window_minutes: int = DEFAULT_SESSION_WINDOW_MINUTES
    visitor_id_rotation: str = "daily"  # "daily" or "none"
    page_view_dedup_seconds: int = DEFAULT_PAGE_VIEW_DEDUP_SECONDS

    geoip_enabled: bool = False
    geoip_auto: bool = False
    geoip_db_path: str = DEFAULT_GEOIP_DB_PATH
    geoip_download_url: str = ""
    maxmind_license_key: str = ""
    geoip_download_timeout: float = 30.0
    geoip_retry_seconds: float = DEFAULT_GEOIP_RETRY_SECONDS

    stats_row_limit: int = DEFAULT_STATS_ROW_LIMIT
    stats_max_range_days: int = DEFAULT_STATS_MAX_RANGE_DAYS
    events_max_page_size: int = DEFAULT_EVENTS_MAX_PAGE_SIZE

    @property
    def session_window(self) -> timedelta:
        """Inactivity threshold after which a ping starts a new session."""
        return timedelta(minutes=self.session_window_minutes)

    @property
    def page_view_dedup_window(self) -> timedelta:
        """Repeat views of a path within this window are not recorded again."""
        return timedelta(seconds=self.page_view_dedup_seconds)

    @property
    def rotate_visitor_ids(self) -> bool:
        """Whether fingerprints include a daily component."""
        return self.visitor_id_rotation != "none"

    @classmethod
    def from_env(cls) -> "AnalyticsConfig":
        """Build config from environment variables."""
        geoip_enabled, geoip_auto = _geoip_mode()
        return cls(
            table_name=os.environ.get("TABLE_NAME", "lookout-dev"),
            session_window_minutes=max(
                1, _env_int("SESSION_WINDOW_MINUTES", DEFAULT_SESSION_WINDOW_MINUTES)
            ),
            visitor_id_rotation=os.environ.get("VISITOR_ID_ROTATION", "daily").strip().lower(),
            page_view_dedup_seconds=max(
                0, _env_int("PAGE_VIEW_DEDUP_SECONDS", DEFAULT_PAGE_VIEW_DEDUP_SECONDS)
            ),
            geoip_enabled=geoip_enabled,
            geoip_auto=geoip_auto,
            geoip_db_path=os.environ.get("GEOIP_DB_PATH", DEFAULT_GEOIP_DB_PATH),
            geoip_download_url=os.environ.get("GEOIP_DOWNLOAD_URL", ""),
            maxmind_license_key=os.environ.get("MAXMIND_LICENSE_KEY", ""),
            geoip_download_timeout=_env_float("GEOIP_DOWNLOAD_TIMEOUT", 30.0),
            geoip_retry_seconds=max(
                0.0, _env_float("GEOIP_RETRY_SECONDS", DEFAULT_GEOIP_RETRY_SECONDS)
            ),
            stats_row_limit=max(1, _env_int("STATS_ROW_LIMIT", DEFAULT_STATS_ROW_LIMIT)),
            stats_max_range_days=max(
                1, _env_int("STATS_MAX_RANGE_DAYS", DEFAULT_STATS_MAX_RANGE_DAYS)
            ),
            events_max_page_size=max(
                1, _env_int("EVENTS_MAX_PAGE_SIZE", DEFAULT_EVENTS_MAX_PAGE_SIZE)
            ),
        )
