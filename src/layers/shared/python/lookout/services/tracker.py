"""Visitor and session tracking.

Turns raw page-view and event pings into sessions, page views and events.
The tracker raises on persistence failures; swallowing them is the job of
the ingestion boundary (``lookout.services.ingestion``).
"""

import ipaddress
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

import structlog

from lookout.config import AnalyticsConfig
from lookout.models.base import utc_now
from lookout.models.event import Event
from lookout.models.page_view import PageView
from lookout.models.session import Session
from lookout.models.site import Site
from lookout.repositories.event import EventDefinitionRepository, EventRepository
from lookout.repositories.page_view import PageViewRepository
from lookout.repositories.session import SessionRepository
from lookout.services.bot_detector import is_bot
from lookout.services.event_properties import sanitize_properties
from lookout.services.geoip import LOCAL_COUNTRY, UNKNOWN_COUNTRY, CountryInfo, GeoIPResolver
from lookout.services.visitor import (
    categorize_screen_size,
    normalize_referrer,
    parse_user_agent,
    visitor_fingerprint,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class UTM:
    """Campaign attribution taken from the landing URL."""

    source: str = ""
    medium: str = ""
    campaign: str = ""


def _normalize_ip(ip: str) -> str:
    try:
        return str(ipaddress.ip_address(ip.strip()))
    except ValueError:
        return ""


class SessionTracker:
    """Records page views and events against visitor sessions."""

    def __init__(
        self,
        sessions: SessionRepository | None = None,
        page_views: PageViewRepository | None = None,
        events: EventRepository | None = None,
        event_definitions: EventDefinitionRepository | None = None,
        geoip: GeoIPResolver | None = None,
        config: AnalyticsConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize tracker.

        Args:
            sessions: Session repository.
            page_views: Page view repository.
            events: Event repository.
            event_definitions: Event definition repository.
            geoip: Country resolver; None disables country lookups.
            config: Runtime settings (session window, visitor ID rotation).
            clock: Time source.
        """
        self.config = config or AnalyticsConfig()
        self.sessions = sessions or SessionRepository(self.config.table_name)
        self.page_views = page_views or PageViewRepository(self.config.table_name)
        self.events = events or EventRepository(self.config.table_name)
        self.event_definitions = event_definitions or EventDefinitionRepository(
            self.config.table_name
        )
        self.geoip = geoip
        self.clock = clock

    def record_page_view(
        self,
        site: Site,
        path: str,
        title: str = "",
        referrer: str = "",
        utm: UTM | None = None,
        screen_width: int = 0,
        user_agent: str = "",
        client_ip: str = "",
    ) -> PageView | None:
        """Record a page view, creating or extending the visitor's session.

        Args:
            site: Site the ping belongs to.
            path: Viewed path.
            title: Document title.
            referrer: Referrer reported by the browser.
            utm: Campaign parameters from the landing URL.
            screen_width: Viewport width in pixels.
            user_agent: Raw User-Agent header.
            client_ip: Client IP address.

        Returns:
            The stored page view, or None if the ping was filtered out or
            repeats a view of the same path in the same session within the
            dedup window.
        """
        if is_bot(user_agent):
            logger.debug("Ignoring bot page view", site_id=site.id)
            return None

        country = self._lookup_country(site, client_ip)
        if self._is_blocked(site, client_ip, country):
            logger.debug("Ignoring blocked page view", site_id=site.id)
            return None

        now = self.clock()
        visitor_id = self._fingerprint(site, client_ip, user_agent, now)
        session = self.sessions.find_active(site.id, visitor_id, now - self.config.session_window)

        if session is not None and self._is_repeat_view(site, session, path, now):
            logger.debug("Ignoring repeated page view", site_id=site.id, session_id=session.id)
            return None

        if session is None:
            utm = utm or UTM()
            client = parse_user_agent(user_agent)
            session = Session(
                site_id=site.id,
                visitor_id=visitor_id,
                created_at=now,
                started_at=now,
                last_seen_at=now,
                entry_path=path,
                exit_path=path,
                referrer=normalize_referrer(referrer),
                utm_source=utm.source,
                utm_medium=utm.medium,
                utm_campaign=utm.campaign,
                device=client.device,
                browser=client.browser,
                os=client.os,
                screen_size=categorize_screen_size(screen_width),
                country=self._country_label(site, country),
                page_view_count=1,
            )
            logger.debug("Session started", site_id=site.id, session_id=session.id)
        else:
            session.touch(now, path=path)

        self.sessions.save(session)

        page_view = PageView(
            site_id=site.id,
            session_id=session.id,
            visitor_id=visitor_id,
            created_at=now,
            path=path,
            title=title,
            referrer=session.referrer,
            device=session.device,
            country=session.country,
        )
        return self.page_views.create_page_view(page_view)

    def record_event(
        self,
        site: Site,
        name: str,
        path: str = "",
        properties: str | dict[str, Any] | None = None,
        user_agent: str = "",
        client_ip: str = "",
    ) -> Event | None:
        """Record a custom event.

        Events attach to the visitor's active session when there is one but
        never start a session. Undeclared event names and property bags that
        fail validation are dropped.

        Returns:
            The stored event, or None if it was filtered out.
        """
        if is_bot(user_agent):
            logger.debug("Ignoring bot event", site_id=site.id)
            return None

        country = self._lookup_country(site, client_ip)
        if self._is_blocked(site, client_ip, country):
            logger.debug("Ignoring blocked event", site_id=site.id)
            return None

        definition = self.event_definitions.get_definition(site.id, name)
        if definition is None:
            logger.debug("Ignoring undeclared event", site_id=site.id, event_name=name)
            return None

        sanitized, accepted = sanitize_properties(properties, definition.fields)
        if not accepted:
            logger.debug("Ignoring event with invalid properties", site_id=site.id, event_name=name)
            return None
        sanitized = sanitized or {}

        now = self.clock()
        visitor_id = self._fingerprint(site, client_ip, user_agent, now)
        session = self.sessions.find_active(site.id, visitor_id, now - self.config.session_window)
        if session is not None:
            session.touch(now, path=path or None, page_view=False)
            self.sessions.save(session)

        event = Event(
            site_id=site.id,
            session_id=session.id if session else None,
            visitor_id=visitor_id,
            created_at=now,
            name=name,
            path=path,
            properties=sanitized,
            property_types={f.key: f.type for f in definition.fields if f.key in sanitized},
        )
        return self.events.create_event(event)

    def _is_repeat_view(self, site: Site, session: Session, path: str, now: datetime) -> bool:
        # Double clicks, SPA route changes and script reloads resend the same view
        window = self.config.page_view_dedup_window
        if not window:
            return False
        recent = self.page_views.find_recent(site.id, session.id, path, now - window, now)
        return recent is not None

    def _fingerprint(self, site: Site, client_ip: str, user_agent: str, now: datetime) -> str:
        day = now if self.config.rotate_visitor_ids else None
        return visitor_fingerprint(client_ip, user_agent, site.salt, day=day)

    def _lookup_country(self, site: Site, client_ip: str) -> CountryInfo | None:
        # Only resolve when something on the site needs it
        if self.geoip is None or not client_ip:
            return None
        if not site.needs_country:
            return None
        return self.geoip.resolve_country(client_ip)

    @staticmethod
    def _country_label(site: Site, country: CountryInfo | None) -> str:
        if not site.track_country or country is None or country == UNKNOWN_COUNTRY:
            return ""
        return country.name

    @staticmethod
    def _is_blocked(site: Site, client_ip: str, country: CountryInfo | None) -> bool:
        if not client_ip:
            return False

        if site.blocked_ips:
            normalized = _normalize_ip(client_ip)
            blocked = {_normalize_ip(ip) for ip in site.blocked_ips}
            if normalized and normalized in blocked:
                return True

        if site.blocked_countries and country is not None:
            if country in (UNKNOWN_COUNTRY, LOCAL_COUNTRY):
                return False
            return country.code.upper() in site.blocked_countries

        return False
