"""Tests for session tracking."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from lookout.config import AnalyticsConfig
from lookout.models.event import EventDefinition, EventField, FieldType
from lookout.repositories.event import EventDefinitionRepository, EventRepository
from lookout.repositories.page_view import PageViewRepository
from lookout.repositories.session import SessionRepository
from lookout.services.geoip import CountryInfo, UNKNOWN_COUNTRY
from lookout.services.tracker import UTM, SessionTracker

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
IP = "203.0.113.10"


@pytest.fixture
def tracker(dynamodb_table, clock):
    """Tracker on the mocked table with a controllable clock."""
    return SessionTracker(clock=clock)


def stored_sessions(site, clock):
    return SessionRepository().list_started_between(
        site.id, clock() - timedelta(days=2), clock() + timedelta(days=2)
    )


def stored_page_views(site, clock):
    return PageViewRepository().list_between(
        site.id, clock() - timedelta(days=2), clock() + timedelta(days=2)
    )


def stored_events(site, clock):
    return EventRepository().list_between(
        site.id, clock() - timedelta(days=2), clock() + timedelta(days=2)
    )


class TestRecordPageView:
    """Tests for SessionTracker.record_page_view."""

    def test_first_page_view_starts_session(self, tracker, sample_site, clock):
        """The first ping from a visitor creates a session."""
        page_view = tracker.record_page_view(
            sample_site,
            path="/",
            title="Home",
            referrer="https://www.google.com/search?q=lookout",
            utm=UTM(source="newsletter"),
            screen_width=1440,
            user_agent=CHROME_UA,
            client_ip=IP,
        )

        assert page_view is not None
        sessions = stored_sessions(sample_site, clock)
        assert len(sessions) == 1
        session = sessions[0]
        assert session.id == page_view.session_id
        assert session.entry_path == "/"
        assert session.referrer == "www.google.com"
        assert session.utm_source == "newsletter"
        assert session.browser == "Chrome"
        assert session.device == "desktop"
        assert session.screen_size == "xl"
        assert session.bounce is True
        assert page_view.referrer == "www.google.com"
        assert page_view.device == "desktop"

    def test_visitor_id_is_not_raw_ip(self, tracker, sample_site, clock):
        """Stored rows never hold the IP address."""
        page_view = tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)

        assert IP not in page_view.visitor_id
        assert IP not in str(page_view.to_dynamodb())

    def test_pings_within_window_share_session(self, tracker, sample_site, clock):
        """Two page views five minutes apart belong to one session."""
        tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)
        clock.advance(minutes=5)
        tracker.record_page_view(sample_site, path="/pricing", user_agent=CHROME_UA, client_ip=IP)

        sessions = stored_sessions(sample_site, clock)
        assert len(sessions) == 1
        session = sessions[0]
        assert session.page_view_count == 2
        assert session.bounce is False
        assert session.duration == 300
        assert session.exit_path == "/pricing"
        assert len(stored_page_views(sample_site, clock)) == 2

    def test_pings_after_window_start_new_session(self, tracker, sample_site, clock):
        """A gap longer than the session window starts a new session."""
        tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)
        clock.advance(minutes=40)
        tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)

        sessions = stored_sessions(sample_site, clock)
        assert len(sessions) == 2
        assert all(s.bounce for s in sessions)

    def test_different_visitors_get_different_sessions(self, tracker, sample_site, clock):
        """Different IPs are different visitors."""
        first = tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)
        second = tracker.record_page_view(
            sample_site, path="/", user_agent=CHROME_UA, client_ip="198.51.100.7"
        )

        assert first.visitor_id != second.visitor_id
        assert first.session_id != second.session_id

    def test_bot_is_ignored(self, tracker, sample_site, clock):
        """Crawler pings leave no trace."""
        result = tracker.record_page_view(
            sample_site, path="/", user_agent=GOOGLEBOT_UA, client_ip=IP
        )

        assert result is None
        assert stored_sessions(sample_site, clock) == []
        assert stored_page_views(sample_site, clock) == []

    def test_blocked_ip_is_ignored(self, tracker, sample_site, clock):
        """Pings from a blocked IP are dropped."""
        site = sample_site.model_copy(update={"blocked_ips": [IP]})

        assert tracker.record_page_view(site, path="/", user_agent=CHROME_UA, client_ip=IP) is None
        assert stored_sessions(site, clock) == []

    def test_blocked_country_is_ignored(self, dynamodb_table, sample_site, clock):
        """Pings resolved to a blocked country are dropped."""
        geoip = MagicMock()
        geoip.resolve_country.return_value = CountryInfo(code="DE", name="Germany")
        tracker = SessionTracker(geoip=geoip, clock=clock)
        site = sample_site.model_copy(update={"blocked_countries": ["DE"]})

        assert tracker.record_page_view(site, path="/", user_agent=CHROME_UA, client_ip=IP) is None
        assert stored_sessions(site, clock) == []

    def test_unknown_country_is_never_blocked(self, dynamodb_table, sample_site, clock):
        """Unresolved countries pass a country blocklist."""
        geoip = MagicMock()
        geoip.resolve_country.return_value = UNKNOWN_COUNTRY
        tracker = SessionTracker(geoip=geoip, clock=clock)
        site = sample_site.model_copy(update={"blocked_countries": ["DE"], "track_country": True})

        page_view = tracker.record_page_view(site, path="/", user_agent=CHROME_UA, client_ip=IP)

        assert page_view is not None
        assert page_view.country == ""

    def test_country_tracked_when_enabled(self, dynamodb_table, sample_site, clock):
        """Sites tracking countries store the resolved country name."""
        geoip = MagicMock()
        geoip.resolve_country.return_value = CountryInfo(code="FR", name="France")
        tracker = SessionTracker(geoip=geoip, clock=clock)
        site = sample_site.model_copy(update={"track_country": True})

        page_view = tracker.record_page_view(site, path="/", user_agent=CHROME_UA, client_ip=IP)

        assert page_view.country == "France"
        assert stored_sessions(site, clock)[0].country == "France"

    def test_country_not_resolved_when_unused(self, dynamodb_table, sample_site, clock):
        """Without country tracking or blocking no lookup happens."""
        geoip = MagicMock()
        tracker = SessionTracker(geoip=geoip, clock=clock)

        tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)

        geoip.resolve_country.assert_not_called()

    def test_repeat_view_is_dropped(self, tracker, sample_site, clock):
        """The same path again within ten seconds is not counted twice."""
        first = tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)
        clock.advance(seconds=3)

        second = tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)

        assert first is not None
        assert second is None
        assert len(stored_page_views(sample_site, clock)) == 1
        assert stored_sessions(sample_site, clock)[0].page_view_count == 1

    def test_repeat_view_after_window_counts(self, tracker, sample_site, clock):
        """Once the dedup window has passed the view is recorded again."""
        tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)
        clock.advance(seconds=11)

        again = tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)

        assert again is not None
        assert len(stored_page_views(sample_site, clock)) == 2
        assert stored_sessions(sample_site, clock)[0].page_view_count == 2

    def test_other_path_is_not_a_repeat(self, tracker, sample_site, clock):
        """Quick navigation to a different page still counts."""
        tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)
        clock.advance(seconds=1)

        assert tracker.record_page_view(
            sample_site, path="/pricing", user_agent=CHROME_UA, client_ip=IP
        ) is not None

    def test_dedup_can_be_disabled(self, dynamodb_table, sample_site, clock):
        """A zero window records every ping."""
        tracker = SessionTracker(config=AnalyticsConfig(page_view_dedup_seconds=0), clock=clock)

        tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)
        tracker.record_page_view(sample_site, path="/", user_agent=CHROME_UA, client_ip=IP)

        assert len(stored_page_views(sample_site, clock)) == 2


class TestRecordEvent:
    """Tests for SessionTracker.record_event."""

    @pytest.fixture
    def signup_definition(self, dynamodb_table, sample_site):
        """Declare a "signup" event with one required field."""
        definition = EventDefinition(
            site_id=sample_site.id,
            name="signup",
            fields=[
                EventField(key="plan", type=FieldType.STRING, required=True),
                EventField(key="seats", type=FieldType.INT),
            ],
        )
        return EventDefinitionRepository().save_definition(definition)

    def test_event_without_session(self, tracker, sample_site, clock, signup_definition):
        """Events are stored without a session and never start one."""
        event = tracker.record_event(
            sample_site,
            name="signup",
            path="/register",
            properties='{"plan": "pro", "seats": 2}',
            user_agent=CHROME_UA,
            client_ip=IP,
        )

        assert event is not None
        assert event.session_id is None
        assert event.properties == {"plan": "pro", "seats": 2}
        assert stored_sessions(sample_site, clock) == []
        assert len(stored_events(sample_site, clock)) == 1

    def test_event_attaches_to_active_session(self, tracker, sample_site, clock, signup_definition):
        """Events join the visitor's active session without counting as a page view."""
        page_view = tracker.record_page_view(
            sample_site, path="/", user_agent=CHROME_UA, client_ip=IP
        )
        clock.advance(minutes=2)

        event = tracker.record_event(
            sample_site,
            name="signup",
            properties={"plan": "pro"},
            user_agent=CHROME_UA,
            client_ip=IP,
        )

        assert event.session_id == page_view.session_id
        session = stored_sessions(sample_site, clock)[0]
        assert session.page_view_count == 1
        assert session.duration == 120

    def test_undeclared_event_is_dropped(self, tracker, sample_site, clock, signup_definition):
        """Names without a definition are ignored."""
        event = tracker.record_event(
            sample_site, name="purchase", user_agent=CHROME_UA, client_ip=IP
        )

        assert event is None
        assert stored_events(sample_site, clock) == []

    def test_invalid_properties_are_dropped(self, tracker, sample_site, clock, signup_definition):
        """Property bags that fail validation drop the event."""
        event = tracker.record_event(
            sample_site,
            name="signup",
            properties={"plan": "pro", "seats": "many"},
            user_agent=CHROME_UA,
            client_ip=IP,
        )

        assert event is None
        assert stored_events(sample_site, clock) == []

    def test_bot_event_is_dropped(self, tracker, sample_site, clock, signup_definition):
        """Crawler events are ignored."""
        event = tracker.record_event(
            sample_site, name="signup", properties={"plan": "pro"},
            user_agent=GOOGLEBOT_UA, client_ip=IP,
        )

        assert event is None

    def test_float_property_read_back_as_float(self, tracker, sample_site, clock):
        """A whole-valued float property keeps its type once stored."""
        EventDefinitionRepository().save_definition(EventDefinition(
            site_id=sample_site.id,
            name="purchase",
            fields=[EventField(key="price", type=FieldType.FLOAT)],
        ))

        tracker.record_event(
            sample_site,
            name="purchase",
            properties='{"price": 10.0}',
            user_agent=CHROME_UA,
            client_ip=IP,
        )

        stored = stored_events(sample_site, clock)[0]
        assert stored.properties == {"price": 10.0}
        assert isinstance(stored.properties["price"], float)
        assert stored.property_types == {"price": "float"}
