"""Tests for DynamoDB repositories."""

from datetime import datetime, timedelta, timezone

from lookout.models.event import Event, EventDefinition, EventField
from lookout.models.page_view import PageView
from lookout.models.session import Session
from lookout.repositories.event import EventDefinitionRepository, EventRepository
from lookout.repositories.page_view import PageViewRepository
from lookout.repositories.session import SessionRepository
from lookout.repositories.site import SiteRepository

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class TestSiteRepository:
    """Tests for SiteRepository."""

    def test_lookups(self, saved_site):
        """Sites are found by ID and by public key."""
        repo = SiteRepository()

        assert repo.get_by_id(saved_site.id).name == "Example Blog"
        assert repo.get_by_public_key("pk_test_abc").id == saved_site.id
        assert repo.get_by_public_key("pk_missing") is None
        assert repo.get_by_public_key("") is None
        assert repo.get_by_id("missing") is None

    def test_any_needs_country(self, saved_site, sample_site):
        """Only sites that track or block countries count."""
        repo = SiteRepository()
        assert repo.any_needs_country() is False

        repo.create_site(sample_site.model_copy(update={
            "id": "geo-site", "public_key": "pk_geo", "blocked_countries": ["RU"],
        }))

        assert repo.any_needs_country() is True


class TestSessionRepository:
    """Tests for SessionRepository."""

    def test_find_active_returns_latest(self, dynamodb_table):
        """The most recently active session in the window wins."""
        repo = SessionRepository()
        older = Session(site_id="s1", visitor_id="v1", started_at=NOW - timedelta(minutes=20),
                        last_seen_at=NOW - timedelta(minutes=15))
        newer = Session(site_id="s1", visitor_id="v1", started_at=NOW - timedelta(minutes=10),
                        last_seen_at=NOW - timedelta(minutes=5))
        repo.save(older)
        repo.save(newer)

        found = repo.find_active("s1", "v1", since=NOW - timedelta(minutes=30))

        assert found.id == newer.id

    def test_find_active_ignores_expired(self, dynamodb_table):
        """Sessions idle longer than the window are not active."""
        repo = SessionRepository()
        repo.save(Session(site_id="s1", visitor_id="v1", started_at=NOW - timedelta(hours=2),
                          last_seen_at=NOW - timedelta(hours=1)))

        assert repo.find_active("s1", "v1", since=NOW - timedelta(minutes=30)) is None
        assert repo.find_active("s1", "other", since=NOW - timedelta(minutes=30)) is None

    def test_save_overwrites(self, dynamodb_table):
        """Saving a touched session updates the same row."""
        repo = SessionRepository()
        session = Session(site_id="s1", visitor_id="v1", started_at=NOW, last_seen_at=NOW)
        repo.save(session)
        session.touch(NOW + timedelta(minutes=1))
        repo.save(session)

        sessions = repo.list_started_between("s1", NOW, NOW)

        assert len(sessions) == 1
        assert sessions[0].page_view_count == 2

    def test_list_started_between_is_inclusive(self, dynamodb_table):
        """Both range ends are included."""
        repo = SessionRepository()
        for minutes in (0, 30, 60, 90):
            started = NOW + timedelta(minutes=minutes)
            repo.save(Session(site_id="s1", visitor_id=f"v{minutes}", started_at=started,
                              last_seen_at=started))

        sessions = repo.list_started_between("s1", NOW + timedelta(minutes=30), NOW + timedelta(minutes=60))

        assert sorted(s.visitor_id for s in sessions) == ["v30", "v60"]


class TestPageViewAndEventRepositories:
    """Tests for PageViewRepository and EventRepository."""

    def test_page_views_between(self, dynamodb_table):
        """Page views outside the range are excluded."""
        repo = PageViewRepository()
        for hours in (0, 5, 30):
            repo.create_page_view(PageView(site_id="s1", session_id="x", visitor_id="v",
                                           path=f"/{hours}", created_at=NOW + timedelta(hours=hours)))

        page_views = repo.list_between("s1", NOW, NOW + timedelta(hours=24))

        assert [pv.path for pv in page_views] == ["/0", "/5"]

    def test_events_by_name(self, dynamodb_table):
        """Events can be narrowed by name and come newest first."""
        repo = EventRepository()
        for i, name in enumerate(["signup", "download", "signup"]):
            repo.create_event(Event(site_id="s1", visitor_id="v", name=name,
                                    created_at=NOW + timedelta(minutes=i)))

        signups = repo.list_between("s1", NOW, NOW + timedelta(hours=1), name="signup")

        assert [e.created_at for e in signups] == [NOW + timedelta(minutes=2), NOW]

    def test_event_definitions(self, saved_site):
        """Definitions are stored per site and listed alongside the site row."""
        repo = EventDefinitionRepository()
        repo.save_definition(EventDefinition(site_id=saved_site.id, name="signup",
                                             fields=[EventField(key="plan")]))
        repo.save_definition(EventDefinition(site_id=saved_site.id, name="download"))

        assert repo.get_definition(saved_site.id, "signup").fields[0].key == "plan"
        assert repo.get_definition(saved_site.id, "missing") is None
        assert repo.get_definition(saved_site.id, "") is None
        assert sorted(d.name for d in repo.list_definitions(saved_site.id)) == ["download", "signup"]
