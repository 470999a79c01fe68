"""Tests for the public ingestion boundary."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from lookout.models.ingestion import ClientContext, CollectRequest
from lookout.repositories.page_view import PageViewRepository
from lookout.repositories.site import SiteRepository
from lookout.services.ingestion import IngestionService
from lookout.services.tracker import SessionTracker

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BROWSER = ClientContext(
    client_ip="203.0.113.10",
    user_agent=CHROME_UA,
    origin="https://example.com",
    referer="https://example.com/",
)


@pytest.fixture
def service(saved_site, clock):
    """Ingestion service on the mocked table."""
    return IngestionService(sites=SiteRepository(), tracker=SessionTracker(clock=clock))


def page_views_for(site, clock):
    return PageViewRepository().list_between(
        site.id, clock() - timedelta(hours=1), clock() + timedelta(hours=1)
    )


class TestResolveSite:
    """Tests for IngestionService.resolve_site."""

    def test_known_key_and_origin(self, service, saved_site):
        """A listed origin resolves the site."""
        site = service.resolve_site("pk_test_abc", BROWSER)

        assert site is not None
        assert site.id == saved_site.id

    def test_unknown_key(self, service):
        """Unknown keys resolve to nothing."""
        assert service.resolve_site("pk_nope", BROWSER) is None

    def test_disallowed_origin(self, service):
        """Origins outside the allowlist are rejected."""
        client = ClientContext(user_agent=CHROME_UA, origin="https://evil.test")

        assert service.resolve_site("pk_test_abc", client) is None


class TestCollect:
    """Tests for IngestionService.collect."""

    def test_page_view_is_recorded(self, service, saved_site, clock):
        """A valid page view ping is stored."""
        request = CollectRequest(site_key="pk_test_abc", path="/hello")

        service.collect(request, BROWSER)

        page_views = page_views_for(saved_site, clock)
        assert [pv.path for pv in page_views] == ["/hello"]

    def test_unknown_key_records_nothing(self, service, saved_site, clock):
        """Pings for unknown keys are silently dropped."""
        service.collect(CollectRequest(site_key="pk_nope", path="/"), BROWSER)

        assert page_views_for(saved_site, clock) == []

    def test_disallowed_origin_records_nothing(self, service, saved_site, clock):
        """Pings from other origins are silently dropped."""
        client = ClientContext(
            client_ip="203.0.113.10", user_agent=CHROME_UA, origin="https://evil.test"
        )

        service.collect(CollectRequest(site_key="pk_test_abc", path="/"), client)

        assert page_views_for(saved_site, clock) == []

    def test_event_routes_to_record_event(self, saved_site):
        """Bodies with a name are handled as events."""
        tracker = MagicMock()
        service = IngestionService(sites=SiteRepository(), tracker=tracker)

        service.collect(CollectRequest(site_key="pk_test_abc", name="signup"), BROWSER)

        tracker.record_event.assert_called_once()
        tracker.record_page_view.assert_not_called()
        assert tracker.record_event.call_args.kwargs["name"] == "signup"

    def test_tracker_failure_is_swallowed(self, saved_site):
        """Storage errors never reach the caller."""
        tracker = MagicMock()
        tracker.record_page_view.side_effect = RuntimeError("table is gone")
        tracker.record_event.side_effect = RuntimeError("table is gone")
        service = IngestionService(sites=SiteRepository(), tracker=tracker)

        service.collect(CollectRequest(site_key="pk_test_abc", path="/"), BROWSER)
        service.collect(CollectRequest(site_key="pk_test_abc", name="signup"), BROWSER)

    def test_site_lookup_failure_is_swallowed(self):
        """Errors resolving the site are swallowed too."""
        sites = MagicMock()
        sites.get_by_public_key.side_effect = RuntimeError("throttled")
        service = IngestionService(sites=sites, tracker=MagicMock())

        service.collect(CollectRequest(site_key="pk_test_abc", path="/"), BROWSER)


class TestPrepareGeoIP:
    """Tests for GeoIP provisioning on the ingestion path."""

    def test_country_site_provisions_resolver(self, dynamodb_table, sample_site):
        """Pings for a country-tracking site enable and provision GeoIP."""
        site = sample_site.model_copy(update={"track_country": True})
        SiteRepository().create_site(site)
        tracker = MagicMock()
        service = IngestionService(sites=SiteRepository(), tracker=tracker)

        service.collect(CollectRequest(site_key="pk_test_abc", path="/"), BROWSER)

        tracker.geoip.sync_requirement.assert_called_once_with(True)
        tracker.geoip.provision.assert_called_once()

    def test_other_sites_leave_geoip_alone(self, saved_site):
        """Sites without country settings never trigger a download."""
        tracker = MagicMock()
        service = IngestionService(sites=SiteRepository(), tracker=tracker)

        service.collect(CollectRequest(site_key="pk_test_abc", path="/"), BROWSER)

        tracker.geoip.provision.assert_not_called()

    def test_provisioning_failure_is_swallowed(self, dynamodb_table, sample_site):
        """A broken resolver does not escape the boundary."""
        SiteRepository().create_site(sample_site.model_copy(update={"blocked_countries": ["RU"]}))
        tracker = MagicMock()
        tracker.geoip.provision.side_effect = RuntimeError("disk full")
        service = IngestionService(sites=SiteRepository(), tracker=tracker)

        service.collect(CollectRequest(site_key="pk_test_abc", path="/"), BROWSER)
