"""Public ingestion boundary.

Collect requests come from anonymous browsers. Whatever happens behind this
boundary (unknown site key, disallowed origin, bot traffic, rejected event
properties, storage failure) the caller sees the same outcome, so the
endpoint never reveals internal state. This is the one place where
exceptions from the tracker are caught; they are logged, not returned.
"""

import structlog

from lookout.models.ingestion import ClientContext, CollectRequest
from lookout.models.site import Site
from lookout.repositories.site import SiteRepository
from lookout.services.tracker import UTM, SessionTracker
from lookout.services.visitor import is_allowed_domain

logger = structlog.get_logger()


class IngestionService:
    """Never-propagate wrapper around the session tracker."""

    def __init__(self, sites: SiteRepository, tracker: SessionTracker):
        """Initialize ingestion service.

        Args:
            sites: Site lookup by public key.
            tracker: Session tracker that does the actual recording.
        """
        self.sites = sites
        self.tracker = tracker

    def resolve_site(self, site_key: str, client: ClientContext) -> Site | None:
        """Look up the site for a public key and check the request origin.

        Returns:
            The site, or None if the key is unknown or the origin is not on
            the site's allowlist.
        """
        site = self.sites.get_by_public_key(site_key)
        if site is None:
            logger.debug("Unknown site key")
            return None
        if not is_allowed_domain(client.origin, client.referer, site.domains):
            logger.debug("Origin not allowed for site", site_id=site.id)
            return None
        return site

    def prepare_geoip(self, site: Site) -> None:
        """Make country lookups usable for a site that needs them.

        Switches an automatic-mode resolver on and retries provisioning after
        an earlier failure; the resolver rate-limits the retries itself.
        """
        geoip = self.tracker.geoip
        if geoip is None or not site.needs_country:
            return
        geoip.sync_requirement(True)
        geoip.provision()

    def collect(self, request: CollectRequest, client: ClientContext) -> None:
        """Record a page view or custom event. Never raises."""
        if request.is_event:
            self.record_event(request, client)
        else:
            self.record_page_view(request, client)

    def record_page_view(self, request: CollectRequest, client: ClientContext) -> None:
        """Record a page view. Never raises."""
        try:
            site = self.resolve_site(request.site_key, client)
            if site is None:
                return
            self.prepare_geoip(site)
            self.tracker.record_page_view(
                site,
                path=request.path,
                title=request.title,
                referrer=request.referrer,
                utm=UTM(
                    source=request.utm_source,
                    medium=request.utm_medium,
                    campaign=request.utm_campaign,
                ),
                screen_width=request.screen_width,
                user_agent=client.user_agent,
                client_ip=client.client_ip,
            )
        except Exception as e:
            logger.exception("Page view ingestion failed", path=request.path, error=str(e))

    def record_event(self, request: CollectRequest, client: ClientContext) -> None:
        """Record a custom event. Never raises."""
        try:
            site = self.resolve_site(request.site_key, client)
            if site is None:
                return
            self.prepare_geoip(site)
            self.tracker.record_event(
                site,
                name=request.name or "",
                path=request.path,
                properties=request.properties,
                user_agent=client.user_agent,
                client_ip=client.client_ip,
            )
        except Exception as e:
            logger.exception("Event ingestion failed", event_name=request.name, error=str(e))
