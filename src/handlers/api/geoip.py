"""GeoIP administration API handler."""

from typing import Any

import structlog

from lookout.config import AnalyticsConfig
from lookout.repositories.site import SiteRepository
from lookout.services.geoip import GeoIPResolver, GeoIPState, get_resolver
from lookout.utils.auth import get_auth_context, require_admin
from lookout.utils.exceptions import ForbiddenError, GeoIPError, UnauthorizedError
from lookout.utils.responses import error, success

logger = structlog.get_logger()


def sync_requirement(resolver: GeoIPResolver) -> None:
    """In automatic mode, enable GeoIP only while some site needs countries."""
    if not resolver.auto_enable:
        return
    sites = SiteRepository(AnalyticsConfig.from_env().table_name)
    resolver.sync_requirement(sites.any_needs_country())


def handler(event: dict[str, Any], context: Any) -> dict:
    """Handle GeoIP admin requests.

    Routes:
        GET  /geoip/status
        POST /geoip/refresh
        GET  /geoip/countries?search=
    """
    try:
        http_method = event.get("httpMethod", "").upper()
        path = event.get("path", "")

        auth = get_auth_context(event)
        require_admin(auth)

        resolver = get_resolver()
        sync_requirement(resolver)

        if http_method == "GET" and path.endswith("/status"):
            return success(resolver.status().to_dict())
        elif http_method == "POST" and path.endswith("/refresh"):
            return refresh_database(resolver)
        elif http_method == "GET" and path.endswith("/countries"):
            return list_countries(resolver, event)
        else:
            return error("Method not allowed", 405)

    except GeoIPError as e:
        return error(e.message, e.status_code, error_code=e.error_code, details=e.details)
    except UnauthorizedError as e:
        return error(e.message, 401, error_code="UNAUTHORIZED")
    except ForbiddenError as e:
        return error(e.message, 403, error_code="FORBIDDEN")
    except Exception as e:
        logger.exception("GeoIP handler error", error=str(e))
        return error("Internal server error", 500)


def refresh_database(resolver: GeoIPResolver) -> dict:
    """Download a fresh database, keeping the current one on failure."""
    status = resolver.refresh()

    logger.info("GeoIP refresh finished", state=status.state.value, source=status.source)

    if status.state in (GeoIPState.ERROR, GeoIPState.MISSING):
        raise GeoIPError(status.last_error or "GeoIP database unavailable", state=status.state.value)

    return success(status.to_dict())


def list_countries(resolver: GeoIPResolver, event: dict) -> dict:
    """List countries known to the loaded database."""
    query_params = event.get("queryStringParameters", {}) or {}
    search = query_params.get("search", "")

    if not resolver.has_reader():
        resolver.ensure_available()

    countries = resolver.list_countries(search)
    return success({
        "state": resolver.status().state.value,
        "items": [{"code": c.code, "name": c.name} for c in countries],
    })
