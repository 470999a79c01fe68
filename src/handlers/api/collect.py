"""Public collect API handler (tracking snippet endpoint).

The response never depends on what happened to the ping: once the body has
the right shape the answer is always 204, whether the site key is unknown,
the visitor is a bot, or storage failed.
"""

from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from lookout.config import AnalyticsConfig
from lookout.models.ingestion import ClientContext, CollectRequest
from lookout.repositories.site import SiteRepository
from lookout.services.bot_detector import is_prefetch_request
from lookout.services.geoip import get_resolver
from lookout.services.ingestion import IngestionService
from lookout.services.tracker import SessionTracker
from lookout.utils.exceptions import ValidationError
from lookout.utils.request import get_client_ip, get_header, get_user_agent, parse_json_body
from lookout.utils.responses import error, get_collect_cors_headers, no_content, validation_error

logger = structlog.get_logger()

# Reused across warm invocations
_ingestion_service: IngestionService | None = None


def get_ingestion_service() -> IngestionService:
    """Build the ingestion service on first use."""
    global _ingestion_service
    if _ingestion_service is None:
        config = AnalyticsConfig.from_env()
        _ingestion_service = IngestionService(
            sites=SiteRepository(config.table_name),
            tracker=SessionTracker(geoip=get_resolver(config), config=config),
        )
    return _ingestion_service


def handler(event: dict[str, Any], context: Any) -> dict:
    """Handle collect requests.

    Routes:
        POST    /collect
        OPTIONS /collect
    """
    http_method = event.get("httpMethod", "").upper()
    cors_headers = get_collect_cors_headers(get_header(event, "Origin"))
    json_headers = {**cors_headers, "Content-Type": "application/json"}

    if http_method == "OPTIONS":
        return no_content(cors_headers)
    if http_method != "POST":
        return error("Method not allowed", 405, headers=json_headers)

    try:
        body = parse_json_body(event)
    except ValueError as e:
        return error(str(e), 400, error_code="INVALID_BODY", headers=json_headers)

    if not isinstance(body, dict):
        return error("Request body must be a JSON object", 400, error_code="INVALID_BODY", headers=json_headers)

    try:
        request = CollectRequest.model_validate(body)
    except PydanticValidationError as e:
        return validation_error(ValidationError.from_pydantic(e).errors, headers=json_headers)

    purpose = get_header(event, "Sec-Purpose") or get_header(event, "Purpose")
    if is_prefetch_request(purpose):
        return no_content(cors_headers)

    client = ClientContext(
        client_ip=get_client_ip(event),
        user_agent=get_user_agent(event),
        origin=get_header(event, "Origin"),
        referer=get_header(event, "Referer"),
    )

    try:
        get_ingestion_service().collect(request, client)
    except Exception as e:
        # Wiring failures (bad config, missing table) must not leak either
        logger.exception("Collect handler error", error=str(e))

    return no_content(cors_headers)
