"""Site statistics API handler."""

from datetime import datetime, time, timedelta, timezone
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from lookout.config import DEFAULT_STATS_MAX_RANGE_DAYS, AnalyticsConfig
from lookout.models.stats import DIRECT_REFERRER_LABEL, StatsFilter, TimeBucket, TimeRange
from lookout.services.stats_service import StatsService
from lookout.utils.auth import get_auth_context, require_workspace_access
from lookout.utils.exceptions import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from lookout.utils.pagination import clamp_pagination
from lookout.utils.responses import error, not_found, paginated, success, validation_error

logger = structlog.get_logger()

DEFAULT_RANGE_DAYS = 30
MAX_HOURLY_RANGE_DAYS = 31
FILTER_PARAMS = ("referrer", "device", "page", "country")


def handler(event: dict[str, Any], context: Any) -> dict:
    """Handle site statistics requests.

    Routes:
        GET /sites/{site_id}/stats?from&to&bucket&referrer&device&page&country
        GET /sites/{site_id}/stats/{dimension}?from&to&limit&offset&referrer&...
        GET /sites/{site_id}/events?from&to&limit&offset&name
        GET /sites/{site_id}/events/counts?from&to
        GET /sites/{site_id}/realtime
    """
    try:
        http_method = event.get("httpMethod", "").upper()
        path = event.get("path", "")
        path_params = event.get("pathParameters", {}) or {}
        site_id = path_params.get("site_id")

        if http_method != "GET":
            return error("Method not allowed", 405)
        if not site_id:
            return error("site_id is required", 400)

        auth = get_auth_context(event)
        service = StatsService(config=AnalyticsConfig.from_env())

        site = service.get_site(site_id)
        require_workspace_access(auth, site.workspace_id)

        if path.endswith("/events/counts"):
            return get_event_counts(service, site_id, event)
        elif path.endswith("/events"):
            return list_events(service, site_id, event)
        elif path.endswith("/realtime"):
            return get_realtime(service, site_id)
        elif "/stats/" in path:
            dimension = path_params.get("dimension") or path.rstrip("/").rsplit("/", 1)[-1]
            return get_breakdown(service, site_id, dimension, event)
        else:
            return get_stats(service, site_id, event)

    except ValidationError as e:
        return validation_error(e.errors)
    except UnauthorizedError as e:
        return error(e.message, 401, error_code="UNAUTHORIZED")
    except ForbiddenError as e:
        return error(e.message, 403, error_code="FORBIDDEN")
    except NotFoundError as e:
        return not_found(e.resource_type, e.resource_id)
    except Exception as e:
        logger.exception("Stats handler error", error=str(e))
        return error("Internal server error", 500)


def get_stats(service: StatsService, site_id: str, event: dict) -> dict:
    """Get summary statistics for a site."""
    time_range = parse_time_range(event, service.config.stats_max_range_days)
    stats_filter = parse_filter(event)
    bucket = parse_bucket(event, time_range)

    stats = service.get_stats(site_id, time_range, stats_filter, bucket)

    logger.info(
        "Stats computed",
        site_id=site_id,
        sessions=stats.sessions,
        filtered=not stats_filter.is_empty,
        bucket=bucket.value,
    )

    return success({
        "from": time_range.start.isoformat(),
        "to": time_range.end.isoformat(),
        "filter": stats_filter.model_dump(exclude_none=True),
        "stats": stats.model_dump(mode="json"),
    })


def get_breakdown(service: StatsService, site_id: str, dimension: str, event: dict) -> dict:
    """Page through one ranked breakdown."""
    query_params = event.get("queryStringParameters", {}) or {}
    time_range = parse_time_range(event, service.config.stats_max_range_days)
    stats_filter = parse_filter(event)

    limit, offset = clamp_pagination(
        _parse_int(query_params.get("limit"), "limit"),
        _parse_int(query_params.get("offset"), "offset"),
    )
    breakdown = service.get_breakdown(
        site_id, dimension, time_range, stats_filter, limit=limit, offset=offset
    )

    return paginated(
        [row.model_dump(mode="json") for row in breakdown.items],
        total=breakdown.total,
        limit=limit,
        offset=offset,
        dimension=dimension,
        total_visitors=breakdown.total_visitors,
    )


def list_events(service: StatsService, site_id: str, event: dict) -> dict:
    """List custom events for a site."""
    query_params = event.get("queryStringParameters", {}) or {}
    time_range = parse_time_range(event, service.config.stats_max_range_days)

    limit, offset = clamp_pagination(
        _parse_int(query_params.get("limit"), "limit"),
        _parse_int(query_params.get("offset"), "offset"),
        service.config.events_max_page_size,
    )
    name = (query_params.get("name") or "").strip() or None

    events, total = service.list_events(site_id, time_range, limit, offset, name=name)

    return paginated(
        [e.model_dump(mode="json") for e in events],
        total=total,
        limit=limit,
        offset=offset,
    )


def get_event_counts(service: StatsService, site_id: str, event: dict) -> dict:
    """Count custom events per name."""
    time_range = parse_time_range(event, service.config.stats_max_range_days)
    counts = service.get_event_counts(site_id, time_range)
    return success({"items": [c.model_dump(mode="json") for c in counts]})


def get_realtime(service: StatsService, site_id: str) -> dict:
    """Get visitors and pages active in the last few minutes."""
    return success({
        "visitors": service.get_realtime_visitors(site_id),
        "pages": [p.model_dump(mode="json") for p in service.get_active_pages(site_id)],
    })


def parse_time_range(event: dict, max_days: int = DEFAULT_STATS_MAX_RANGE_DAYS) -> TimeRange:
    """Build the reporting window from ``from``/``to`` query parameters.

    Accepts ISO dates or datetimes. A bare ``to`` date covers that whole day.
    Defaults to the last 30 days.

    Raises:
        ValidationError: If a value is malformed, the range is inverted, or
            it spans more than ``max_days`` days.
    """
    query_params = event.get("queryStringParameters", {}) or {}
    now = datetime.now(timezone.utc)

    end = _parse_datetime(query_params.get("to"), "to", end_of_day=True) or now
    start = _parse_datetime(query_params.get("from"), "from") or (
        end - timedelta(days=DEFAULT_RANGE_DAYS)
    )

    try:
        time_range = TimeRange(start=start, end=end)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e)

    if _span_days(time_range) > max_days:
        raise ValidationError(
            message="Time range too long",
            errors=[{"field": "from", "message": f"Range may span at most {max_days} days"}],
        )
    return time_range


def parse_bucket(event: dict, time_range: TimeRange) -> TimeBucket:
    """Read the ``bucket`` query parameter; hourly series are capped at 31 days.

    Raises:
        ValidationError: If the value is unknown or an hourly range is too long.
    """
    query_params = event.get("queryStringParameters", {}) or {}
    raw = (query_params.get("bucket") or TimeBucket.DAILY.value).strip().lower()
    try:
        bucket = TimeBucket(raw)
    except ValueError:
        raise ValidationError(
            message="Invalid bucket value",
            errors=[{"field": "bucket", "message": "Expected daily or hourly"}],
        )

    if bucket == TimeBucket.HOURLY and _span_days(time_range) > MAX_HOURLY_RANGE_DAYS:
        raise ValidationError(
            message="Time range too long for hourly buckets",
            errors=[{
                "field": "bucket",
                "message": f"Hourly buckets cover at most {MAX_HOURLY_RANGE_DAYS} days",
            }],
        )
    return bucket


def parse_filter(event: dict) -> StatsFilter:
    """Build a stats filter from query parameters.

    A parameter may repeat or hold comma-separated values. ``referrer=``
    (empty) or ``referrer=(direct)`` selects direct traffic; leaving the
    parameter out applies no referrer constraint.
    """
    query_params = event.get("queryStringParameters", {}) or {}
    multi_params = event.get("multiValueQueryStringParameters", {}) or {}

    values: dict[str, list[str]] = {}
    for key in FILTER_PARAMS:
        if key not in query_params and key not in multi_params:
            continue

        raw_values = multi_params.get(key) or [query_params.get(key) or ""]
        parsed: list[str] = []
        for raw in raw_values:
            for part in (raw or "").split(","):
                part = part.strip()
                if key == "referrer":
                    parsed.append("" if part == DIRECT_REFERRER_LABEL else part)
                elif part:
                    parsed.append(part)

        if parsed:
            values[key] = list(dict.fromkeys(parsed))

    return StatsFilter(**values)


def _parse_datetime(value: str | None, field: str, end_of_day: bool = False) -> datetime | None:
    if not value:
        return None
    value = value.strip()
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(
            message=f"Invalid {field} value",
            errors=[{"field": field, "message": "Expected an ISO 8601 date or datetime"}],
        )

    # Date-only values parse as midnight
    if end_of_day and len(value) == 10:
        parsed = datetime.combine(parsed.date(), time.max)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _span_days(time_range: TimeRange) -> int:
    # Calendar days touched, counting both ends
    return (time_range.end.date() - time_range.start.date()).days + 1


def _parse_int(value: str | None, field: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(
            message=f"Invalid {field} value",
            errors=[{"field": field, "message": "Expected an integer"}],
        )
