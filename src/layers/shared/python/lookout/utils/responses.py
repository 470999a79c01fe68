"""API response helper functions."""

import json
import os
from datetime import datetime
from typing import Any

from pydantic import BaseModel as PydanticBaseModel

# Dashboard origin for authenticated reporting endpoints
_ALLOWED_ORIGIN = os.environ.get("CORS_ALLOWED_ORIGIN", "http://localhost:5173")


def get_cors_headers() -> dict:
    """Get CORS headers for dashboard (reporting) responses."""
    return {
        "Access-Control-Allow-Origin": _ALLOWED_ORIGIN,
        "Access-Control-Allow-Headers": "Content-Type,Authorization",
        "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
        "Access-Control-Allow-Credentials": "true",
        "Content-Type": "application/json",
    }


def get_collect_cors_headers(origin: str | None) -> dict:
    """Get CORS headers for the public collect endpoint.

    The tracking snippet runs on the customer's own domain, so the request
    origin is echoed back. Collect responses carry no data, and the
    per-site domain allowlist is enforced behind the endpoint.
    """
    if not origin:
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Max-Age": "3600",
        "Vary": "Origin",
    }


CORS_HEADERS = get_cors_headers()


def _json_serializer(obj: Any) -> Any:
    """JSON serializer for objects not serializable by default."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, PydanticBaseModel):
        return obj.model_dump(mode="json")
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _serialize(data: Any) -> str:
    """Serialize data to JSON string."""
    return json.dumps(data, default=_json_serializer)


def success(data: Any, status_code: int = 200) -> dict:
    """Create a successful API response.

    Args:
        data: Response data (dict, list, or Pydantic model).
        status_code: HTTP status code (default 200).

    Returns:
        API Gateway response dict.
    """
    if isinstance(data, PydanticBaseModel):
        body = data.model_dump(mode="json")
    else:
        body = data

    return {
        "statusCode": status_code,
        "headers": CORS_HEADERS,
        "body": _serialize(body),
    }


def no_content(headers: dict | None = None) -> dict:
    """Create a 204 No Content response.

    Args:
        headers: Optional headers to send instead of the dashboard CORS set.

    Returns:
        API Gateway response dict.
    """
    return {
        "statusCode": 204,
        "headers": headers if headers is not None else CORS_HEADERS,
        "body": "",
    }


def error(
    message: str,
    status_code: int = 500,
    error_code: str | None = None,
    details: dict | None = None,
    headers: dict | None = None,
) -> dict:
    """Create an error API response.

    Args:
        message: Error message.
        status_code: HTTP status code.
        error_code: Machine-readable error code.
        details: Additional error details.
        headers: Optional headers to send instead of the dashboard CORS set.

    Returns:
        API Gateway response dict.
    """
    body: dict[str, Any] = {
        "error": True,
        "message": message,
    }

    if error_code:
        body["error_code"] = error_code
    if details:
        body["details"] = details

    return {
        "statusCode": status_code,
        "headers": headers if headers is not None else CORS_HEADERS,
        "body": _serialize(body),
    }


def validation_error(errors: list[dict], headers: dict | None = None) -> dict:
    """Create a validation error response.

    Args:
        errors: List of validation errors with field and message.
        headers: Optional headers to send instead of the dashboard CORS set.

    Returns:
        API Gateway response dict.
    """
    return error(
        message="Validation failed",
        status_code=400,
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
        headers=headers,
    )


def not_found(resource_type: str, resource_id: str) -> dict:
    """Create a 404 Not Found response.

    Args:
        resource_type: Type of resource (e.g., "Site").
        resource_id: ID of the resource.

    Returns:
        API Gateway response dict.
    """
    return error(
        message=f"{resource_type} with ID '{resource_id}' not found",
        status_code=404,
        error_code="NOT_FOUND",
        details={"resource_type": resource_type, "resource_id": resource_id},
    )


def paginated(
    items: list[Any],
    total: int,
    limit: int,
    offset: int,
    **extra: Any,
) -> dict:
    """Create an offset-paginated response.

    Args:
        items: Items on the current page.
        total: Total number of matching items.
        limit: Page size actually applied.
        offset: Offset actually applied.
        **extra: Additional top-level body fields.

    Returns:
        API Gateway response dict.
    """
    return success({
        "items": items,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
        },
        **extra,
    })
