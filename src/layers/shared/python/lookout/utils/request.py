"""Helpers for reading client details from API Gateway events."""

import json
from typing import Any


def _header(headers: dict, name: str) -> str:
    """Case-insensitive header lookup (API Gateway preserves client casing)."""
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    return value or ""


def get_headers(event: dict) -> dict:
    """Get the headers dict from an event, never None."""
    return event.get("headers", {}) or {}


def get_header(event: dict, name: str) -> str:
    """Get a single header value, or an empty string."""
    return _header(get_headers(event), name)


def get_client_ip(event: dict) -> str:
    """Extract client IP from API Gateway event.

    Handles X-Forwarded-For and X-Real-IP headers for requests behind
    CloudFront/ALB.

    Args:
        event: API Gateway event dict.

    Returns:
        Client IP address string (empty when unknown).
    """
    headers = get_headers(event)
    request_context = event.get("requestContext", {}) or {}
    identity = request_context.get("identity", {}) or {}

    # First entry of X-Forwarded-For is the original client
    forwarded_for = _header(headers, "X-Forwarded-For")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = _header(headers, "X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return identity.get("sourceIp", "") or ""


def get_user_agent(event: dict) -> str:
    """Get the client's User-Agent header."""
    return get_header(event, "User-Agent")


def parse_json_body(event: dict) -> Any:
    """Parse the JSON body of an event.

    Raises:
        ValueError: If the body is missing or not valid JSON.
    """
    raw = event.get("body")
    if not raw:
        raise ValueError("Request body is required")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError("Invalid JSON body") from e
