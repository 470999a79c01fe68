"""Utility functions and helpers."""

from lookout.utils.auth import AuthContext, get_auth_context, require_admin, require_workspace_access
from lookout.utils.exceptions import (
    ForbiddenError,
    GeoIPError,
    LookoutError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from lookout.utils.pagination import clamp_pagination
from lookout.utils.responses import error, no_content, not_found, success, validation_error

__all__ = [
    # Response helpers
    "success",
    "no_content",
    "error",
    "validation_error",
    "not_found",
    # Auth
    "AuthContext",
    "get_auth_context",
    "require_admin",
    "require_workspace_access",
    # Pagination
    "clamp_pagination",
    # Exceptions
    "LookoutError",
    "NotFoundError",
    "ValidationError",
    "UnauthorizedError",
    "ForbiddenError",
    "GeoIPError",
]
