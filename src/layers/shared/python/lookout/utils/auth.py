"""Authentication context helpers.

Authentication itself happens upstream (API Gateway authorizer); this module
only reads the identity it attached to the event.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from lookout.utils.exceptions import ForbiddenError, UnauthorizedError

logger = structlog.get_logger()


@dataclass
class AuthContext:
    """Authentication context extracted from API Gateway event."""

    user_id: str
    workspace_ids: list[str] | None = None
    is_admin: bool = False

    def has_workspace_access(self, workspace_id: str) -> bool:
        """Check if user has access to a specific workspace."""
        if self.is_admin:
            return True
        if not self.workspace_ids:
            return False
        return workspace_id in self.workspace_ids


def get_auth_context(event: dict[str, Any]) -> AuthContext:
    """Extract authentication context from API Gateway event.

    Args:
        event: API Gateway event dict.

    Returns:
        AuthContext with user information.

    Raises:
        UnauthorizedError: If no identity was attached by the authorizer.
    """
    request_context = event.get("requestContext", {}) or {}
    authorizer = request_context.get("authorizer", {}) or {}

    # Lambda authorizer payload v2 nests the context
    context = authorizer.get("lambda", authorizer)

    user_id = context.get("userId") or context.get("user_id") or context.get("sub")
    if not user_id:
        logger.warning("No user ID in auth context")
        raise UnauthorizedError()

    workspace_ids_raw = context.get("workspaceIds") or context.get("workspace_ids")
    workspace_ids = None
    if isinstance(workspace_ids_raw, str):
        workspace_ids = [ws.strip() for ws in workspace_ids_raw.split(",") if ws.strip()]
    elif isinstance(workspace_ids_raw, list):
        workspace_ids = workspace_ids_raw

    is_admin = context.get("isAdmin", False) or context.get("is_admin", False)
    if isinstance(is_admin, str):
        is_admin = is_admin.lower() == "true"

    return AuthContext(user_id=user_id, workspace_ids=workspace_ids, is_admin=is_admin)


def require_workspace_access(auth: AuthContext, workspace_id: str) -> None:
    """Ensure user has access to a workspace.

    Raises:
        ForbiddenError: If user doesn't have access.
    """
    if not auth.has_workspace_access(workspace_id):
        logger.warning(
            "Workspace access denied",
            user_id=auth.user_id,
            workspace_id=workspace_id,
        )
        raise ForbiddenError(
            message="You don't have access to this site",
            resource_type="Site",
            action="read",
        )


def require_admin(auth: AuthContext) -> None:
    """Ensure user is an administrator.

    Raises:
        ForbiddenError: If user is not an admin.
    """
    if not auth.is_admin:
        raise ForbiddenError(message="Administrator access required", action="admin")
