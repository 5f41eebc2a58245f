"""
Authentication and authorization utilities for Indy Book Crawl

Provides functions to extract user identity and permissions from
AWS Cognito authorizer context in API Gateway events.
"""

try:
    from config import ADMIN_GROUP
except ImportError:
    from crawl_backend.config import ADMIN_GROUP


def _get_claims(event: dict) -> dict:
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    # REST APIs put claims directly under the authorizer, HTTP APIs under "jwt"
    return authorizer.get("claims") or (authorizer.get("jwt") or {}).get("claims") or {}


def get_user_id(event: dict) -> str | None:
    """
    Extract user ID (sub) from Cognito authorizer context.

    Args:
        event: API Gateway event with Cognito authorization

    Returns:
        str: The user's Cognito sub (unique identifier), or None if not authenticated
    """
    return _get_claims(event).get("sub")


def get_user_groups(event: dict) -> list[str]:
    """
    Extract user groups from Cognito authorizer context.

    Args:
        event: API Gateway event with Cognito authorization

    Returns:
        list: List of group names the user belongs to (e.g., ['admins'])
    """
    groups = _get_claims(event).get("cognito:groups", "")
    if not groups:
        return []
    if isinstance(groups, list):
        return [g.strip() for g in groups if g.strip()]
    # Groups come as comma-separated string, sometimes wrapped in brackets
    return [g.strip() for g in groups.strip("[]").split(",") if g.strip()]


def is_admin(event: dict) -> bool:
    """
    Check if the user is in the admin group.

    Args:
        event: API Gateway event with Cognito authorization

    Returns:
        bool: True if user is in the admin group, False otherwise
    """
    return ADMIN_GROUP in get_user_groups(event)


def get_actor(event: dict) -> str:
    """Identity recorded in audit fields such as deletedBy: email, else sub, else "unknown"."""
    claims = _get_claims(event)
    return claims.get("email") or claims.get("sub") or "unknown"
