"""
Request gate: FastAPI dependencies every protected route passes through.

authenticate: Authorization header -> bearer token -> verified claims ->
live user (must exist and be active) -> CurrentUser on request.state.
require_permission / require_admin add the authorization step (403).
Failures are raised as app.core.errors types and rendered by the app handlers.
"""

import logging
from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import ForbiddenError, RateLimitedError, UnauthenticatedError
from app.schemas.auth import CurrentUser
from app.services import credential_store
from app.services.login_throttle import LoginThrottle, throttle_key
from app.services.permissions import has_permission, is_admin
from app.services.token_authority import verify_access_token

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str | None:
    """Token from an 'Authorization: Bearer <token>' header; None if absent or another scheme."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def get_current_user(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    authorization: Annotated[str | None, Header()] = None,
) -> CurrentUser:
    """Dependency: require a valid Bearer access token and a live, active user. Raises 401 otherwise."""
    token = extract_bearer_token(authorization)
    if token is None:
        raise UnauthenticatedError("Not authenticated")

    claims = verify_access_token(token)
    if claims is None:
        raise UnauthenticatedError("Invalid or expired token")

    # Claims can outlive a deactivation; the user row is re-read on every request.
    user = credential_store.get_user_by_id(db, claims.user_id)
    if user is None or not user.is_active:
        raise UnauthenticatedError("User not found or inactive")

    current_user = CurrentUser.from_user(user)
    request.state.current_user = current_user
    return current_user


def require_permission(permission: str) -> Callable[..., CurrentUser]:
    """Dependency factory: authenticated user whose role grants permission. Raises 403 otherwise."""

    def dependency(
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
    ) -> CurrentUser:
        if not has_permission(current_user, permission):
            raise ForbiddenError("Permission denied")
        return current_user

    dependency.__name__ = f"require_{permission}"
    return dependency


def require_admin(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Dependency: require authenticated user with an admin role. Raises 403 for non-admin."""
    if not is_admin(current_user):
        raise ForbiddenError("Admin access required")
    return current_user


def enforce_login_rate_limit(throttle: LoginThrottle, username: str, ip: str | None) -> str:
    """Reserve a login attempt for (username, ip) or raise 429; returns the throttle key."""
    key = throttle_key(username, ip)
    retry_after = throttle.acquire(key)
    if retry_after is not None:
        logger.warning("Login throttled for username=%s ip=%s", username, ip)
        raise RateLimitedError("Too many login attempts. Try again later.", retry_after)
    return key
