"""Login, token refresh/logout, sessions and the current user's profile."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.v1.gate import client_ip, enforce_login_rate_limit, get_current_user
from app.core.database import get_db
from app.core.errors import MalformedRequestError, UnauthenticatedError
from app.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
    dummy_password_hash,
    hash_password,
    verify_password,
)
from app.schemas.auth import (
    ChangePasswordRequest,
    CurrentUser,
    LoginRequest,
    LogoutResponse,
    RefreshRequest,
    SessionItem,
    SessionsResponse,
    TokenResponse,
    ValidateResponse,
)
from app.services import credential_store, token_authority
from app.services.login_throttle import LoginThrottle, get_login_throttle

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_CREDENTIALS = "Invalid username or password."


def _validate_username(username: str) -> None:
    if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
        raise MalformedRequestError("Invalid username length.")


def _validate_password(password: str) -> None:
    if not (PASSWORD_MIN_LEN <= len(password) <= PASSWORD_MAX_LEN):
        raise MalformedRequestError("Invalid password length.")


def _token_response(tokens: token_authority.IssuedTokens) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
        token_type=tokens.token_type,
    )


@router.post("/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    throttle: Annotated[LoginThrottle, Depends(get_login_throttle)],
) -> TokenResponse:
    """
    Authenticate with username and password; returns an access/refresh token pair.
    Include the access token in the Authorization header as: Bearer <accessToken>
    """
    ip = client_ip(request)
    key = enforce_login_rate_limit(throttle, body.username, ip)
    _validate_username(body.username.strip())
    _validate_password(body.password)

    user = credential_store.get_user_by_username(db, body.username)
    # Unknown usernames still pay for one bcrypt verification.
    stored_hash = user.password_hash if user is not None else dummy_password_hash()
    password_ok = verify_password(body.password, stored_hash)
    if user is None or not password_ok:
        logger.info("Failed login for username=%s ip=%s", body.username, ip)
        raise UnauthenticatedError(INVALID_CREDENTIALS)
    if not user.is_active:
        raise UnauthenticatedError("Account is deactivated")

    throttle.reset(key)
    tokens = token_authority.issue_tokens(
        db,
        user,
        user_agent=request.headers.get("user-agent"),
        ip_address=ip,
    )
    credential_store.update_last_login(db, user.id, token_authority.utcnow())
    logger.info("User logged in: user_id=%s", user.id)
    return _token_response(tokens)


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    body: RefreshRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
) -> TokenResponse:
    """Exchange a refresh token for a new pair. The presented token stops working."""
    tokens = token_authority.refresh_tokens(
        db,
        body.refresh_token,
        user_agent=request.headers.get("user-agent"),
        ip_address=client_ip(request),
    )
    return _token_response(tokens)


@router.post("/logout", response_model=LogoutResponse)
def logout(
    body: RefreshRequest,
    db: Annotated[Session, Depends(get_db)],
) -> LogoutResponse:
    """Revoke one refresh token. Idempotent."""
    revoked = token_authority.revoke_refresh_token(db, body.refresh_token)
    return LogoutResponse(revoked=1 if revoked else 0)


@router.post("/logout-all", response_model=LogoutResponse)
def logout_all(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> LogoutResponse:
    """Revoke every session of the current user."""
    count = token_authority.revoke_all_sessions(db, current_user.id)
    return LogoutResponse(revoked=count)


@router.get("/sessions", response_model=SessionsResponse)
def list_sessions(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> SessionsResponse:
    """Active sessions (live refresh tokens) of the current user, newest first."""
    rows = token_authority.list_active_sessions(db, current_user.id)
    return SessionsResponse(sessions=[SessionItem.model_validate(r) for r in rows])


@router.get("/me", response_model=CurrentUser)
def me(current_user: Annotated[CurrentUser, Depends(get_current_user)]) -> CurrentUser:
    return current_user


@router.get("/validate", response_model=ValidateResponse)
def validate(current_user: Annotated[CurrentUser, Depends(get_current_user)]) -> ValidateResponse:
    return ValidateResponse(valid=True, user=current_user)


@router.post("/change-password", response_model=LogoutResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> LogoutResponse:
    """Change the current user's password and sign out every session."""
    user = credential_store.get_user_by_id(db, current_user.id)
    if user is None or not verify_password(body.current_password, user.password_hash):
        raise MalformedRequestError("Current password is incorrect")
    user.password_hash = hash_password(body.new_password)
    db.commit()
    count = token_authority.revoke_all_sessions(db, current_user.id)
    logger.info("Password changed for user_id=%s", current_user.id)
    return LogoutResponse(revoked=count)
