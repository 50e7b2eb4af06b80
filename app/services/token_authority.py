"""
Token authority: the only place that signs access tokens and rotates refresh tokens.

Access tokens are short-lived HMAC JWTs that are never stored; a token is valid
when its signature checks out and it has not expired. Refresh tokens are opaque
random strings persisted (as digests) in the refresh_tokens table and are
single-use: every successful refresh revokes the presented token before a new
pair is handed out.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import jwt
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import UnauthenticatedError
from app.models import RefreshToken, User
from app.services import credential_store, token_store

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
TOKEN_TYPE_BEARER = "Bearer"

# 64 random bytes, hex encoded (128 chars).
REFRESH_TOKEN_BYTES = 64


class TokenAuthorityError(UnauthenticatedError):
    """Base class for expected token failures (answered with 401)."""


class InvalidRefreshTokenError(TokenAuthorityError):
    """Refresh token is unknown, revoked or expired."""

    def __init__(self, message: str = "Invalid or expired refresh token") -> None:
        super().__init__(message)


class InactiveUserError(TokenAuthorityError):
    """Token owner no longer exists or has been deactivated."""

    def __init__(self, message: str = "User not found or inactive") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class AccessClaims:
    """Verified contents of an access token."""

    user_id: int
    username: str
    role_id: str | None
    is_admin: bool
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedTokens:
    """Access/refresh pair returned by login and refresh."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = TOKEN_TYPE_BEARER


def utcnow() -> datetime:
    return datetime.now(UTC)


def create_access_token(
    user: User,
    settings: Settings | None = None,
    issued_at: datetime | None = None,
) -> str:
    """Sign an access token embedding the role and admin flag of user."""
    settings = settings or get_settings()
    now = issued_at or utcnow()
    role = user.role
    payload: dict[str, Any] = {
        "sub": str(user.id),
        "username": user.username,
        "role_id": user.role_id,
        "is_admin": bool(role is not None and role.is_admin),
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(
        payload,
        settings.JWT_SECRET.get_secret_value(),
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_access_token(token: str, settings: Settings | None = None) -> AccessClaims | None:
    """
    Check signature, expiry and claim shape. Returns None on any failure;
    callers cannot tell a bad signature from an expired or malformed token.
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET.get_secret_value(),
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.PyJWTError:
        return None
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        return None
    try:
        return AccessClaims(
            user_id=int(payload["sub"]),
            username=str(payload.get("username") or ""),
            role_id=payload.get("role_id"),
            is_admin=bool(payload.get("is_admin", False)),
            issued_at=datetime.fromtimestamp(int(payload["iat"]), UTC),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), UTC),
        )
    except (KeyError, TypeError, ValueError):
        return None


def generate_refresh_token() -> str:
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


def _clip(value: str | None, limit: int) -> str | None:
    return value[:limit] if value else None


def issue_tokens(
    db: Session,
    user: User,
    user_agent: str | None = None,
    ip_address: str | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> IssuedTokens:
    """Issue a new access/refresh pair for an active user; the refresh row is committed first."""
    settings = settings or get_settings()
    if not user.is_active:
        raise InactiveUserError()
    now = now or utcnow()
    refresh_token = generate_refresh_token()
    token_store.insert_refresh_token(
        db,
        user_id=user.id,
        token=refresh_token,
        created_at=now,
        expires_at=now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        user_agent=_clip(user_agent, 512),
        ip_address=_clip(ip_address, 64),
    )
    db.commit()
    return IssuedTokens(
        access_token=create_access_token(user, settings, issued_at=now),
        refresh_token=refresh_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


def refresh_tokens(
    db: Session,
    refresh_token: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> IssuedTokens:
    """
    Exchange a live refresh token for a new pair.

    The presented token is revoked (and committed) before the replacement is
    issued, so replaying it always fails, including a concurrent replay.
    """
    now = now or utcnow()
    row = token_store.find_refresh_token_by_value(db, refresh_token, now)
    if row is None:
        logger.warning("Refresh rejected: unknown, revoked or expired token")
        raise InvalidRefreshTokenError()

    user = credential_store.get_user_by_id(db, row.user_id)
    if user is None or not user.is_active:
        token_store.mark_revoked(db, refresh_token, now)
        db.commit()
        logger.warning("Refresh rejected: user_id=%s missing or inactive", row.user_id)
        raise InactiveUserError()

    if not token_store.mark_revoked(db, refresh_token, now):
        # Another request consumed the token between our read and the update.
        db.rollback()
        logger.warning("Refresh rejected: token for user_id=%s already consumed", user.id)
        raise InvalidRefreshTokenError()
    db.commit()

    tokens = issue_tokens(db, user, user_agent, ip_address, settings=settings, now=now)
    logger.info("Refresh token rotated for user_id=%s", user.id)
    return tokens


def revoke_refresh_token(db: Session, refresh_token: str, now: datetime | None = None) -> bool:
    """Revoke one refresh token. Idempotent; True only if a live row changed."""
    changed = token_store.mark_revoked(db, refresh_token, now or utcnow())
    db.commit()
    return changed


def revoke_all_sessions(db: Session, user_id: int, now: datetime | None = None) -> int:
    """Revoke every refresh token of a user ("logout everywhere")."""
    count = token_store.revoke_all_for_user(db, user_id, now or utcnow())
    db.commit()
    if count:
        logger.info("Revoked %s session(s) for user_id=%s", count, user_id)
    return count


def list_active_sessions(
    db: Session, user_id: int, now: datetime | None = None
) -> list[RefreshToken]:
    return token_store.list_by_user(db, user_id, now or utcnow())


def count_active_sessions(db: Session, user_id: int, now: datetime | None = None) -> int:
    return token_store.count_by_user(db, user_id, now or utcnow())


def sweep_expired(
    db: Session, purge_revoked: bool = False, now: datetime | None = None
) -> int:
    """Delete refresh tokens past expiry (and revoked ones if purge_revoked). Not for the request path."""
    deleted = token_store.delete_expired_before(db, now or utcnow(), include_revoked=purge_revoked)
    db.commit()
    return deleted
