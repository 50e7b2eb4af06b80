"""Refresh token persistence. Tokens are looked up by the SHA-256 digest of their value."""

import hashlib
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models import RefreshToken


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def insert_refresh_token(
    db: Session,
    *,
    user_id: int,
    token: str,
    created_at: datetime,
    expires_at: datetime,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> RefreshToken:
    """Add a refresh token row. The caller commits."""
    row = RefreshToken(
        user_id=user_id,
        token_hash=hash_token(token),
        user_agent=user_agent,
        ip_address=ip_address,
        created_at=created_at,
        expires_at=expires_at,
        revoked=False,
    )
    db.add(row)
    return row


def find_refresh_token_by_value(db: Session, token: str, now: datetime) -> RefreshToken | None:
    """Return the row for token only if it is neither revoked nor expired."""
    return (
        db.query(RefreshToken)
        .filter(
            RefreshToken.token_hash == hash_token(token),
            RefreshToken.revoked.is_(False),
            RefreshToken.expires_at > now,
        )
        .first()
    )


def mark_revoked(db: Session, token: str, now: datetime) -> bool:
    """
    Revoke token if it is still live (not revoked, not expired). Single conditional
    UPDATE: of any number of concurrent callers presenting the same token, at most
    one sees True, and an expired row never does.
    The caller commits.
    """
    changed = (
        db.query(RefreshToken)
        .filter(
            RefreshToken.token_hash == hash_token(token),
            RefreshToken.revoked.is_(False),
            RefreshToken.expires_at > now,
        )
        .update(
            {RefreshToken.revoked: True, RefreshToken.revoked_at: now},
            synchronize_session=False,
        )
    )
    return changed == 1


def revoke_all_for_user(db: Session, user_id: int, now: datetime) -> int:
    """Revoke every live token of user_id. The caller commits."""
    return (
        db.query(RefreshToken)
        .filter(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
        .update(
            {RefreshToken.revoked: True, RefreshToken.revoked_at: now},
            synchronize_session=False,
        )
    )


def list_by_user(db: Session, user_id: int, now: datetime) -> list[RefreshToken]:
    """Live (non-revoked, unexpired) tokens of user_id, newest first."""
    return (
        db.query(RefreshToken)
        .filter(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked.is_(False),
            RefreshToken.expires_at > now,
        )
        .order_by(RefreshToken.created_at.desc(), RefreshToken.id.desc())
        .all()
    )


def count_by_user(db: Session, user_id: int, now: datetime) -> int:
    return (
        db.query(RefreshToken)
        .filter(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked.is_(False),
            RefreshToken.expires_at > now,
        )
        .count()
    )


def delete_expired_before(db: Session, cutoff: datetime, include_revoked: bool = False) -> int:
    """
    Delete rows that expired before cutoff (and, optionally, already revoked rows).
    Never touches a live row, so it cannot race destructively with rotation.
    The caller commits.
    """
    criteria = RefreshToken.expires_at < cutoff
    if include_revoked:
        criteria = or_(criteria, RefreshToken.revoked.is_(True))
    return db.query(RefreshToken).filter(criteria).delete(synchronize_session=False)
