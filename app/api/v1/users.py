"""User administration. Enforces the last-admin invariant on delete, deactivate and role change."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.v1.gate import require_admin, require_permission
from app.core.database import get_db
from app.core.errors import MalformedRequestError, SafetyViolationError
from app.core.security import hash_password
from app.models import User
from app.schemas.auth import CurrentUser, LogoutResponse
from app.schemas.users import (
    SuccessResponse,
    UserCreate,
    UserOut,
    UsersListResponse,
    UserUpdate,
)
from app.services import credential_store, token_authority, token_store
from app.services.admin_guard import admin_change_guard
from app.services.permissions import (
    is_admin,
    last_admin_survives,
    role_change_keeps_admin,
)

logger = logging.getLogger(__name__)

router = APIRouter()

LAST_ADMIN_MESSAGE = "Cannot remove the last active administrator"


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = credential_store.get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _check_unique(db: Session, username: str | None, email: str | None, user_id: int | None) -> None:
    if username is not None:
        existing = credential_store.get_user_by_username(db, username)
        if existing is not None and existing.id != user_id:
            raise MalformedRequestError("Username already exists")
    if email is not None:
        existing = credential_store.get_user_by_email(db, email)
        if existing is not None and existing.id != user_id:
            raise MalformedRequestError("Email already exists")


def _check_role_exists(db: Session, role_id: str | None) -> None:
    if role_id is not None and credential_store.get_role_by_id(db, role_id) is None:
        raise MalformedRequestError("Invalid role")


@router.get("", response_model=UsersListResponse)
def list_users(
    _user: Annotated[CurrentUser, Depends(require_permission("user_view"))],
    db: Annotated[Session, Depends(get_db)],
) -> UsersListResponse:
    return UsersListResponse(users=[UserOut.from_user(u) for u in credential_store.list_users(db)])


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: int,
    _user: Annotated[CurrentUser, Depends(require_permission("user_view"))],
    db: Annotated[Session, Depends(get_db)],
) -> UserOut:
    user = _get_user_or_404(db, user_id)
    return UserOut.from_user(user, token_authority.count_active_sessions(db, user.id))


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    body: UserCreate,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> UserOut:
    """Create a user (admin only)."""
    _check_unique(db, body.username, body.email, None)
    _check_role_exists(db, body.role_id)
    user = User(
        username=credential_store.normalize_username(body.username),
        email=credential_store.normalize_email(body.email),
        password_hash=hash_password(body.password),
        first_name=body.first_name.strip(),
        last_name=body.last_name.strip(),
        role_id=body.role_id,
        is_active=body.is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User created: user_id=%s role_id=%s", user.id, user.role_id)
    return UserOut.from_user(user)


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    body: UserUpdate,
    current_user: Annotated[CurrentUser, Depends(require_permission("user_edit"))],
    db: Annotated[Session, Depends(get_db)],
) -> UserOut:
    """
    Update a user. Only admins may change roles. Deactivating a user or moving
    them off an admin role is refused if they are the last active admin;
    deactivation also revokes their sessions.
    """
    user = _get_user_or_404(db, user_id)
    changes = body.model_dump(exclude_unset=True)
    if "role_id" in changes and not is_admin(current_user):
        changes.pop("role_id")

    _check_unique(db, changes.get("username"), changes.get("email"), user.id)
    if "role_id" in changes:
        _check_role_exists(db, changes["role_id"])

    with admin_change_guard(db) as (users, roles):
        if "role_id" in changes and changes["role_id"] != user.role_id:
            if not role_change_keeps_admin(user.id, changes["role_id"], users, roles):
                raise SafetyViolationError(LAST_ADMIN_MESSAGE)
        deactivating = changes.get("is_active") is False and user.is_active
        if deactivating and not last_admin_survives(user.id, users, roles):
            raise SafetyViolationError(LAST_ADMIN_MESSAGE)

        if "username" in changes:
            user.username = credential_store.normalize_username(changes["username"])
        if "email" in changes:
            user.email = credential_store.normalize_email(changes["email"])
        if changes.get("password"):
            user.password_hash = hash_password(changes["password"])
        if "role_id" in changes:
            user.role_id = changes["role_id"]
        for field in ("first_name", "last_name", "is_active"):
            if changes.get(field) is not None:
                setattr(user, field, changes[field])
        db.commit()

    if deactivating or changes.get("password"):
        token_authority.revoke_all_sessions(db, user.id)
    db.refresh(user)
    return UserOut.from_user(user)


@router.delete("/{user_id}", response_model=SuccessResponse)
def delete_user(
    user_id: int,
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> SuccessResponse:
    """Delete a user (admin only). Refuses self-deletion and deleting the last active admin."""
    if user_id == current_user.id:
        raise SafetyViolationError("Cannot delete your own account")
    user = _get_user_or_404(db, user_id)
    with admin_change_guard(db) as (users, roles):
        if not last_admin_survives(user.id, users, roles):
            raise SafetyViolationError(LAST_ADMIN_MESSAGE)
        token_store.revoke_all_for_user(db, user.id, token_authority.utcnow())
        db.delete(user)
        db.commit()
    logger.info("User deleted: user_id=%s by user_id=%s", user_id, current_user.id)
    return SuccessResponse()


@router.post("/{user_id}/revoke-sessions", response_model=LogoutResponse)
def revoke_user_sessions(
    user_id: int,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> LogoutResponse:
    """Sign a user out everywhere (admin only)."""
    user = _get_user_or_404(db, user_id)
    return LogoutResponse(revoked=token_authority.revoke_all_sessions(db, user.id))
