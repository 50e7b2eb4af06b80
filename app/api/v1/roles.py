"""Role administration. System roles cannot be deleted or have their admin flag changed."""

import logging
import re
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.v1.gate import require_permission
from app.core.database import get_db
from app.core.errors import MalformedRequestError, SafetyViolationError
from app.models import Permission, Role
from app.schemas.auth import CurrentUser
from app.schemas.roles import (
    PermissionOut,
    PermissionsResponse,
    RoleCreate,
    RoleOut,
    RolesListResponse,
    RoleUpdate,
)
from app.schemas.users import SuccessResponse
from app.services import credential_store
from app.services.admin_guard import admin_change_guard
from app.services.permissions import admin_flag_change_keeps_admin

logger = logging.getLogger(__name__)

router = APIRouter()


def _role_out(db: Session, role: Role) -> RoleOut:
    return RoleOut.from_role(role, credential_store.count_users_with_role(db, role.id))


def _get_role_or_404(db: Session, role_id: str) -> Role:
    role = credential_store.get_role_by_id(db, role_id)
    if role is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return role


def _resolve_permissions(db: Session, permission_ids: list[str]) -> list[Permission]:
    wanted = set(permission_ids)
    found = db.query(Permission).filter(Permission.id.in_(wanted)).all()
    unknown = wanted - {p.id for p in found}
    if unknown:
        raise MalformedRequestError(f"Unknown permission(s): {', '.join(sorted(unknown))}")
    return found


def _check_name_free(db: Session, name: str, role_id: str | None) -> None:
    existing = credential_store.get_role_by_name(db, name)
    if existing is not None and existing.id != role_id:
        raise MalformedRequestError("A role with this name already exists")


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")[:64] or "role"


@router.get("", response_model=RolesListResponse)
def list_roles(
    _user: Annotated[CurrentUser, Depends(require_permission("role_view"))],
    db: Annotated[Session, Depends(get_db)],
) -> RolesListResponse:
    return RolesListResponse(roles=[_role_out(db, r) for r in credential_store.list_roles(db)])


@router.get("/permissions", response_model=PermissionsResponse)
def list_permissions(
    _user: Annotated[CurrentUser, Depends(require_permission("role_view"))],
    db: Annotated[Session, Depends(get_db)],
) -> PermissionsResponse:
    """Permission catalog, flat and grouped by module."""
    permissions = [
        PermissionOut.model_validate(p)
        for p in db.query(Permission).order_by(Permission.module, Permission.name).all()
    ]
    grouped: dict[str, list[PermissionOut]] = {}
    for perm in permissions:
        grouped.setdefault(perm.module, []).append(perm)
    return PermissionsResponse(permissions=permissions, grouped=grouped)


@router.get("/{role_id}", response_model=RoleOut)
def get_role(
    role_id: str,
    _user: Annotated[CurrentUser, Depends(require_permission("role_view"))],
    db: Annotated[Session, Depends(get_db)],
) -> RoleOut:
    return _role_out(db, _get_role_or_404(db, role_id))


@router.post("", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
def create_role(
    body: RoleCreate,
    _user: Annotated[CurrentUser, Depends(require_permission("role_create"))],
    db: Annotated[Session, Depends(get_db)],
) -> RoleOut:
    """Create a custom (non-system) role."""
    name = body.name.strip()
    _check_name_free(db, name, None)
    role_id = _slugify(name)
    if credential_store.get_role_by_id(db, role_id) is not None:
        raise MalformedRequestError("A role with this id already exists")
    role = Role(
        id=role_id,
        name=name,
        description=body.description,
        is_admin=body.is_admin,
        is_system=False,
        permissions=_resolve_permissions(db, body.permissions),
    )
    db.add(role)
    db.commit()
    logger.info("Role created: role_id=%s is_admin=%s", role.id, role.is_admin)
    return _role_out(db, role)


@router.put("/{role_id}", response_model=RoleOut)
def update_role(
    role_id: str,
    body: RoleUpdate,
    _user: Annotated[CurrentUser, Depends(require_permission("role_edit"))],
    db: Annotated[Session, Depends(get_db)],
) -> RoleOut:
    role = _get_role_or_404(db, role_id)
    if body.name is not None:
        _check_name_free(db, body.name.strip(), role.id)
    permissions = _resolve_permissions(db, body.permissions) if body.permissions is not None else None

    with admin_change_guard(db) as (users, roles):
        if body.is_admin is not None and body.is_admin != role.is_admin:
            if role.is_system:
                raise SafetyViolationError("Cannot change admin status of system roles")
            if not admin_flag_change_keeps_admin(role.id, body.is_admin, users, roles):
                raise SafetyViolationError("Cannot remove the last active administrator")
            role.is_admin = body.is_admin
        if body.name is not None:
            role.name = body.name.strip()
        if body.description is not None:
            role.description = body.description
        if permissions is not None:
            role.permissions = permissions
        db.commit()
    return _role_out(db, role)


@router.delete("/{role_id}", response_model=SuccessResponse)
def delete_role(
    role_id: str,
    _user: Annotated[CurrentUser, Depends(require_permission("role_delete"))],
    db: Annotated[Session, Depends(get_db)],
) -> SuccessResponse:
    role = _get_role_or_404(db, role_id)
    if role.is_system:
        raise SafetyViolationError("Cannot delete system roles")
    with admin_change_guard(db):
        assigned = credential_store.count_users_with_role(db, role.id)
        if assigned > 0:
            raise SafetyViolationError(
                f"Cannot delete role. {assigned} user(s) are assigned to this role"
            )
        db.delete(role)
        db.commit()
    logger.info("Role deleted: role_id=%s", role_id)
    return SuccessResponse()
