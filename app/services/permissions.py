"""
Permission evaluation. Pure functions: callers pass already-loaded users and roles.

A role resolves to a capability set, either AdminCapabilities (every permission)
or ExplicitCapabilities (exactly the listed names). capabilities_for is the only
place the admin fast path is decided. A missing role resolves to the empty set.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol, Union


class RoleLike(Protocol):
    id: str
    is_admin: bool


class UserLike(Protocol):
    id: int
    role_id: str | None
    is_active: bool


@dataclass(frozen=True)
class AdminCapabilities:
    """Grants every permission."""

    def grants(self, permission: str) -> bool:
        return True


@dataclass(frozen=True)
class ExplicitCapabilities:
    """Grants only the named permissions."""

    permissions: frozenset[str]

    def grants(self, permission: str) -> bool:
        return permission in self.permissions


Capabilities = Union[AdminCapabilities, ExplicitCapabilities]

ADMIN_CAPABILITIES = AdminCapabilities()
NO_CAPABILITIES = ExplicitCapabilities(frozenset())


def capabilities_for(role) -> Capabilities:
    """Capability set for a role (RoleInfo or ORM Role); None fails closed."""
    if role is None:
        return NO_CAPABILITIES
    if role.is_admin:
        return ADMIN_CAPABILITIES
    names = getattr(role, "permission_names", None)
    if names is None:
        names = role.permissions
    return ExplicitCapabilities(frozenset(names))


def is_admin(user) -> bool:
    return isinstance(capabilities_for(user.role), AdminCapabilities)


def has_permission(user, permission: str) -> bool:
    """True if user's role grants permission (always, for admin roles)."""
    if user is None:
        return False
    return capabilities_for(user.role).grants(permission)


def can_access_resource(user, resource_owner_user_id: int | None, wide_permission: str) -> bool:
    """
    Holders of wide_permission (e.g. ticket_view_all) may act on any row;
    everyone else only on rows they own.
    """
    if has_permission(user, wide_permission):
        return True
    return resource_owner_user_id is not None and resource_owner_user_id == user.id


def _admin_role_ids(roles: Iterable[RoleLike]) -> set[str]:
    return {r.id for r in roles if r.is_admin}


def _count_active_admins(users: Iterable[UserLike], admin_role_ids: set[str], exclude_id: int) -> int:
    return sum(
        1
        for u in users
        if u.id != exclude_id and u.is_active and u.role_id in admin_role_ids
    )


def last_admin_survives(
    candidate_user_id: int,
    users: Iterable[UserLike],
    roles: Iterable[RoleLike],
) -> bool:
    """
    Whether deleting or deactivating candidate_user_id leaves at least one active
    admin-role user. Always True when the candidate is not an active admin.
    """
    users = list(users)
    admin_role_ids = _admin_role_ids(roles)
    candidate = next((u for u in users if u.id == candidate_user_id), None)
    if candidate is None or not candidate.is_active or candidate.role_id not in admin_role_ids:
        return True
    return _count_active_admins(users, admin_role_ids, candidate_user_id) >= 1


def role_change_keeps_admin(
    candidate_user_id: int,
    new_role_id: str | None,
    users: Iterable[UserLike],
    roles: Iterable[RoleLike],
) -> bool:
    """Whether moving candidate_user_id to new_role_id leaves at least one active admin."""
    roles = list(roles)
    if new_role_id in _admin_role_ids(roles):
        return True
    return last_admin_survives(candidate_user_id, users, roles)


def admin_flag_change_keeps_admin(
    role_id: str,
    new_is_admin: bool,
    users: Iterable[UserLike],
    roles: Iterable[RoleLike],
) -> bool:
    """Whether setting is_admin=new_is_admin on role_id leaves at least one active admin."""
    if new_is_admin:
        return True
    admin_role_ids = _admin_role_ids(roles) - {role_id}
    return any(u.is_active and u.role_id in admin_role_ids for u in users)
