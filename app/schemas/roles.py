"""Request/response schemas for role administration."""

from pydantic import Field

from app.schemas.base import APIModel


class PermissionOut(APIModel):
    id: str
    name: str
    module: str
    description: str = ""


class PermissionsResponse(APIModel):
    permissions: list[PermissionOut]
    grouped: dict[str, list[PermissionOut]]


class RoleOut(APIModel):
    id: str
    name: str
    description: str = ""
    is_admin: bool
    is_system: bool
    permissions: list[str]
    user_count: int = 0

    @classmethod
    def from_role(cls, role, user_count: int = 0) -> "RoleOut":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description or "",
            is_admin=bool(role.is_admin),
            is_system=bool(role.is_system),
            permissions=list(role.permission_names),
            user_count=user_count,
        )


class RolesListResponse(APIModel):
    roles: list[RoleOut]


class RoleCreate(APIModel):
    name: str = Field(..., min_length=2, max_length=255)
    description: str = Field(default="", max_length=2000)
    is_admin: bool = False
    permissions: list[str] = Field(..., min_length=1)


class RoleUpdate(APIModel):
    """Partial update; omitted fields are left unchanged."""

    name: str | None = Field(default=None, min_length=2, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    is_admin: bool | None = None
    permissions: list[str] | None = None
