"""Request/response schemas for user administration."""

from datetime import datetime

from pydantic import Field

from app.schemas.base import APIModel


class UserOut(APIModel):
    """Sanitized user (no password hash)."""

    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    role_id: str | None = None
    role_name: str = ""
    is_active: bool
    is_admin: bool = False
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    active_sessions: int | None = None

    @classmethod
    def from_user(cls, user, active_sessions: int | None = None) -> "UserOut":
        role = user.role
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            first_name=user.first_name or "",
            last_name=user.last_name or "",
            role_id=user.role_id,
            role_name=role.name if role is not None else "",
            is_active=bool(user.is_active),
            is_admin=bool(role is not None and role.is_admin),
            last_login_at=user.last_login_at,
            created_at=user.created_at,
            updated_at=user.updated_at,
            active_sessions=active_sessions,
        )


class UsersListResponse(APIModel):
    users: list[UserOut]


class UserCreate(APIModel):
    username: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(default="", max_length=255)
    last_name: str = Field(default="", max_length=255)
    role_id: str | None = Field(default=None, max_length=64)
    is_active: bool = True


class UserUpdate(APIModel):
    """Partial update; omitted fields are left unchanged."""

    username: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str | None = Field(default=None, min_length=8, max_length=128)
    first_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    role_id: str | None = Field(default=None, max_length=64)
    is_active: bool | None = None


class SuccessResponse(APIModel):
    success: bool = True
