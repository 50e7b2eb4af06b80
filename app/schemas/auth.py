"""Request/response schemas for auth endpoints."""

from datetime import datetime

from pydantic import Field

from app.schemas.base import APIModel


class LoginRequest(APIModel):
    """Credentials for login."""

    username: str = Field(..., min_length=1, max_length=255, description="Username")
    password: str = Field(..., min_length=1, max_length=128, description="Password")


class RefreshRequest(APIModel):
    """Body of /auth/refresh and /auth/logout."""

    refresh_token: str = Field(..., min_length=1, max_length=512, description="Opaque refresh token")


class TokenResponse(APIModel):
    """Access/refresh pair returned after login or refresh."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="Single-use refresh token")
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    token_type: str = Field(default="Bearer", description="Token type")


class RoleInfo(APIModel):
    """Role as materialized for the current user."""

    id: str
    name: str
    is_admin: bool
    permissions: list[str] = Field(default_factory=list)

    @classmethod
    def from_role(cls, role) -> "RoleInfo":
        return cls(
            id=role.id,
            name=role.name,
            is_admin=bool(role.is_admin),
            permissions=list(role.permission_names),
        )


class CurrentUser(APIModel):
    """Authenticated user with role and permissions resolved; never carries the password hash."""

    id: int
    username: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role_id: str | None = None
    role: RoleInfo | None = None
    is_active: bool
    last_login_at: datetime | None = None

    @classmethod
    def from_user(cls, user) -> "CurrentUser":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            first_name=user.first_name or "",
            last_name=user.last_name or "",
            role_id=user.role_id,
            role=RoleInfo.from_role(user.role) if user.role is not None else None,
            is_active=bool(user.is_active),
            last_login_at=user.last_login_at,
        )

    @property
    def is_admin(self) -> bool:
        return bool(self.role and self.role.is_admin)


class ValidateResponse(APIModel):
    valid: bool = True
    user: CurrentUser


class ChangePasswordRequest(APIModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)


class LogoutResponse(APIModel):
    success: bool = True
    revoked: int = Field(..., description="Number of refresh tokens revoked")


class SessionItem(APIModel):
    """One active session (live refresh token); the token value is never returned."""

    id: int
    user_agent: str | None = None
    ip_address: str | None = None
    created_at: datetime
    expires_at: datetime


class SessionsResponse(APIModel):
    sessions: list[SessionItem]
