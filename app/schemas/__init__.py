"""Pydantic request/response schemas."""

from app.schemas.auth import (
    CurrentUser,
    LoginRequest,
    RefreshRequest,
    RoleInfo,
    TokenResponse,
)
from app.schemas.health import HealthResponse
from app.schemas.roles import RoleOut
from app.schemas.ticket import TicketOut
from app.schemas.users import UserOut

__all__ = [
    "CurrentUser",
    "HealthResponse",
    "LoginRequest",
    "RefreshRequest",
    "RoleInfo",
    "RoleOut",
    "TicketOut",
    "TokenResponse",
    "UserOut",
]
