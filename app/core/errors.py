"""Error taxonomy for the auth core. Each class maps to one HTTP status."""


class AuthError(Exception):
    """Base error; carries a caller-safe message and the HTTP status to answer with."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class MalformedRequestError(AuthError):
    """Missing or invalid input; the caller can fix the request."""

    status_code = 400


class UnauthenticatedError(AuthError):
    """Bad/expired/revoked credentials or a missing/inactive user."""

    status_code = 401


class ForbiddenError(AuthError):
    """Valid identity without the required permission or ownership."""

    status_code = 403


class SafetyViolationError(AuthError):
    """Operation would break a safety invariant (last admin, system roles)."""

    status_code = 400


class UnavailableError(AuthError):
    """Backing store unreachable; fatal for the request, not for the process."""

    status_code = 500


class RateLimitedError(AuthError):
    """Too many login attempts; retry_after is the number of seconds to wait."""

    status_code = 429

    def __init__(self, message: str, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(message)
