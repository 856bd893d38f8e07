"""Authentication errors."""

from fastapi import status

from app.core.errors import ErrorCode, ServiceError


class AuthError(ServiceError):
    """Base class for session authentication failures (HTTP 401)."""

    def __init__(self, message: str, error_code: str):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class InvalidTokenFormatError(AuthError):
    """Raised when a session token cannot be split or parsed."""

    def __init__(self):
        super().__init__(
            message="Invalid authentication token.",
            error_code=ErrorCode.INVALID_FORMAT.value,
        )


class InvalidTokenSignatureError(AuthError):
    """Raised when a session token's signature does not match its contents."""

    def __init__(self):
        super().__init__(
            message="Invalid authentication token.",
            error_code=ErrorCode.INVALID_SIGNATURE.value,
        )


class TokenExpiredError(AuthError):
    """Raised when a session token is past its expiry."""

    def __init__(self):
        super().__init__(
            message="Authentication token has expired.",
            error_code=ErrorCode.EXPIRED.value,
        )


class TokenRevokedError(AuthError):
    """Raised when a session token was revoked (e.g. by logout)."""

    def __init__(self):
        super().__init__(
            message="Authentication token has been revoked.",
            error_code=ErrorCode.REVOKED.value,
        )


class InvalidCredentialsError(AuthError):
    """Raised when login credentials don't match an active user."""

    def __init__(self):
        super().__init__(
            message="Invalid username or password.",
            error_code="INVALID_CREDENTIALS",
        )


__all__ = [
    "AuthError",
    "InvalidTokenFormatError",
    "InvalidTokenSignatureError",
    "TokenExpiredError",
    "TokenRevokedError",
    "InvalidCredentialsError",
]
