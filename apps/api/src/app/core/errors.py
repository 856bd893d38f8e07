"""
Service Errors

Base exception and machine-readable reason codes shared by the token,
revocation and attendance services. Routers translate ``ServiceError`` into
HTTP responses with ``to_http_exception``; messages are written for clients
and never include secrets or storage details.
"""

import enum

from fastapi import HTTPException, status


class ErrorCode(str, enum.Enum):
    """Reason codes reported to callers."""

    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    INFRASTRUCTURE_UNAVAILABLE = "INFRASTRUCTURE_UNAVAILABLE"


class ServiceError(Exception):
    """Base exception for service-layer errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 400,
        retryable: bool = False,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


class InfrastructureUnavailableError(ServiceError):
    """
    Raised when a backing service (database, Redis, roster) is unreachable
    or does not answer within its timeout.

    Retryable with backoff at the caller's discretion.
    """

    def __init__(self, component: str):
        self.component = component
        super().__init__(
            message="Service temporarily unavailable. Please try again later.",
            error_code=ErrorCode.INFRASTRUCTURE_UNAVAILABLE.value,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            retryable=True,
        )


def to_http_exception(error: ServiceError) -> HTTPException:
    """Convert a service error to the API's error response shape."""
    detail: dict[str, object] = {
        "error": error.error_code,
        "message": error.message,
    }
    headers = None
    if error.retryable:
        detail["retryable"] = True
    if error.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(status_code=error.status_code, detail=detail, headers=headers)


__all__ = [
    "ErrorCode",
    "ServiceError",
    "InfrastructureUnavailableError",
    "to_http_exception",
]
