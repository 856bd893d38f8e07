"""
Authentication Dependencies

FastAPI dependencies that authenticate the bearer token on each request.

Format and signature failures are reported identically (INVALID_TOKEN) so
clients cannot probe which check failed. Expired and revoked tokens carry
their own reason codes; an unreachable revocation store under the
fail-closed policy yields 503 INFRASTRUCTURE_UNAVAILABLE.
"""

import logging
from collections.abc import Callable, Coroutine
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.errors import ServiceError, to_http_exception
from app.modules.auth.errors import InvalidTokenFormatError, InvalidTokenSignatureError
from app.modules.auth.service import AuthService, get_auth_service
from app.modules.auth.tokens import SessionClaims

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="Session token issued by /auth/login",
)


def _invalid_token() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "error": "INVALID_TOKEN",
            "message": "Invalid authentication token.",
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_bearer_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Extract the raw bearer token from the Authorization header."""
    return credentials.credentials


async def get_current_user(
    token: str = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> SessionClaims:
    """
    FastAPI dependency that authenticates the request's session token.

    Usage:
        @router.get("/me")
        async def me(user: SessionClaims = Depends(get_current_user)):
            ...

    Raises:
        HTTPException 401: Invalid, expired or revoked token
        HTTPException 503: Revocation store unavailable (fail-closed only)
    """
    try:
        claims = await auth_service.authenticate(token)
    except (InvalidTokenFormatError, InvalidTokenSignatureError) as e:
        logger.warning(f"Rejected session token: {e.error_code}")
        raise _invalid_token() from e
    except ServiceError as e:
        raise to_http_exception(e) from e

    logger.debug(f"Authenticated user {claims.subject_id} ({claims.role})")
    return claims


def require_roles(
    *roles: str,
) -> Callable[..., Coroutine[Any, Any, SessionClaims]]:
    """
    Dependency factory restricting an endpoint to the given roles.

    Usage:
        @router.post("/sessions/{id}/checkin-token")
        async def issue(user: SessionClaims = Depends(require_roles("teacher", "admin"))):
            ...
    """

    async def dependency(user: SessionClaims = Depends(get_current_user)) -> SessionClaims:
        if user.role not in roles:
            logger.warning(
                f"Access denied: user {user.subject_id} has role '{user.role}', "
                f"requires one of {list(roles)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "INSUFFICIENT_ROLE",
                    "message": "You do not have access to this action.",
                },
            )
        return user

    return dependency


__all__ = ["get_bearer_token", "get_current_user", "require_roles", "security"]
