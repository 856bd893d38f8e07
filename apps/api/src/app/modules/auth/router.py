"""Authentication router."""

import logging

from fastapi import APIRouter, Depends

from app.core.auth import get_bearer_token, get_current_user
from app.core.database import StorageBackend, get_storage
from app.core.errors import ServiceError, to_http_exception
from app.modules.auth.schemas import (
    ClaimsResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    UserResponse,
)
from app.modules.auth.service import AuthService, get_auth_service
from app.modules.auth.tokens import SessionClaims

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    storage: StorageBackend = Depends(get_storage),
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    """
    Authenticate with username (or email) and password.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 503: Database unavailable
    """
    try:
        result = await auth_service.login(storage, credentials.username, credentials.password)
    except ServiceError as e:
        raise to_http_exception(e) from e

    return LoginResponse(
        access_token=result.access_token,
        token_type="bearer",
        expires_at=result.expires_at,
        user=UserResponse(
            id=result.user.id,
            username=result.user.username,
            email=result.user.email,
            role=result.user.role.value,
        ),
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    user: SessionClaims = Depends(get_current_user),
    token: str = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> LogoutResponse:
    """
    Revoke the presented session token.

    Raises:
        HTTPException 401: Token invalid, expired or already revoked
        HTTPException 503: Revocation store unavailable
    """
    try:
        record = await auth_service.logout(token)
    except ServiceError as e:
        raise to_http_exception(e) from e

    logger.info(f"User logged out: {user.subject_id}")
    return LogoutResponse(
        revoked=record is not None,
        message="Logged out successfully.",
    )


@router.get("/me", response_model=ClaimsResponse)
async def me(user: SessionClaims = Depends(get_current_user)) -> ClaimsResponse:
    """Return the claims of the authenticated session token."""
    return ClaimsResponse(
        subject_id=user.subject_id,
        role=user.role,
        issued_at=user.issued_at,
        expires_at=user.expires_at,
    )
