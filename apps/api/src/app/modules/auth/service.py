"""
Authentication Service

Session token lifecycle: login issues a token, every request authenticates
it, logout revokes it.

Authentication order:
1. Decode the token (structure + signature)           -> INVALID_FORMAT / INVALID_SIGNATURE
2. Check expiry                                         -> EXPIRED
3. Check the revocation store                           -> REVOKED

If the revocation store is unreachable in step 3 the configured policy
applies. Fail-open (default) keeps the API available during a Redis outage
at the cost of honouring logged-out tokens until Redis is back; every such
request is logged at WARNING. Fail-closed denies with
INFRASTRUCTURE_UNAVAILABLE (HTTP 503, retryable).
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import Request

from app.core.database import StorageBackend
from app.core.security import verify_password
from app.modules.auth.errors import (
    InvalidCredentialsError,
    TokenExpiredError,
    TokenRevokedError,
)
from app.modules.auth.revocation import (
    RevocationRecord,
    RevocationStore,
    RevocationStoreUnavailableError,
)
from app.modules.auth.tokens import SessionClaims, SessionTokenService, utc_now
from app.modules.users.models import User
from app.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

LOGOUT_REASON = "logout"


@dataclass(frozen=True)
class LoginResult:
    """Token issued at login, with the user it identifies."""

    access_token: str
    expires_at: datetime
    user: User


class AuthService:
    """Issues, authenticates and revokes session tokens."""

    def __init__(
        self,
        tokens: SessionTokenService,
        revocations: RevocationStore | None,
        *,
        token_ttl: timedelta,
        fail_open: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.tokens = tokens
        self.revocations = revocations
        self.token_ttl = token_ttl
        self.fail_open = fail_open
        self._clock = clock

    async def authenticate(self, token: str) -> SessionClaims:
        """
        Validate a bearer token and return its claims.

        Raises:
            InvalidTokenFormatError: Malformed token
            InvalidTokenSignatureError: Signature mismatch
            TokenExpiredError: Token past its expiry
            TokenRevokedError: Token revoked before expiry
            RevocationStoreUnavailableError: Store unreachable and fail-closed
        """
        claims = self.tokens.decode(token)

        if self.tokens.is_expired(claims, self._clock()):
            raise TokenExpiredError()

        try:
            revoked = await self._is_revoked(token)
        except RevocationStoreUnavailableError:
            if not self.fail_open:
                logger.error("Revocation store unavailable; denying request (fail-closed)")
                raise
            logger.warning(
                f"Revocation store unavailable; allowing user {claims.subject_id} (fail-open)"
            )
            return claims

        if revoked:
            logger.info(f"Rejected revoked token for user {claims.subject_id}")
            raise TokenRevokedError()

        return claims

    async def _is_revoked(self, token: str) -> bool:
        if self.revocations is None:
            raise RevocationStoreUnavailableError()
        return await self.revocations.is_revoked(token)

    async def logout(self, token: str, reason: str = LOGOUT_REASON) -> RevocationRecord | None:
        """
        Revoke ``token`` so it fails authentication until it would have
        expired anyway.

        Returns:
            The revocation record, or None if the token had already expired

        Raises:
            InvalidTokenFormatError / InvalidTokenSignatureError: Invalid token
            RevocationStoreUnavailableError: Store unreachable (always raised;
                a logout must not report success without a record)
        """
        claims = self.tokens.decode(token)
        if self.revocations is None:
            raise RevocationStoreUnavailableError()
        return await self.revocations.revoke(token, claims, reason)

    async def login(self, storage: StorageBackend, identifier: str, password: str) -> LoginResult:
        """
        Check credentials and issue a session token.

        Raises:
            InvalidCredentialsError: Unknown user, wrong password or inactive account
        """
        user = await storage.transaction(lambda db: UserRepository.get_by_login(db, identifier))

        if user is None:
            logger.warning("Login attempt for unknown user")
            raise InvalidCredentialsError()

        # bcrypt is CPU-bound; keep it off the event loop
        if not await asyncio.to_thread(verify_password, password, user.password_hash):
            logger.warning(f"Invalid password for user {user.id}")
            raise InvalidCredentialsError()

        if not user.is_active:
            logger.warning(f"Login attempt for inactive user {user.id}")
            raise InvalidCredentialsError()

        token = self.tokens.issue(user.id, user.role.value, self.token_ttl)
        claims = self.tokens.decode(token)

        logger.info(f"User logged in: {user.id} (role: {user.role.value})")
        return LoginResult(access_token=token, expires_at=claims.expires_at, user=user)


def get_auth_service(request: Request) -> AuthService:
    """FastAPI dependency returning the AuthService built at startup."""
    return request.app.state.auth_service


__all__ = ["AuthService", "LoginResult", "get_auth_service"]
