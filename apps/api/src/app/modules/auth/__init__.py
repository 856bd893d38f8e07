"""
Authentication module.

Session tokens (issue/decode), the Redis revocation store, and the
login/logout/authenticate service.
"""

from app.modules.auth.revocation import RevocationStore
from app.modules.auth.service import AuthService
from app.modules.auth.tokens import SessionClaims, SessionTokenService

__all__ = ["AuthService", "RevocationStore", "SessionClaims", "SessionTokenService"]
