"""
Fixtures for authentication tests.
"""

from datetime import timedelta

import pytest

from app.core.security import Signer
from app.modules.auth.revocation import RevocationStore
from app.modules.auth.service import AuthService
from app.modules.auth.tokens import SessionTokenService

SESSION_SECRET = "session-test-secret"


@pytest.fixture
def signer():
    return Signer(SESSION_SECRET)


@pytest.fixture
def session_tokens(signer, clock):
    """Session token service on the test clock."""
    return SessionTokenService(signer, clock=clock)


@pytest.fixture
def revocation_store(fake_redis, clock):
    """Revocation store with the default one-day floor."""
    return RevocationStore(fake_redis, floor_ttl_seconds=86400, clock=clock)


@pytest.fixture
def auth_service(session_tokens, revocation_store, clock):
    """Auth service with fail-open revocation checks."""
    return AuthService(
        session_tokens,
        revocation_store,
        token_ttl=timedelta(days=7),
        fail_open=True,
        clock=clock,
    )
