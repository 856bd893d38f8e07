"""
Security Utilities

Signing primitives for bearer credentials and password verification for
login.

The Signer is the only object that holds a signing secret. It wraps a
python-jose HMAC key, so signatures are keyed HMAC-SHA256 and verification
uses a constant-time comparison. Session and check-in tokens each get their
own Signer with their own secret.
"""

import logging

from jose import jwk
from jose.constants import ALGORITHMS
from jose.exceptions import JWKError
from passlib.context import CryptContext

logger = logging.getLogger(__name__)

SIGNATURE_ALGORITHM = ALGORITHMS.HS256
SIGNATURE_LENGTH = 32  # bytes produced by HMAC-SHA256

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class Signer:
    """
    Produces and verifies HMAC-SHA256 signatures over byte payloads.

    Signing is deterministic and stateless, so one instance can be shared
    across workers and coroutines.
    """

    algorithm = SIGNATURE_ALGORITHM

    def __init__(self, secret: str | bytes):
        if not secret:
            raise ValueError("Signer secret must not be empty")
        self._key = jwk.construct(secret, self.algorithm)

    def sign(self, payload: bytes) -> bytes:
        """Return the raw signature for ``payload``."""
        return self._key.sign(payload)

    def verify(self, payload: bytes, signature: bytes) -> bool:
        """
        Check ``signature`` against ``payload``.

        Never raises: malformed input (wrong types, wrong length) is simply
        not a valid signature.
        """
        if not isinstance(payload, bytes | bytearray):
            return False
        if not isinstance(signature, bytes | bytearray):
            return False
        if len(signature) != SIGNATURE_LENGTH:
            return False
        try:
            return bool(self._key.verify(bytes(payload), bytes(signature)))
        except (JWKError, TypeError, ValueError):
            logger.debug("Signature verification raised; treating as invalid")
            return False

    def __repr__(self) -> str:
        # Keep the key out of reprs and tracebacks
        return f"Signer(algorithm={self.algorithm})"


def hash_password(password: str) -> str:
    """Hash a password for storage."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Check a plain password against a stored hash."""
    try:
        return pwd_context.verify(plain_password, password_hash)
    except ValueError:
        # Unknown or corrupt hash format
        return False


__all__ = [
    "Signer",
    "SIGNATURE_ALGORITHM",
    "hash_password",
    "verify_password",
]
