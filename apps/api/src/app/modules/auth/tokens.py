"""
Session Tokens

Stateless bearer tokens carrying identity claims and an expiry.

Tokens are HS256 JWS compact strings (``header.claims.signature``), so any
standard JWT library holding the secret can read them. Signing and
verification go through the injected ``Signer``; this module only handles
the encoding.

``decode`` checks structure and signature only. Expiry and revocation are
checked separately by the auth service, which lets revocation decode a token
to compute its remaining lifetime.
"""

import binascii
import math
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from jose.utils import base64url_decode, base64url_encode

from app.core.security import Signer
from app.modules.auth.errors import InvalidTokenFormatError, InvalidTokenSignatureError

logger = logging.getLogger(__name__)

TOKEN_TYPE = "access"
_HEADER = {"alg": "HS256", "typ": "JWT"}
_REQUIRED_CLAIMS = ("sub", "role", "iat", "exp")


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class SessionClaims:
    """
    Identity claims carried by a session token.

    Attributes:
        subject_id: ID of the authenticated user
        role: User's role at issuance
        issued_at: Issuance time (UTC, whole seconds)
        expires_at: Expiry time (UTC, whole seconds); always after issued_at
    """

    subject_id: int
    role: str
    issued_at: datetime
    expires_at: datetime

    def remaining_seconds(self, now: datetime) -> int:
        """Whole seconds of natural lifetime left at ``now``, rounded up (may be negative)."""
        return math.ceil((self.expires_at - now).total_seconds())


# Compact JWS is assembled here rather than with jose.jws so the secret stays
# inside Signer and decoding can reject non-canonical encodings.
def _encode_segment(data: dict[str, Any]) -> str:
    raw = json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64url_encode(raw).decode("ascii")


def _decode_segment(segment: str) -> dict[str, Any]:
    try:
        data = json.loads(base64url_decode(segment.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidTokenFormatError() from e
    if not isinstance(data, dict):
        raise InvalidTokenFormatError()
    return data


def _as_int(value: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidTokenFormatError()
    return value


class SessionTokenService:
    """Issues and decodes session tokens."""

    def __init__(self, signer: Signer, clock: Callable[[], datetime] = utc_now):
        self._signer = signer
        self._clock = clock

    def issue(self, subject_id: int, role: str, ttl: timedelta) -> str:
        """
        Issue a signed session token.

        Args:
            subject_id: ID of the user the token identifies
            role: User's role
            ttl: Token lifetime; must be positive

        Returns:
            Compact encoded token
        """
        if ttl.total_seconds() < 1:
            raise ValueError("Session token ttl must be at least one second")

        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + timedelta(seconds=int(ttl.total_seconds()))

        claims = {
            "sub": str(subject_id),
            "role": role,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "type": TOKEN_TYPE,
        }
        signing_input = f"{_encode_segment(_HEADER)}.{_encode_segment(claims)}"
        signature = self._signer.sign(signing_input.encode("ascii"))

        logger.debug(f"Issued session token for user {subject_id} (expires {expires_at})")
        return f"{signing_input}.{base64url_encode(signature).decode('ascii')}"

    def decode(self, token: str) -> SessionClaims:
        """
        Verify a token's signature and return its claims.

        Raises:
            InvalidTokenFormatError: Token is not a well-formed session token
            InvalidTokenSignatureError: Signature does not match the contents
        """
        if not isinstance(token, str) or not token.isascii():
            raise InvalidTokenFormatError()

        parts = token.split(".")
        if len(parts) != 3 or not all(parts):
            raise InvalidTokenFormatError()
        header_segment, claims_segment, signature_segment = parts

        try:
            signature = base64url_decode(signature_segment.encode("ascii"))
        except (binascii.Error, ValueError) as e:
            raise InvalidTokenFormatError() from e
        # Only the canonical encoding of a signature is accepted
        if base64url_encode(signature).decode("ascii") != signature_segment:
            raise InvalidTokenFormatError()

        signing_input = f"{header_segment}.{claims_segment}".encode("ascii")
        if not self._signer.verify(signing_input, signature):
            raise InvalidTokenSignatureError()

        header = _decode_segment(header_segment)
        if header.get("alg") != _HEADER["alg"]:
            raise InvalidTokenFormatError()

        return self._parse_claims(_decode_segment(claims_segment))

    @staticmethod
    def _parse_claims(payload: dict[str, Any]) -> SessionClaims:
        if any(name not in payload for name in _REQUIRED_CLAIMS):
            raise InvalidTokenFormatError()
        if payload.get("type", TOKEN_TYPE) != TOKEN_TYPE:
            raise InvalidTokenFormatError()

        subject = payload["sub"]
        role = payload["role"]
        if not isinstance(subject, str) or not subject.isdigit():
            raise InvalidTokenFormatError()
        if not isinstance(role, str) or not role:
            raise InvalidTokenFormatError()

        try:
            issued_at = datetime.fromtimestamp(_as_int(payload["iat"]), tz=UTC)
            expires_at = datetime.fromtimestamp(_as_int(payload["exp"]), tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise InvalidTokenFormatError() from e
        if expires_at <= issued_at:
            raise InvalidTokenFormatError()

        return SessionClaims(
            subject_id=int(subject),
            role=role,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    @staticmethod
    def is_expired(claims: SessionClaims, now: datetime) -> bool:
        """True once ``now`` reaches the token's expiry."""
        return now >= claims.expires_at


__all__ = ["SessionClaims", "SessionTokenService", "utc_now"]
