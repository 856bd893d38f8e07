"""
Check-in Tokens

Short-lived signed tokens shown as a QR code in class and scanned by
students to record attendance.

Encoded form (compact JSON, no whitespace):

    {"prefix":"EKLS","session_id":42,"issuer_id":7,
     "issued_at":1760868000000,"signature":"<64 lowercase hex chars>"}

``issued_at`` is in epoch milliseconds. The signature is HMAC-SHA256 over
``prefix|session_id|issuer_id|issued_at`` with the check-in secret, so a
token cannot be forged from its (guessable) public fields, and changing any
byte of the encoded token invalidates it.

Validation is stateless: a token is valid from ``issued_at`` until
``issued_at + window``. It says nothing about who may redeem it; that is
decided by the redemption step.
"""

import enum
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.core.security import Signer
from app.modules.auth.tokens import utc_now

logger = logging.getLogger(__name__)

_FIELDS = ("prefix", "session_id", "issuer_id", "issued_at", "signature")
_SIGNATURE_RE = re.compile(r"[0-9a-f]{64}")


class CheckinTokenError(str, enum.Enum):
    """Why a check-in token failed validation."""

    TAMPERED = "TAMPERED"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class CheckinToken:
    """Decoded check-in token."""

    namespace_prefix: str
    session_id: int
    issuer_id: int
    issued_at: datetime
    signature: str

    @property
    def issued_at_ms(self) -> int:
        return _to_millis(self.issued_at)


@dataclass(frozen=True)
class CheckinValidation:
    """Outcome of validating an encoded check-in token."""

    valid: bool
    error: CheckinTokenError | None = None
    session_id: int | None = None
    issuer_id: int | None = None
    issued_at: datetime | None = None

    @classmethod
    def rejected(cls, error: CheckinTokenError) -> "CheckinValidation":
        return cls(valid=False, error=error)


_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _to_millis(value: datetime) -> int:
    return (value - _EPOCH) // timedelta(milliseconds=1)


def _from_millis(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class CheckinTokenService:
    """Issues and validates check-in tokens."""

    def __init__(
        self,
        signer: Signer,
        *,
        namespace_prefix: str,
        window: timedelta,
        clock_skew: timedelta = timedelta(seconds=60),
        clock: Callable[[], datetime] = utc_now,
    ):
        if not namespace_prefix or "|" in namespace_prefix:
            raise ValueError("namespace_prefix must be non-empty and must not contain '|'")
        if window <= timedelta(0):
            raise ValueError("window must be positive")
        self._signer = signer
        self.namespace_prefix = namespace_prefix
        self.window = window
        self.clock_skew = clock_skew
        self._clock = clock

    def _signing_input(
        self, prefix: str, session_id: int, issuer_id: int, issued_at_ms: int
    ) -> bytes:
        return f"{prefix}|{session_id}|{issuer_id}|{issued_at_ms}".encode()

    def issue(self, session_id: int, issuer_id: int) -> CheckinToken:
        """
        Issue a token for ``session_id`` on behalf of ``issuer_id``.

        ``issued_at`` is the current time truncated to milliseconds, the
        precision carried by the encoded token.
        """
        issued_at_ms = _to_millis(self._clock())

        signature = self._signer.sign(
            self._signing_input(self.namespace_prefix, session_id, issuer_id, issued_at_ms)
        ).hex()

        logger.info(f"Issued check-in token for session {session_id} by user {issuer_id}")
        return CheckinToken(
            namespace_prefix=self.namespace_prefix,
            session_id=session_id,
            issuer_id=issuer_id,
            issued_at=_from_millis(issued_at_ms),
            signature=signature,
        )

    @staticmethod
    def encode(token: CheckinToken) -> str:
        """Serialize a token for display (e.g. inside a QR code)."""
        return json.dumps(
            {
                "prefix": token.namespace_prefix,
                "session_id": token.session_id,
                "issuer_id": token.issuer_id,
                "issued_at": token.issued_at_ms,
                "signature": token.signature,
            },
            separators=(",", ":"),
        )

    def expires_at(self, token: CheckinToken) -> datetime:
        """First instant at which ``token`` is no longer valid."""
        return token.issued_at + self.window

    def validate(self, encoded: str | bytes) -> CheckinValidation:
        """
        Validate an encoded token.

        Returns:
            CheckinValidation with the token's session and issuer when valid;
            otherwise ``error`` is TAMPERED (malformed, wrong prefix, bad
            signature, issued in the future) or EXPIRED (window elapsed)
        """
        token = self._parse(encoded)
        if token is None:
            return CheckinValidation.rejected(CheckinTokenError.TAMPERED)

        expected = self._signing_input(
            token.namespace_prefix, token.session_id, token.issuer_id, token.issued_at_ms
        )
        if not self._signer.verify(expected, bytes.fromhex(token.signature)):
            logger.warning(f"Check-in token signature mismatch for session {token.session_id}")
            return CheckinValidation.rejected(CheckinTokenError.TAMPERED)

        now = self._clock()
        if token.issued_at - now > self.clock_skew:
            logger.warning(f"Check-in token for session {token.session_id} issued in the future")
            return CheckinValidation.rejected(CheckinTokenError.TAMPERED)

        if now - token.issued_at >= self.window:
            return CheckinValidation.rejected(CheckinTokenError.EXPIRED)

        return CheckinValidation(
            valid=True,
            session_id=token.session_id,
            issuer_id=token.issuer_id,
            issued_at=token.issued_at,
        )

    def _parse(self, encoded: str | bytes) -> CheckinToken | None:
        """Strictly parse an encoded token; None on any structural problem."""
        if isinstance(encoded, bytes | bytearray):
            try:
                encoded = bytes(encoded).decode("utf-8")
            except UnicodeDecodeError:
                return None
        if not isinstance(encoded, str):
            return None

        try:
            data = json.loads(encoded)
        except ValueError:
            return None

        if not isinstance(data, dict) or set(data) != set(_FIELDS):
            return None

        prefix = data["prefix"]
        signature = data["signature"]
        if prefix != self.namespace_prefix:
            return None
        if not isinstance(signature, str) or not _SIGNATURE_RE.fullmatch(signature):
            return None
        if not all(_is_int(data[name]) for name in ("session_id", "issuer_id", "issued_at")):
            return None
        if data["session_id"] <= 0 or data["issuer_id"] <= 0 or data["issued_at"] < 0:
            return None

        try:
            issued_at = _from_millis(data["issued_at"])
        except (OverflowError, OSError, ValueError):
            return None

        return CheckinToken(
            namespace_prefix=prefix,
            session_id=data["session_id"],
            issuer_id=data["issuer_id"],
            issued_at=issued_at,
            signature=signature,
        )


__all__ = [
    "CheckinToken",
    "CheckinTokenError",
    "CheckinTokenService",
    "CheckinValidation",
]
