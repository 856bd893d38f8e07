"""
Unit tests for session token issue/decode.
"""

from datetime import timedelta

import pytest
from jose import jwt
from jose.utils import base64url_decode, base64url_encode

from app.core.security import Signer
from app.modules.auth.errors import (
    AuthError,
    InvalidTokenFormatError,
    InvalidTokenSignatureError,
)
from app.modules.auth.tokens import SessionClaims, SessionTokenService


def _resign(secret: str, header: bytes, claims: bytes) -> str:
    """Build a correctly signed token around arbitrary segments."""
    signing_input = (
        f"{base64url_encode(header).decode()}.{base64url_encode(claims).decode()}"
    )
    signature = Signer(secret).sign(signing_input.encode())
    return f"{signing_input}.{base64url_encode(signature).decode()}"


class TestIssueAndDecode:
    """Tests for the issue/decode round trip."""

    @pytest.mark.parametrize(
        "subject_id,role,ttl",
        [
            (1, "student", timedelta(seconds=1)),
            (42, "teacher", timedelta(seconds=60)),
            (7, "admin", timedelta(hours=8)),
            (999999, "owner", timedelta(days=7)),
        ],
    )
    def test_decode_returns_issued_claims(self, session_tokens, clock, subject_id, role, ttl):
        token = session_tokens.issue(subject_id, role, ttl)

        claims = session_tokens.decode(token)

        assert claims == SessionClaims(
            subject_id=subject_id,
            role=role,
            issued_at=clock.now,
            expires_at=clock.now + ttl,
        )

    def test_issued_at_is_truncated_to_seconds(self, session_tokens, clock):
        clock.set(clock.now.replace(microsecond=654321))

        claims = session_tokens.decode(session_tokens.issue(5, "student", timedelta(minutes=1)))

        assert claims.issued_at == clock.now.replace(microsecond=0)
        assert claims.expires_at - claims.issued_at == timedelta(minutes=1)

    def test_token_readable_by_standard_jwt_library(self, session_tokens, clock):
        token = session_tokens.issue(42, "teacher", timedelta(hours=1))

        payload = jwt.decode(
            token,
            "session-test-secret",
            algorithms=["HS256"],
            options={"verify_exp": False, "verify_iat": False, "verify_nbf": False},
        )

        assert payload["sub"] == "42"
        assert payload["role"] == "teacher"
        assert payload["exp"] - payload["iat"] == 3600

    @pytest.mark.parametrize(
        "ttl",
        [timedelta(0), timedelta(seconds=-5), timedelta(milliseconds=500)],
    )
    def test_non_positive_ttl_rejected(self, session_tokens, ttl):
        with pytest.raises(ValueError):
            session_tokens.issue(1, "student", ttl)


class TestDecodeRejections:
    """Tests for malformed and tampered tokens."""

    @pytest.mark.parametrize(
        "token",
        ["", "abc", "a.b", "a.b.c.d", "..", "a..c", "ünïcødé.x.y", "a.b.c"],
    )
    def test_malformed_tokens(self, session_tokens, token):
        with pytest.raises(InvalidTokenFormatError):
            session_tokens.decode(token)

    def test_non_string_token(self, session_tokens):
        with pytest.raises(InvalidTokenFormatError):
            session_tokens.decode(None)

    def test_token_from_other_secret(self, session_tokens, clock):
        other = SessionTokenService(Signer("other-secret"), clock=clock)
        token = other.issue(1, "admin", timedelta(hours=1))

        with pytest.raises(InvalidTokenSignatureError):
            session_tokens.decode(token)

    def test_swapped_claims_fail_signature(self, session_tokens):
        """Claims from one token cannot be combined with another's signature."""
        student = session_tokens.issue(1, "student", timedelta(hours=1))
        owner = session_tokens.issue(1, "owner", timedelta(hours=1))
        header, claims, _ = owner.split(".")
        forged = ".".join([header, claims, student.split(".")[2]])

        with pytest.raises(InvalidTokenSignatureError):
            session_tokens.decode(forged)

    def test_every_single_character_change_is_rejected(self, session_tokens):
        token = session_tokens.issue(42, "teacher", timedelta(hours=1))

        for index, char in enumerate(token):
            replacement = "A" if char != "A" else "B"
            tampered = token[:index] + replacement + token[index + 1 :]
            with pytest.raises(AuthError):
                session_tokens.decode(tampered)

    def test_correctly_signed_but_invalid_claims(self):
        """A valid signature does not make arbitrary claims acceptable."""
        service = SessionTokenService(Signer("session-test-secret"))
        header = b'{"alg":"HS256","typ":"JWT"}'
        cases = [
            b'{"sub":"1","role":"student","iat":100}',  # missing exp
            b'{"sub":"x","role":"student","iat":100,"exp":200}',  # non-numeric sub
            b'{"sub":"1","role":"student","iat":200,"exp":100}',  # exp before iat
            b'{"sub":"1","role":"student","iat":true,"exp":200}',  # bool timestamp
            b'{"sub":"1","role":"student","iat":100,"exp":200,"type":"refresh"}',
            b'["not","an","object"]',
        ]
        for claims in cases:
            with pytest.raises(InvalidTokenFormatError):
                service.decode(_resign("session-test-secret", header, claims))

    def test_other_algorithm_in_header_rejected(self):
        service = SessionTokenService(Signer("session-test-secret"))
        token = _resign(
            "session-test-secret",
            b'{"alg":"none","typ":"JWT"}',
            b'{"sub":"1","role":"student","iat":100,"exp":200}',
        )

        with pytest.raises(InvalidTokenFormatError):
            service.decode(token)

    def test_non_canonical_signature_encoding_rejected(self, session_tokens):
        token = session_tokens.issue(1, "student", timedelta(hours=1))
        header, claims, signature = token.split(".")
        raw = base64url_decode(signature.encode())
        padded = base64url_encode(raw).decode() + "=="

        with pytest.raises(InvalidTokenFormatError):
            session_tokens.decode(f"{header}.{claims}.{padded}")


class TestIsExpired:
    """Tests for the expiry boundary."""

    def test_expiry_boundary(self, session_tokens, clock):
        claims = session_tokens.decode(session_tokens.issue(1, "student", timedelta(seconds=60)))

        assert SessionTokenService.is_expired(claims, clock.now) is False
        assert SessionTokenService.is_expired(claims, clock.now + timedelta(seconds=59)) is False
        assert SessionTokenService.is_expired(claims, clock.now + timedelta(seconds=60)) is True
        assert SessionTokenService.is_expired(claims, clock.now + timedelta(days=1)) is True

    def test_remaining_seconds_rounds_up(self, session_tokens, clock):
        claims = session_tokens.decode(session_tokens.issue(1, "student", timedelta(seconds=60)))

        assert claims.remaining_seconds(clock.now) == 60
        assert claims.remaining_seconds(clock.now + timedelta(seconds=10, milliseconds=500)) == 50
        assert claims.remaining_seconds(claims.expires_at - timedelta(milliseconds=1)) == 1
        assert claims.remaining_seconds(claims.expires_at) == 0
        assert claims.remaining_seconds(claims.expires_at + timedelta(seconds=5)) == -5
