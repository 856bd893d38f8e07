"""
Token Revocation Store

Records session tokens invalidated before their natural expiry, in Redis.

Key:    revoked_token:{sha256(token)}
Value:  JSON {subject_id, role, revoked_at, reason}
TTL:    max(remaining token lifetime, floor_ttl)

The TTL is never shorter than the token's remaining lifetime, so a revoked
token cannot pass validation before it expires naturally. Redis evicts the
record afterwards; nothing else writes or deletes these keys.

Redis errors and timeouts raise ``RevocationStoreUnavailableError``. Whether
that allows or denies the request is decided by the caller.
"""

import hashlib
import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.errors import InfrastructureUnavailableError
from app.modules.auth.tokens import SessionClaims, SessionTokenService, utc_now

logger = logging.getLogger(__name__)

KEY_PREFIX = "revoked_token:"


class RevocationStoreUnavailableError(InfrastructureUnavailableError):
    """Raised when the revocation store cannot be reached."""

    def __init__(self):
        super().__init__("revocation_store")


@dataclass(frozen=True)
class RevocationRecord:
    """Stored value for a revoked token."""

    subject_id: int
    role: str
    revoked_at: str
    reason: str
    ttl_seconds: int

    def to_json(self) -> str:
        data = asdict(self)
        data.pop("ttl_seconds")
        return json.dumps(data, separators=(",", ":"))


class RevocationStore:
    """Redis-backed record of revoked session tokens."""

    def __init__(
        self,
        redis: Redis,
        floor_ttl_seconds: int,
        clock: Callable[[], datetime] = utc_now,
    ):
        if floor_ttl_seconds < 0:
            raise ValueError("floor_ttl_seconds must not be negative")
        self._redis = redis
        self.floor_ttl_seconds = floor_ttl_seconds
        self._clock = clock

    @staticmethod
    def fingerprint(token: str) -> str:
        """Deterministic lookup key for ``token`` (no claim decoding)."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    @classmethod
    def _key(cls, token: str) -> str:
        return f"{KEY_PREFIX}{cls.fingerprint(token)}"

    async def revoke(
        self,
        token: str,
        claims: SessionClaims,
        reason: str,
    ) -> RevocationRecord | None:
        """
        Revoke ``token`` until at least its natural expiry.

        Returns:
            The stored record, or None if the token had already expired
            (nothing to protect)

        Raises:
            RevocationStoreUnavailableError: If Redis is unreachable
        """
        now = self._clock()
        if SessionTokenService.is_expired(claims, now):
            logger.debug(f"Token for user {claims.subject_id} already expired; not revoking")
            return None

        # Rounded up, so the record never expires before the token does
        ttl = max(claims.remaining_seconds(now), self.floor_ttl_seconds)
        record = RevocationRecord(
            subject_id=claims.subject_id,
            role=claims.role,
            revoked_at=now.isoformat(),
            reason=reason,
            ttl_seconds=ttl,
        )

        try:
            await self._redis.set(self._key(token), record.to_json(), ex=ttl)
        except (RedisError, OSError) as e:
            logger.error(f"Failed to write revocation for user {claims.subject_id}: {e}")
            raise RevocationStoreUnavailableError() from e

        logger.info(
            f"Revoked token {self.fingerprint(token)[:12]} for user {claims.subject_id} "
            f"(reason={reason}, ttl={ttl}s)"
        )
        return record

    async def is_revoked(self, token: str) -> bool:
        """
        Check whether ``token`` has been revoked.

        Raises:
            RevocationStoreUnavailableError: If Redis is unreachable
        """
        try:
            return bool(await self._redis.exists(self._key(token)))
        except (RedisError, OSError) as e:
            raise RevocationStoreUnavailableError() from e

    async def get_record(self, token: str) -> dict | None:
        """Return the stored revocation details for ``token``, if any."""
        try:
            raw = await self._redis.get(self._key(token))
        except (RedisError, OSError) as e:
            raise RevocationStoreUnavailableError() from e
        return json.loads(raw) if raw else None


__all__ = [
    "RevocationRecord",
    "RevocationStore",
    "RevocationStoreUnavailableError",
]
