"""
Attendance Service Layer

Check-in issuance and the redemption protocol that turns a valid check-in
token into at most one attendance record per (session, student).

Redemption states:

    RECEIVED -> SIGNATURE_CHECKED -> ELIGIBILITY_CHECKED
             -> RECORDED | ALREADY_RECORDED | REJECTED

- A token that is tampered with or past its window is REJECTED with the
  validation error as reason.
- A student who is not on the session's roster is REJECTED(NOT_ELIGIBLE).
- The write relies on the attendance unique constraint: the first insert
  is RECORDED, every later or concurrent one is ALREADY_RECORDED and gets the
  existing record. Re-scanning the same token is therefore safe.

Rejections are results, not exceptions. Only infrastructure failures
(database or roster unreachable, timeouts) raise.
"""

import enum
import hashlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import quote

from fastapi import Request

from app.core.errors import ErrorCode, ServiceError
from app.modules.attendance.checkin_tokens import CheckinTokenService
from app.modules.attendance.models import StudentAttendance
from app.modules.attendance.repository import AttendanceMetadata, AttendanceRepository
from app.modules.attendance.roster import RosterGateway
from app.modules.auth.tokens import utc_now

logger = logging.getLogger(__name__)

# Constants
REDEEM_PATH = "/api/v1/attendance/checkin/redeem"
DEFAULT_QR_SIZE = 200


class SessionNotFoundError(ServiceError):
    """Raised when a check-in token is requested for an unknown session."""

    def __init__(self, session_id: int):
        super().__init__(
            message=f"Class session {session_id} not found",
            error_code="SESSION_NOT_FOUND",
            status_code=404,
        )


class RedemptionState(str, enum.Enum):
    """Progress of a single redemption attempt."""

    RECEIVED = "RECEIVED"
    SIGNATURE_CHECKED = "SIGNATURE_CHECKED"
    ELIGIBILITY_CHECKED = "ELIGIBILITY_CHECKED"
    RECORDED = "RECORDED"
    ALREADY_RECORDED = "ALREADY_RECORDED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class RedemptionResult:
    """Terminal outcome of ``RedemptionCoordinator.redeem``."""

    status: RedemptionState
    reason: str | None = None
    record: StudentAttendance | None = None

    @classmethod
    def rejected(cls, reason: str) -> "RedemptionResult":
        return cls(status=RedemptionState.REJECTED, reason=reason)


@dataclass(frozen=True)
class CheckinIssue:
    """A freshly issued check-in token, ready to render as a QR code."""

    token: str
    displayable_payload: str
    expires_at: datetime
    qr_size: int


def checkin_fingerprint(encoded: str) -> str:
    """SHA-256 hex digest of an encoded check-in token."""
    return hashlib.sha256(encoded.encode()).hexdigest()


class RedemptionCoordinator:
    """
    Issues check-in tokens and redeems them into attendance records.

    Collaborators are injected: the token service (pure), the roster
    (eligibility) and the attendance repository (storage).
    """

    def __init__(
        self,
        checkin_tokens: CheckinTokenService,
        roster: RosterGateway,
        attendance: AttendanceRepository,
        *,
        redeem_path: str = REDEEM_PATH,
        qr_size: int = DEFAULT_QR_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._tokens = checkin_tokens
        self._roster = roster
        self._attendance = attendance
        self._redeem_path = redeem_path
        self._qr_size = qr_size
        self._clock = clock

    async def issue_checkin(self, session_id: int, issuer_id: int) -> CheckinIssue:
        """
        Issue a check-in token for a session and record its metadata.

        Args:
            session_id: Session the token admits students to
            issuer_id: User (teacher or admin) issuing the token

        Returns:
            CheckinIssue with the encoded token, a deep link carrying it
            (what the QR code shows) and its expiry

        Raises:
            SessionNotFoundError: No session with that ID
            InfrastructureUnavailableError: Database unreachable or timed out
        """
        token = self._tokens.issue(session_id, issuer_id)
        encoded = self._tokens.encode(token)
        fingerprint = checkin_fingerprint(encoded)

        found = await self._attendance.record_checkin_issued(
            session_id, issuer_id, token.issued_at, fingerprint
        )
        if not found:
            logger.warning(f"Check-in token requested for unknown session {session_id}")
            raise SessionNotFoundError(session_id)

        logger.info(
            f"Check-in token {fingerprint[:12]} issued for session {session_id} "
            f"by user {issuer_id}"
        )
        return CheckinIssue(
            token=encoded,
            displayable_payload=f"{self._redeem_path}?data={quote(encoded, safe='')}",
            expires_at=self._tokens.expires_at(token),
            qr_size=self._qr_size,
        )

    async def redeem(self, token: str | bytes, holder_id: int) -> RedemptionResult:
        """
        Redeem a check-in token for ``holder_id``.

        Returns:
            RedemptionResult; status RECORDED for the first successful
            redemption, ALREADY_RECORDED (with the existing record) for every
            repeat, REJECTED with a reason otherwise

        Raises:
            InfrastructureUnavailableError: Database or roster unreachable or
                timed out
        """
        state = RedemptionState.RECEIVED
        logger.debug(f"Redemption by student {holder_id}: {state.value}")

        validation = self._tokens.validate(token)
        if not validation.valid:
            logger.info(
                f"Check-in rejected for student {holder_id}: {validation.error.value}"
            )
            return RedemptionResult.rejected(validation.error.value)
        state = RedemptionState.SIGNATURE_CHECKED
        logger.debug(f"Redemption by student {holder_id}: {state.value}")

        session_id = validation.session_id
        now = self._clock()
        if not await self._roster.is_eligible(holder_id, session_id, now):
            logger.info(
                f"Check-in rejected for student {holder_id} in session {session_id}: "
                f"{ErrorCode.NOT_ELIGIBLE.value}"
            )
            return RedemptionResult.rejected(ErrorCode.NOT_ELIGIBLE.value)
        state = RedemptionState.ELIGIBILITY_CHECKED
        logger.debug(f"Redemption by student {holder_id}: {state.value}")

        result = await self._attendance.insert_attendance_if_absent(
            session_id,
            holder_id,
            AttendanceMetadata(check_in_time=now, checkin_issuer_id=validation.issuer_id),
        )
        if result.inserted:
            return RedemptionResult(status=RedemptionState.RECORDED, record=result.record)

        logger.info(f"Attendance already recorded for student {holder_id} in session {session_id}")
        return RedemptionResult(status=RedemptionState.ALREADY_RECORDED, record=result.record)


def get_redemption_coordinator(request: Request) -> RedemptionCoordinator:
    """FastAPI dependency returning the coordinator built at startup."""
    return request.app.state.redemption_coordinator


__all__ = [
    "CheckinIssue",
    "RedemptionCoordinator",
    "RedemptionResult",
    "RedemptionState",
    "SessionNotFoundError",
    "checkin_fingerprint",
    "get_redemption_coordinator",
]
