"""
Attendance Repository

Database operations for check-in metadata and attendance records.

Design Principles:
- Attendance uniqueness is enforced by the (session_id, student_id) unique
  constraint. Inserts ignore conflicts and then read the surviving row, so
  concurrent check-ins never need a read-before-write.
- Sweeping check-in metadata is one UPDATE statement; running it twice, or
  alongside redemptions, is harmless.
- Timezone-aware datetime handling (UTC)
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import StorageBackend
from app.modules.attendance.models import AttendanceStatus, ClassSession, StudentAttendance

logger = logging.getLogger(__name__)

ATTENDANCE_CONFLICT_COLUMNS = ("session_id", "student_id")


@dataclass(frozen=True)
class AttendanceMetadata:
    """Details stored with a new attendance record."""

    check_in_time: datetime
    checkin_issuer_id: int | None = None
    status: AttendanceStatus = AttendanceStatus.PRESENT
    qr_check_in: bool = True
    notes: str | None = None


@dataclass(frozen=True)
class InsertResult:
    """
    Result of an insert-if-absent.

    ``inserted`` is False when a record for the pair already existed; in that
    case ``record`` is the existing row.
    """

    inserted: bool
    record: StudentAttendance


class AttendanceRepository:
    """Storage collaborator for check-in issuance, redemption and sweeping."""

    def __init__(self, storage: StorageBackend):
        self._storage = storage

    async def get_session(self, session_id: int) -> ClassSession | None:
        """Get a class session by ID."""
        return await self._storage.transaction(lambda db: db.get(ClassSession, session_id))

    async def record_checkin_issued(
        self,
        session_id: int,
        issuer_id: int,
        issued_at: datetime,
        fingerprint: str,
    ) -> bool:
        """
        Store metadata about the latest check-in token issued for a session.

        Returns:
            True if the session exists and was updated
        """
        stmt = (
            update(ClassSession)
            .where(ClassSession.id == session_id)
            .values(
                checkin_issued_at=issued_at,
                checkin_issued_by=issuer_id,
                checkin_fingerprint=fingerprint,
            )
            .execution_options(synchronize_session=False)
        )
        updated = await self._storage.execute(stmt)
        return updated > 0

    async def insert_attendance_if_absent(
        self,
        session_id: int,
        holder_id: int,
        metadata: AttendanceMetadata,
    ) -> InsertResult:
        """
        Create the attendance record for (session_id, holder_id) unless one
        exists.

        Exactly one caller observes ``inserted=True`` for a pair, however
        many race; all callers get the same record back.
        """
        values = {
            "session_id": session_id,
            "student_id": holder_id,
            "status": metadata.status,
            "check_in_time": metadata.check_in_time,
            "qr_check_in": metadata.qr_check_in,
            "checkin_issuer_id": metadata.checkin_issuer_id,
            "notes": metadata.notes,
        }

        async def _insert(db: AsyncSession) -> InsertResult:
            stmt = self._storage.insert_ignoring_conflict(
                StudentAttendance.__table__,
                values,
                ATTENDANCE_CONFLICT_COLUMNS,
            ).returning(StudentAttendance.__table__.c.id)
            inserted_id = (await db.execute(stmt)).scalar_one_or_none()

            result = await db.execute(
                select(StudentAttendance).where(
                    StudentAttendance.session_id == session_id,
                    StudentAttendance.student_id == holder_id,
                )
            )
            return InsertResult(inserted=inserted_id is not None, record=result.scalar_one())

        result = await self._storage.transaction(_insert)
        if result.inserted:
            logger.info(
                f"Recorded attendance {result.record.id} for student {holder_id} "
                f"in session {session_id}"
            )
        return result

    async def get_attendance(self, session_id: int, holder_id: int) -> StudentAttendance | None:
        """Get the attendance record for a (session, student) pair."""
        records = await self._storage.query_all(
            select(StudentAttendance).where(
                StudentAttendance.session_id == session_id,
                StudentAttendance.student_id == holder_id,
            )
        )
        return records[0] if records else None

    async def sweep_expired_checkin_metadata(self, cutoff: datetime) -> int:
        """
        Clear check-in metadata for tokens issued before ``cutoff``.

        Returns:
            Number of sessions cleared
        """
        stmt = (
            update(ClassSession)
            .where(
                ClassSession.checkin_issued_at.is_not(None),
                ClassSession.checkin_issued_at < cutoff,
            )
            .values(
                checkin_issued_at=None,
                checkin_issued_by=None,
                checkin_fingerprint=None,
            )
            .execution_options(synchronize_session=False)
        )
        return await self._storage.execute(stmt)


__all__ = [
    "AttendanceMetadata",
    "AttendanceRepository",
    "InsertResult",
]
