"""
Tests for the attendance repository and roster gateway against SQLite.

These tests cover:
- Check-in metadata writes
- Insert-if-absent semantics backed by the unique constraint
- Eligibility rules (status, enrollment window, cancelled sessions)
- Sweeping expired check-in metadata
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from app.modules.attendance.models import (
    ClassSession,
    Enrollment,
    EnrollmentStatus,
    SessionStatus,
    StudentAttendance,
)
from app.modules.attendance.repository import AttendanceMetadata, AttendanceRepository
from app.modules.attendance.roster import RosterGateway


async def _attendance_count(storage, session_id, student_id):
    [count] = await storage.query_all(
        select(func.count())
        .select_from(StudentAttendance)
        .where(
            StudentAttendance.session_id == session_id,
            StudentAttendance.student_id == student_id,
        )
    )
    return count


class TestCheckinMetadata:
    """Tests for record_checkin_issued / get_session."""

    @pytest.mark.asyncio
    async def test_record_checkin_issued(self, storage, school, clock):
        repository = AttendanceRepository(storage)

        found = await repository.record_checkin_issued(
            school.session_id, school.teacher_id, clock.now, "f" * 64
        )

        assert found is True
        session = await repository.get_session(school.session_id)
        assert session.checkin_issued_by == school.teacher_id
        assert session.checkin_fingerprint == "f" * 64
        assert session.checkin_issued_at is not None

    @pytest.mark.asyncio
    async def test_record_checkin_issued_unknown_session(self, storage, school, clock):
        repository = AttendanceRepository(storage)

        found = await repository.record_checkin_issued(9999, school.teacher_id, clock.now, "f")

        assert found is False
        assert await repository.get_session(9999) is None


class TestInsertAttendanceIfAbsent:
    """Tests for insert_attendance_if_absent."""

    @pytest.mark.asyncio
    async def test_first_insert_then_existing(self, storage, school, clock):
        repository = AttendanceRepository(storage)
        metadata = AttendanceMetadata(check_in_time=clock.now, checkin_issuer_id=school.teacher_id)

        first = await repository.insert_attendance_if_absent(
            school.session_id, school.student_id, metadata
        )
        second = await repository.insert_attendance_if_absent(
            school.session_id,
            school.student_id,
            AttendanceMetadata(check_in_time=clock.now + timedelta(minutes=5)),
        )

        assert first.inserted is True
        assert first.record.qr_check_in is True
        assert first.record.checkin_issuer_id == school.teacher_id
        assert second.inserted is False
        assert second.record.id == first.record.id
        # The existing record is returned unchanged
        assert second.record.checkin_issuer_id == school.teacher_id
        assert await _attendance_count(storage, school.session_id, school.student_id) == 1

    @pytest.mark.asyncio
    async def test_concurrent_inserts_record_once(self, storage, school, clock):
        repository = AttendanceRepository(storage)
        metadata = AttendanceMetadata(check_in_time=clock.now)

        results = await asyncio.gather(
            *(
                repository.insert_attendance_if_absent(
                    school.session_id, school.student_id, metadata
                )
                for _ in range(5)
            )
        )

        assert [result.inserted for result in results].count(True) == 1
        assert len({result.record.id for result in results}) == 1
        assert await _attendance_count(storage, school.session_id, school.student_id) == 1

    @pytest.mark.asyncio
    async def test_get_attendance(self, storage, school, clock):
        repository = AttendanceRepository(storage)
        assert await repository.get_attendance(school.session_id, school.student_id) is None

        result = await repository.insert_attendance_if_absent(
            school.session_id, school.student_id, AttendanceMetadata(check_in_time=clock.now)
        )

        record = await repository.get_attendance(school.session_id, school.student_id)
        assert record.id == result.record.id


class TestRosterGateway:
    """Tests for RosterGateway.is_eligible."""

    @pytest.mark.asyncio
    async def test_enrolled_student_is_eligible(self, storage, school, clock):
        roster = RosterGateway(storage)

        assert await roster.is_eligible(school.student_id, school.session_id, clock.now) is True

    @pytest.mark.asyncio
    async def test_student_of_other_class_is_not_eligible(self, storage, school, clock):
        roster = RosterGateway(storage)

        assert await roster.is_eligible(school.outsider_id, school.session_id, clock.now) is False
        assert (
            await roster.is_eligible(school.student_id, school.other_session_id, clock.now)
            is False
        )

    @pytest.mark.asyncio
    async def test_unknown_session_is_not_eligible(self, storage, school, clock):
        assert await RosterGateway(storage).is_eligible(school.student_id, 9999, clock.now) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [EnrollmentStatus.SUSPENDED, EnrollmentStatus.WITHDRAWN])
    async def test_inactive_enrollment_is_not_eligible(self, storage, school, clock, status):
        await storage.execute(
            update(Enrollment)
            .where(Enrollment.student_id == school.student_id)
            .values(status=status)
        )

        assert (
            await RosterGateway(storage).is_eligible(
                school.student_id, school.session_id, clock.now
            )
            is False
        )

    @pytest.mark.asyncio
    async def test_enrollment_window_is_respected(self, storage, school, clock):
        roster = RosterGateway(storage)
        await storage.execute(
            update(Enrollment)
            .where(Enrollment.student_id == school.student_id)
            .values(withdrawn_at=clock.now + timedelta(days=1))
        )

        assert await roster.is_eligible(school.student_id, school.session_id, clock.now) is True
        assert (
            await roster.is_eligible(
                school.student_id, school.session_id, clock.now + timedelta(days=2)
            )
            is False
        )
        assert (
            await roster.is_eligible(
                school.student_id, school.session_id, clock.now - timedelta(days=60)
            )
            is False
        )

    @pytest.mark.asyncio
    async def test_cancelled_session_is_not_eligible(self, storage, school, clock):
        await storage.execute(
            update(ClassSession)
            .where(ClassSession.id == school.session_id)
            .values(session_status=SessionStatus.CANCELLED)
        )

        assert (
            await RosterGateway(storage).is_eligible(
                school.student_id, school.session_id, clock.now
            )
            is False
        )


class TestSweepExpiredCheckinMetadata:
    """Tests for sweep_expired_checkin_metadata."""

    @pytest.mark.asyncio
    async def test_sweep_clears_only_expired_metadata(self, storage, school, clock):
        repository = AttendanceRepository(storage)
        await repository.record_checkin_issued(
            school.session_id, school.teacher_id, clock.now - timedelta(hours=25), "a" * 64
        )
        await repository.record_checkin_issued(
            school.other_session_id, school.teacher_id, clock.now - timedelta(hours=1), "b" * 64
        )

        cleared = await repository.sweep_expired_checkin_metadata(clock.now - timedelta(hours=24))

        assert cleared == 1
        expired = await repository.get_session(school.session_id)
        assert expired.checkin_issued_at is None
        assert expired.checkin_issued_by is None
        assert expired.checkin_fingerprint is None
        fresh = await repository.get_session(school.other_session_id)
        assert fresh.checkin_fingerprint == "b" * 64

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, storage, school, clock):
        repository = AttendanceRepository(storage)
        await repository.record_checkin_issued(
            school.session_id, school.teacher_id, clock.now - timedelta(hours=30), "a" * 64
        )
        cutoff = clock.now - timedelta(hours=24)

        assert await repository.sweep_expired_checkin_metadata(cutoff) == 1
        assert await repository.sweep_expired_checkin_metadata(cutoff) == 0

    @pytest.mark.asyncio
    async def test_sweep_does_not_touch_attendance(self, storage, school, clock):
        repository = AttendanceRepository(storage)
        await repository.record_checkin_issued(
            school.session_id, school.teacher_id, clock.now - timedelta(hours=30), "a" * 64
        )
        await repository.insert_attendance_if_absent(
            school.session_id, school.student_id, AttendanceMetadata(check_in_time=clock.now)
        )

        await repository.sweep_expired_checkin_metadata(clock.now - timedelta(hours=24))

        assert await _attendance_count(storage, school.session_id, school.student_id) == 1
