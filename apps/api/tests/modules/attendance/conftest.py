"""
Fixtures for attendance tests.

Redemption logic is tested against in-memory collaborators; the repository,
roster and sweeper are tested against a real SQLite database.
"""

import asyncio
from datetime import timedelta
from types import SimpleNamespace

import pytest
import pytest_asyncio

import app.modules.attendance.models  # noqa: F401
import app.modules.users.models  # noqa: F401
from app.core.database import create_storage
from app.core.security import Signer
from app.modules.attendance.checkin_tokens import CheckinTokenService
from app.modules.attendance.models import (
    ClassSession,
    Enrollment,
    EnrollmentStatus,
    SessionStatus,
)
from app.modules.attendance.repository import InsertResult
from app.modules.attendance.service import RedemptionCoordinator
from app.modules.users.models import User, UserRole

CHECKIN_SECRET = "checkin-test-secret"
CHECKIN_WINDOW = timedelta(hours=24)

SESSION_ID = 42
ISSUER_ID = 7
ELIGIBLE_HOLDER = 101
OUTSIDER = 202


class InMemoryAttendanceStore:
    """
    Attendance store keeping records in a dict.

    The check-and-insert runs without yielding to the event loop, which is
    what a unique constraint gives the real store; the ``sleep(0)`` before it
    lets concurrent callers interleave.
    """

    def __init__(self, session_ids):
        self.session_ids = set(session_ids)
        self.records = {}
        self.checkin_metadata = {}
        self._next_id = 1

    async def record_checkin_issued(self, session_id, issuer_id, issued_at, fingerprint):
        await asyncio.sleep(0)
        if session_id not in self.session_ids:
            return False
        self.checkin_metadata[session_id] = {
            "issuer_id": issuer_id,
            "issued_at": issued_at,
            "fingerprint": fingerprint,
        }
        return True

    async def insert_attendance_if_absent(self, session_id, holder_id, metadata):
        await asyncio.sleep(0)
        existing = self.records.get((session_id, holder_id))
        if existing is not None:
            return InsertResult(inserted=False, record=existing)

        record = SimpleNamespace(
            id=self._next_id,
            session_id=session_id,
            student_id=holder_id,
            status=metadata.status,
            check_in_time=metadata.check_in_time,
            qr_check_in=metadata.qr_check_in,
            checkin_issuer_id=metadata.checkin_issuer_id,
        )
        self._next_id += 1
        self.records[(session_id, holder_id)] = record
        return InsertResult(inserted=True, record=record)


class StaticRoster:
    """Roster answering from a fixed set of (holder_id, session_id) pairs."""

    def __init__(self, eligible):
        self.eligible = set(eligible)
        self.calls = []

    async def is_eligible(self, holder_id, session_id, at_time):
        self.calls.append((holder_id, session_id, at_time))
        await asyncio.sleep(0)
        return (holder_id, session_id) in self.eligible


@pytest.fixture
def checkin_tokens(clock):
    """Check-in token service with the EKLS prefix and a 24h window."""
    return CheckinTokenService(
        Signer(CHECKIN_SECRET),
        namespace_prefix="EKLS",
        window=CHECKIN_WINDOW,
        clock=clock,
    )


@pytest.fixture
def attendance_store():
    return InMemoryAttendanceStore(session_ids={SESSION_ID})


@pytest.fixture
def roster():
    return StaticRoster(eligible={(ELIGIBLE_HOLDER, SESSION_ID)})


@pytest.fixture
def coordinator(checkin_tokens, roster, attendance_store, clock):
    return RedemptionCoordinator(checkin_tokens, roster, attendance_store, clock=clock)


@pytest_asyncio.fixture
async def storage(tmp_path):
    """SQLite storage backend with a fresh schema."""
    backend = create_storage(
        f"sqlite+aiosqlite:///{tmp_path / 'attendance.db'}",
        timeout_seconds=10.0,
    )
    await backend.create_schema()
    yield backend
    await backend.close()


@pytest_asyncio.fixture
async def school(storage, clock):
    """
    One class with a session, a teacher, an enrolled student and a student
    from another class.
    """

    async def _seed(db):
        teacher = User(username="teacher", password_hash="x", role=UserRole.TEACHER)
        student = User(username="student", password_hash="x", role=UserRole.STUDENT)
        outsider = User(username="outsider", password_hash="x", role=UserRole.STUDENT)
        db.add_all([teacher, student, outsider])
        await db.flush()

        session = ClassSession(class_id=500, session_status=SessionStatus.IN_PROGRESS)
        other_session = ClassSession(class_id=600, session_status=SessionStatus.SCHEDULED)
        db.add_all([session, other_session])
        await db.flush()

        db.add_all(
            [
                Enrollment(
                    class_id=500,
                    student_id=student.id,
                    status=EnrollmentStatus.ACTIVE,
                    enrolled_at=clock.now - timedelta(days=30),
                ),
                Enrollment(
                    class_id=600,
                    student_id=outsider.id,
                    status=EnrollmentStatus.ACTIVE,
                    enrolled_at=clock.now - timedelta(days=30),
                ),
            ]
        )
        await db.flush()

        return SimpleNamespace(
            teacher_id=teacher.id,
            student_id=student.id,
            outsider_id=outsider.id,
            session_id=session.id,
            other_session_id=other_session.id,
            class_id=500,
        )

    return await storage.transaction(_seed)
