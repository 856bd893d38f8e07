"""
Roster Gateway

Answers "is this student an active participant of this session at this
time?" from the enrollments of the session's class. Results are not cached.
"""

import logging
from datetime import datetime

from sqlalchemy import or_, select

from app.core.database import StorageBackend
from app.modules.attendance.models import (
    ClassSession,
    Enrollment,
    EnrollmentStatus,
    SessionStatus,
)

logger = logging.getLogger(__name__)


class RosterGateway:
    """Read-only eligibility queries against class rosters."""

    def __init__(self, storage: StorageBackend):
        self._storage = storage

    async def is_eligible(self, holder_id: int, session_id: int, at_time: datetime) -> bool:
        """
        True if ``holder_id`` had an active enrollment in the class of
        ``session_id`` at ``at_time`` and the session is not cancelled.

        Raises:
            InfrastructureUnavailableError: Database unreachable or timed out
        """
        stmt = (
            select(Enrollment.id)
            .join(ClassSession, ClassSession.class_id == Enrollment.class_id)
            .where(
                ClassSession.id == session_id,
                ClassSession.session_status != SessionStatus.CANCELLED,
                Enrollment.student_id == holder_id,
                Enrollment.status == EnrollmentStatus.ACTIVE,
                Enrollment.enrolled_at <= at_time,
                or_(Enrollment.withdrawn_at.is_(None), Enrollment.withdrawn_at > at_time),
            )
            .limit(1)
        )
        rows = await self._storage.query_all(stmt)
        eligible = bool(rows)
        if not eligible:
            logger.info(f"Student {holder_id} is not on the roster for session {session_id}")
        return eligible


__all__ = ["RosterGateway"]
